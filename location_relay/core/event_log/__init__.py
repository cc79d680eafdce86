"""
Журнал событий геолокации по водителям.
"""

from location_relay.core.event_log.service import EventLog

__all__ = [
    "EventLog",
]
