"""
Реестр подписчиков по водителям.
"""

from location_relay.core.registry.service import SubscriberRegistry

__all__ = [
    "SubscriberRegistry",
]
