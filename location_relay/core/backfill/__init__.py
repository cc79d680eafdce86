"""
История событий для новых подписчиков.
"""

from location_relay.core.backfill.service import BackfillResolver

__all__ = [
    "BackfillResolver",
]
