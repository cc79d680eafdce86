"""
Live-доставка событий подписчикам.
"""

from location_relay.core.delivery.service import (
    DeliveryMatcher,
    DeliveryReport,
    PushCallback,
    PushPayload,
    push_with_timeout,
)

__all__ = [
    "DeliveryMatcher",
    "DeliveryReport",
    "PushCallback",
    "PushPayload",
    "push_with_timeout",
]
