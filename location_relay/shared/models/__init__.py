"""
Pydantic-модели сервиса.
"""

from location_relay.shared.models.common import HealthStatus
from location_relay.shared.models.location import (
    EventBody,
    LocationEvent,
    SubscribeRequest,
    SubscriberEntry,
    WebhookEventInfo,
    WebhookLocationData,
)

__all__ = [
    "EventBody",
    "HealthStatus",
    "LocationEvent",
    "SubscribeRequest",
    "SubscriberEntry",
    "WebhookEventInfo",
    "WebhookLocationData",
]
