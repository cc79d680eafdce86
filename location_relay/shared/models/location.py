"""
Модели геолокации и подписки.

LocationEvent и SubscriberEntry — неизменяемые значения с валидацией
при создании: некорректные числа отсекаются до попадания в ядро.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from location_relay.common.timeutils import to_timestamp_ms

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class LocationEvent(BaseModel):
    """Отметка геолокации водителя."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    timestamp: int = Field(..., strict=True, description="Миллисекунды эпохи")

    def to_member(self) -> str:
        """Сериализация для хранения в sorted set."""
        return self.model_dump_json()

    @classmethod
    def from_member(cls, member: str) -> "LocationEvent":
        """Восстанавливает событие из элемента sorted set."""
        return cls.model_validate_json(member)


class SubscriberEntry(BaseModel):
    """Подписка соединения на водителя."""
    model_config = ConfigDict(frozen=True)

    connection_id: str = Field(..., min_length=1)
    entity_id: str = Field(..., min_length=1)
    watermark: int = Field(..., strict=True, description="since подписчика, мс эпохи")


# === WEBHOOK ===

class WebhookEventInfo(BaseModel):
    """Заголовок события вебхука."""
    name: str
    time: datetime


class WebhookLocationData(BaseModel):
    """Данные геолокации из вебхука."""
    driver_id: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    timestamp: str


class EventBody(BaseModel):
    """Тело вебхука с геолокацией водителя."""
    event: WebhookEventInfo
    data: WebhookLocationData

    @property
    def entity_id(self) -> str:
        return self.data.driver_id

    def to_location_event(self) -> LocationEvent:
        """Событие журнала; время события берётся из event.time."""
        return LocationEvent(
            latitude=self.data.latitude,
            longitude=self.data.longitude,
            timestamp=to_timestamp_ms(self.event.time),
        )


# === SUBSCRIPTION ===

class SubscribeRequest(BaseModel):
    """
    Запрос подписки от клиента.

    since принимает ISO-8601 или число миллисекунд эпохи.
    """
    driver_id: str = Field(..., min_length=1)
    since: datetime

    @field_validator("since", mode="before")
    @classmethod
    def since_from_milliseconds(cls, v: Any) -> Any:
        """Число всегда трактуется как миллисекунды эпохи."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            if not math.isfinite(v):
                raise ValueError("since должен быть конечным числом")
            try:
                return _EPOCH + timedelta(milliseconds=v)
            except OverflowError as e:
                raise ValueError("since вне допустимого диапазона") from e
        return v

    @property
    def since_ms(self) -> int:
        return to_timestamp_ms(self.since)
