"""
Работа со временем в миллисекундах эпохи.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Callable

# Источник текущего времени; подменяется в тестах
Clock = Callable[[], int]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def current_timestamp_ms() -> int:
    """Текущее время в миллисекундах с начала эпохи."""
    return time.time_ns() // 1_000_000


def to_timestamp_ms(value: datetime) -> int:
    """
    Переводит datetime в миллисекунды эпохи.
    
    Наивные datetime считаются заданными в UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _ONE_MS
