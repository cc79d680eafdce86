# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("STORE_BACKEND", "memory")

from location_relay.common.exceptions import DeliveryError
from location_relay.infra.memory_store import MemoryStore
from location_relay.services.relay.service import LocationRelay
from location_relay.shared.models.location import LocationEvent


# =============================================================================
# ТЕСТОВЫЕ ДВОЙНИКИ
# =============================================================================

class FakeClock:
    """Управляемые часы в миллисекундах."""

    def __init__(self, now: int = 10_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingPush:
    """pushToConnection, который запоминает отправленное."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.failing: set[str] = set()

    async def __call__(self, connection_id: str, payload: Any) -> None:
        if connection_id in self.failing:
            raise DeliveryError(connection_id, "соединение закрыто")
        self.calls.append((connection_id, payload))

    def sent_to(self, connection_id: str) -> list[Any]:
        """Все payload, отправленные соединению, по порядку."""
        return [payload for cid, payload in self.calls if cid == connection_id]


class YieldingStore(MemoryStore):
    """
    MemoryStore, который отдаёт управление event loop на каждой команде,
    как сетевой клиент Redis. Чтение реестра подписчиков уступает
    несколько раз, чтобы расширить окно для гонок.
    """

    def __init__(self, subs_turns: int = 3) -> None:
        super().__init__()
        self.subs_turns = subs_turns

    async def _turn(self, key: str = "") -> None:
        turns = self.subs_turns if key.endswith(":subs") else 1
        for _ in range(turns):
            await asyncio.sleep(0)

    async def zadd(self, key, score, member, *, nx=False):
        await self._turn()
        return await super().zadd(key, score, member, nx=nx)

    async def zrangebyscore(self, key, min_score, max_score):
        await self._turn(key)
        return await super().zrangebyscore(key, min_score, max_score)

    async def zrem(self, key, member):
        await self._turn()
        return await super().zrem(key, member)

    async def zremrangebyscore(self, key, min_score, max_score):
        await self._turn()
        return await super().zremrangebyscore(key, min_score, max_score)

    async def get(self, key):
        await self._turn()
        return await super().get(key)

    async def set(self, key, value):
        await self._turn()
        return await super().set(key, value)

    async def delete(self, key):
        await self._turn()
        return await super().delete(key)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "location_relay_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "RELAY_HOST": "127.0.0.1",
        "RELAY_PORT": 9090,
        "SUBSCRIBE_PATH": "/ws",
        "CORS_ORIGINS": ["https://example.com"],
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "LOG_MAX_BYTES": 1024,
        "LOG_BACKUP_COUNT": 1,
        "REDIS_HOST": "redis.local",
        "REDIS_PORT": 6380,
        "REDIS_DB": 1,
        "REDIS_PASSWORD": "",
        "REDIS_NAMESPACE": "relay_test",
        "REDIS_MAX_CONNECTIONS": 10,
        "STORE_BACKEND": "memory",
        "EVENT_RETENTION_MS": 3600000,
        "PUSH_EVENT_NAME": "location",
        "PUSH_TIMEOUT_S": 0.5,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    """Часы, стоящие на 10 000 мс."""
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    """Пустое хранилище в памяти."""
    return MemoryStore()


@pytest.fixture
def yielding_store() -> YieldingStore:
    """Хранилище, уступающее event loop на каждой команде."""
    return YieldingStore()


@pytest.fixture
def push() -> RecordingPush:
    """Запоминающий pushToConnection."""
    return RecordingPush()


@pytest.fixture
def relay(store: MemoryStore, push: RecordingPush, clock: FakeClock) -> LocationRelay:
    """Сервис ретрансляции на хранилище в памяти."""
    return LocationRelay(store, push, clock=clock)


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента redis.asyncio."""
    redis = AsyncMock()
    redis.zadd = AsyncMock(return_value=1)
    redis.zrangebyscore = AsyncMock(return_value=[])
    redis.zscore = AsyncMock(return_value=None)
    redis.zrem = AsyncMock(return_value=1)
    redis.zremrangebyscore = AsyncMock(return_value=0)
    redis.zcard = AsyncMock(return_value=0)
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    return redis


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def sample_event() -> LocationEvent:
    """Пример события геолокации."""
    return LocationEvent(latitude=52.0, longitude=-0.1, timestamp=1000)


@pytest.fixture
def sample_webhook_body() -> dict[str, Any]:
    """Пример тела вебхука."""
    return {
        "event": {
            "name": "driver.location",
            "time": "1970-01-01T00:00:01Z",
        },
        "data": {
            "driver_id": "d1",
            "latitude": 52.0,
            "longitude": -0.1,
            "timestamp": "1970-01-01T00:00:01Z",
        },
    }
