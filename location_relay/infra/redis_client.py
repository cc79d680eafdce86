# location_relay/infra/redis_client.py
"""
Клиент Redis — основное хранилище журнала событий и реестра подписчиков.
"""

from __future__ import annotations

from typing import Any, Awaitable

import redis.asyncio as redis
from redis.exceptions import RedisError

from location_relay.common.constants import TypeMsg
from location_relay.common.exceptions import StoreError
from location_relay.common.logger import get_logger, log_error, log_info
from location_relay.infra.store import ScoreBound, SortedSetStore

logger = get_logger("redis")


class RedisClient(SortedSetStore):
    """
    Асинхронный клиент Redis.
    Поддерживает:
    - Sorted set операции (журнал событий, реестр подписчиков)
    - Строковые ключи (привязка соединения к водителю)
    - Namespace для всех ключей
    """

    def __init__(self, namespace: str = "relay", client: redis.Redis | None = None) -> None:
        self._namespace = namespace
        self._client = client

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    async def _call(self, operation: str, command: Awaitable[Any]) -> Any:
        """Выполняет команду, переводя ошибки Redis в StoreError."""
        try:
            return await command
        except RedisError as e:
            await log_error(
                f"Команда Redis {operation} завершилась ошибкой: {e}",
                logger_name="redis",
            )
            raise StoreError(operation, str(e)) from e

    async def connect(
        self,
        url: str | None = None,
        max_connections: int = 50,
    ) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis (если None, берётся из конфига)
            max_connections: Максимальное количество соединений
        """
        if self._client is not None:
            return

        if url is None:
            from location_relay.config import settings
            url = settings.redis.url
            max_connections = settings.redis.REDIS_MAX_CONNECTIONS
            self._namespace = settings.redis.REDIS_NAMESPACE

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )

        # Проверяем подключение
        try:
            await self._client.ping()
        except RedisError as e:
            self._client = None
            raise StoreError("connect", str(e)) from e

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    async def close(self) -> None:
        await self.disconnect()

    # =========================================================================
    # SORTED SET ОПЕРАЦИИ
    # =========================================================================

    async def zadd(self, key: str, score: int, member: str, *, nx: bool = False) -> int:
        return await self._call("ZADD", self.client.zadd(self._make_key(key), {member: score}, nx=nx))

    async def zrangebyscore(self, key: str, min_score: ScoreBound, max_score: ScoreBound) -> list[str]:
        return await self._call(
            "ZRANGEBYSCORE",
            self.client.zrangebyscore(self._make_key(key), min_score, max_score),
        )

    async def zscore(self, key: str, member: str) -> float | None:
        return await self._call("ZSCORE", self.client.zscore(self._make_key(key), member))

    async def zrem(self, key: str, member: str) -> int:
        return await self._call("ZREM", self.client.zrem(self._make_key(key), member))

    async def zremrangebyscore(self, key: str, min_score: ScoreBound, max_score: ScoreBound) -> int:
        return await self._call(
            "ZREMRANGEBYSCORE",
            self.client.zremrangebyscore(self._make_key(key), min_score, max_score),
        )

    async def zcard(self, key: str) -> int:
        return await self._call("ZCARD", self.client.zcard(self._make_key(key)))

    # =========================================================================
    # СТРОКОВЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """Получает значение по ключу."""
        return await self._call("GET", self.client.get(self._make_key(key)))

    async def set(self, key: str, value: str) -> bool:
        """Устанавливает значение."""
        return bool(await self._call("SET", self.client.set(self._make_key(key), value)))

    async def delete(self, key: str) -> int:
        """Удаляет ключ."""
        return await self._call("DEL", self.client.delete(self._make_key(key)))

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к Redis.

        Returns:
            True если подключение работает
        """
        try:
            return bool(await self.client.ping())
        except (RedisError, RuntimeError) as e:
            await log_error(f"Health check Redis failed: {e}", logger_name="redis")
            return False


async def create_redis_store() -> RedisClient:
    """
    Создаёт и подключает RedisClient по настройкам из конфигурации.
    """
    from location_relay.config import settings

    store = RedisClient(namespace=settings.redis.REDIS_NAMESPACE)
    await store.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )
    return store
