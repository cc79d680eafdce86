# location_relay/core/registry/service.py
"""
Реестр подписчиков.
Один sorted set на водителя: member = connection_id, score = since подписчика.
"""

from __future__ import annotations

from location_relay.infra.store import SortedSetStore, subscribers_key
from location_relay.shared.models.location import SubscriberEntry


class SubscriberRegistry:
    """
    Реестр активных подписок.

    Отметка since фиксируется при подписке и дальше служит постоянным
    фильтром: подписчик получает событие, если since <= текущего времени.
    """

    def __init__(self, store: SortedSetStore) -> None:
        self._store = store

    async def register(
        self,
        entity_id: str,
        connection_id: str,
        watermark: int,
        previous_entity_id: str | None = None,
    ) -> SubscriberEntry:
        """
        Создаёт или заменяет подписку соединения.

        Args:
            entity_id: Водитель
            connection_id: Соединение подписчика
            watermark: since подписчика (мс)
            previous_entity_id: Водитель прежней подписки этого соединения;
                запись под ним удаляется, иначе она осталась бы висеть
        """
        entry = SubscriberEntry(
            connection_id=connection_id,
            entity_id=entity_id,
            watermark=watermark,
        )
        if previous_entity_id and previous_entity_id != entity_id:
            await self.deregister(previous_entity_id, connection_id)

        # Без nx: повторная подписка на того же водителя перезаписывает since
        await self._store.zadd(subscribers_key(entity_id), watermark, connection_id)
        return entry

    async def deregister(self, entity_id: str, connection_id: str) -> bool:
        """
        Удаляет подписку, если она есть.

        Returns:
            True если запись была удалена
        """
        removed = await self._store.zrem(subscribers_key(entity_id), connection_id)
        return bool(removed)

    async def eligible_receivers(self, entity_id: str, at_ts: int) -> list[str]:
        """Соединения, у которых since <= at_ts."""
        return await self._store.zrangebyscore(subscribers_key(entity_id), float("-inf"), at_ts)

    async def entry(self, entity_id: str, connection_id: str) -> SubscriberEntry | None:
        """Текущая подписка соединения на водителя или None."""
        score = await self._store.zscore(subscribers_key(entity_id), connection_id)
        if score is None:
            return None
        return SubscriberEntry(
            connection_id=connection_id,
            entity_id=entity_id,
            watermark=int(score),
        )
