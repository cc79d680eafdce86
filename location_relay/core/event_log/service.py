# location_relay/core/event_log/service.py
"""
Журнал событий геолокации.
Один sorted set на водителя, score = timestamp события.
"""

from __future__ import annotations

from location_relay.common.timeutils import Clock, current_timestamp_ms
from location_relay.infra.store import ScoreBound, SortedSetStore, events_key
from location_relay.shared.models.location import LocationEvent


class EventLog:
    """
    Журнал событий только на добавление, упорядоченный по времени.

    Повторное добавление того же события (тот же timestamp и тот же
    сериализованный payload) ничего не меняет.
    """

    def __init__(
        self,
        store: SortedSetStore,
        retention_ms: int | None = None,
        clock: Clock = current_timestamp_ms,
    ) -> None:
        """
        Args:
            store: Хранилище sorted set
            retention_ms: Окно хранения; None — журнал не обрезается
            clock: Источник текущего времени (мс)
        """
        if retention_ms is not None and retention_ms <= 0:
            raise ValueError("retention_ms должен быть больше нуля")
        self._store = store
        self._retention_ms = retention_ms
        self._clock = clock

    @property
    def retention_ms(self) -> int | None:
        return self._retention_ms

    def _horizon(self) -> int | None:
        """Самый ранний timestamp, который ещё хранится."""
        if self._retention_ms is None:
            return None
        return self._clock() - self._retention_ms

    async def append(self, entity_id: str, event: LocationEvent) -> bool:
        """
        Добавляет событие в журнал водителя.

        Returns:
            True если событие добавлено, False если такое уже было
            или оно старше окна хранения
        """
        key = events_key(entity_id)
        horizon = self._horizon()
        if horizon is not None and event.timestamp < horizon:
            return False

        added = await self._store.zadd(key, event.timestamp, event.to_member(), nx=True)

        if horizon is not None:
            # Scores целые (мс): всё строго раньше горизонта
            await self._store.zremrangebyscore(key, float("-inf"), horizon - 1)

        return bool(added)

    async def range_query(
        self,
        entity_id: str,
        min_ts: ScoreBound,
        max_ts: ScoreBound,
    ) -> list[LocationEvent]:
        """
        События с min_ts <= timestamp <= max_ts по возрастанию времени.

        Пустой список при min_ts > max_ts или отсутствии журнала.
        """
        horizon = self._horizon()
        if horizon is not None:
            min_ts = max(min_ts, horizon)
        if min_ts > max_ts:
            return []

        members = await self._store.zrangebyscore(events_key(entity_id), min_ts, max_ts)
        return [LocationEvent.from_member(member) for member in members]

    async def size(self, entity_id: str) -> int:
        """Количество событий в журнале водителя."""
        return await self._store.zcard(events_key(entity_id))
