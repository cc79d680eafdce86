# location_relay/core/backfill/service.py
"""
История для нового подписчика.
"""

from __future__ import annotations

from location_relay.core.event_log.service import EventLog
from location_relay.shared.models.location import LocationEvent


class BackfillResolver:
    """
    Срез журнала, который отправляется одной пачкой при подписке.

    Одно сообщение вместо потока по событию, сколько бы истории ни было.
    """

    def __init__(self, event_log: EventLog) -> None:
        self._event_log = event_log

    async def resolve(self, entity_id: str, since: int, now: int) -> list[LocationEvent]:
        """События с since <= timestamp <= now; пусто, если since > now."""
        if since > now:
            return []
        return await self._event_log.range_query(entity_id, since, now)
