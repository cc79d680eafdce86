# location_relay/core/delivery/service.py
"""
Сопоставление нового события с подписчиками и live-доставка.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence, Union

from location_relay.common.constants import DEFAULT_PUSH_TIMEOUT_S
from location_relay.common.exceptions import DeliveryError
from location_relay.common.logger import log_warning
from location_relay.common.timeutils import Clock, current_timestamp_ms
from location_relay.core.registry.service import SubscriberRegistry
from location_relay.shared.models.location import LocationEvent

# Одно событие (live) или упорядоченная пачка (история при подписке)
PushPayload = Union[LocationEvent, Sequence[LocationEvent]]

# pushToConnection: результат не используется
PushCallback = Callable[[str, PushPayload], Awaitable[Any]]


async def push_with_timeout(
    push: PushCallback,
    connection_id: str,
    payload: PushPayload,
    timeout: float | None,
) -> None:
    """
    Отправка с ограничением по времени.

    Отправка, не уложившаяся в timeout, отменяется. None: без ограничения.

    Raises:
        DeliveryError: отправка не уложилась в timeout
    """
    try:
        await asyncio.wait_for(push(connection_id, payload), timeout)
    except asyncio.TimeoutError as e:
        raise DeliveryError(connection_id, f"таймаут отправки {timeout} с") from e


@dataclass
class DeliveryReport:
    """Итог рассылки одного события."""
    entity_id: str
    cutoff: int
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def receivers(self) -> int:
        return len(self.delivered) + len(self.failed)


class DeliveryMatcher:
    """
    Рассылка события подписчикам водителя.

    Доставка best-effort, без повторов и подтверждений: ошибка отправки
    одному соединению не мешает остальным.
    """

    def __init__(
        self,
        registry: SubscriberRegistry,
        push: PushCallback,
        clock: Clock = current_timestamp_ms,
        push_timeout: float | None = DEFAULT_PUSH_TIMEOUT_S,
    ) -> None:
        self._registry = registry
        self._push = push
        self._clock = clock
        self._push_timeout = push_timeout

    async def match(self, entity_id: str, event: LocationEvent) -> DeliveryReport:
        """
        Отправляет событие всем подписчикам с since <= now.

        now берётся один раз на событие, так что все получатели
        видят одну и ту же границу.
        """
        now = self._clock()
        receivers = await self._registry.eligible_receivers(entity_id, now)
        report = DeliveryReport(entity_id=entity_id, cutoff=now)

        for connection_id in receivers:
            try:
                await push_with_timeout(self._push, connection_id, event, self._push_timeout)
            except Exception as e:
                report.failed.append(connection_id)
                await log_warning(
                    f"Не удалось доставить событие водителя {entity_id} в {connection_id}: {e}",
                    extra={"entity_id": entity_id, "connection_id": connection_id},
                )
            else:
                report.delivered.append(connection_id)

        return report
