# location_relay/core/sessions/service.py
"""
Жизненный цикл сессии подписчика.

Состояния соединения: UNBOUND → BOUND (subscribe) → UNBOUND (disconnect,
unsubscribe или subscribe на другого водителя с немедленной повторной
привязкой).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from location_relay.common.constants import DEFAULT_PUSH_TIMEOUT_S, SessionState
from location_relay.common.locks import KeyedLock
from location_relay.common.logger import log_info, log_warning
from location_relay.common.timeutils import Clock, current_timestamp_ms
from location_relay.core.backfill.service import BackfillResolver
from location_relay.core.delivery.service import PushCallback, push_with_timeout
from location_relay.core.registry.service import SubscriberRegistry
from location_relay.infra.store import SortedSetStore, connection_key
from location_relay.shared.models.location import LocationEvent, SubscriberEntry


@dataclass
class BindResult:
    """Итог привязки соединения к водителю."""
    entry: SubscriberEntry
    previous_entity_id: str | None = None
    backfill: list[LocationEvent] = field(default_factory=list)
    backfill_sent: bool = False


class SessionManager:
    """
    Привязка соединений к подпискам.

    Индекс connection_id -> entity_id принадлежит только этому классу и
    нужен лишь для очистки при отключении; источник истины — запись в
    реестре подписчиков.
    """

    def __init__(
        self,
        store: SortedSetStore,
        registry: SubscriberRegistry,
        resolver: BackfillResolver,
        push: PushCallback,
        clock: Clock = current_timestamp_ms,
        entity_locks: KeyedLock | None = None,
        push_timeout: float | None = DEFAULT_PUSH_TIMEOUT_S,
    ) -> None:
        """
        Args:
            store: Хранилище индекса соединений
            registry: Реестр подписчиков
            resolver: Источник истории для новых подписчиков
            push: Отправка сообщения соединению
            clock: Источник текущего времени (мс)
            entity_locks: Блокировки по водителю, общие с приёмом событий
            push_timeout: Предел ожидания отправки истории, секунды
        """
        self._store = store
        self._registry = registry
        self._resolver = resolver
        self._push = push
        self._clock = clock
        # Пустой KeyedLock ложен по __len__, поэтому сравнение с None
        self._entity_locks = entity_locks if entity_locks is not None else KeyedLock()
        self._connection_locks = KeyedLock()
        self._push_timeout = push_timeout

    async def bind(self, connection_id: str, entity_id: str, since: int) -> BindResult:
        """
        Подписывает соединение на водителя и отправляет историю.

        Регистрация выполняется до чтения истории и вместе с ним под
        блокировкой водителя: событие, добавленное параллельно, не теряется
        и не приходит дважды.
        """
        index_key = connection_key(connection_id)

        async with self._connection_locks.hold(connection_id):
            previous_entity_id = await self._store.get(index_key)

            async with self._entity_locks.hold(entity_id):
                now = self._clock()
                await self._store.set(index_key, entity_id)
                entry = await self._registry.register(
                    entity_id,
                    connection_id,
                    since,
                    previous_entity_id=previous_entity_id,
                )
                backfill = await self._resolver.resolve(entity_id, since, now)

                backfill_sent = False
                if backfill:
                    backfill_sent = await self._send_backfill(connection_id, entity_id, backfill)

        await log_info(
            f"Клиент {connection_id} подписан на водителя {entity_id}",
            extra={
                "since": since,
                "previous_entity_id": previous_entity_id,
                "backfill_size": len(backfill),
            },
        )
        return BindResult(
            entry=entry,
            previous_entity_id=previous_entity_id,
            backfill=backfill,
            backfill_sent=backfill_sent,
        )

    async def unbind(self, connection_id: str) -> str | None:
        """
        Снимает подписку соединения. Повторный вызов ничего не делает.

        Returns:
            Водитель, на которого было подписано соединение, или None
        """
        index_key = connection_key(connection_id)

        async with self._connection_locks.hold(connection_id):
            entity_id = await self._store.get(index_key)
            if entity_id is not None:
                await self._registry.deregister(entity_id, connection_id)
            # Индекс удаляется даже если записи в реестре уже не было
            await self._store.delete(index_key)

        if entity_id is not None:
            await log_info(
                f"Клиент {connection_id} отписан от водителя {entity_id}",
            )
        return entity_id

    async def bound_entity(self, connection_id: str) -> str | None:
        """Водитель, к которому привязано соединение."""
        return await self._store.get(connection_key(connection_id))

    async def state(self, connection_id: str) -> SessionState:
        """Текущее состояние сессии соединения."""
        if await self.bound_entity(connection_id) is None:
            return SessionState.UNBOUND
        return SessionState.BOUND

    async def _send_backfill(
        self,
        connection_id: str,
        entity_id: str,
        backfill: list[LocationEvent],
    ) -> bool:
        """Отправляет историю одной пачкой; ошибка доставки не прерывает подписку."""
        try:
            await push_with_timeout(self._push, connection_id, backfill, self._push_timeout)
        except Exception as e:
            await log_warning(
                f"Не удалось отправить историю водителя {entity_id} в {connection_id}: {e}",
                extra={"entity_id": entity_id, "connection_id": connection_id},
            )
            return False
        return True
