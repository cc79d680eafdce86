# location_relay/services/relay/service.py
"""
Бизнес-логика ретрансляции геолокации.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from location_relay.common.constants import DEFAULT_PUSH_TIMEOUT_S
from location_relay.common.locks import KeyedLock
from location_relay.common.logger import log_debug, log_info
from location_relay.common.timeutils import Clock, current_timestamp_ms
from location_relay.core.backfill.service import BackfillResolver
from location_relay.core.delivery.service import DeliveryMatcher, PushCallback
from location_relay.core.event_log.service import EventLog
from location_relay.core.registry.service import SubscriberRegistry
from location_relay.core.sessions.service import BindResult, SessionManager
from location_relay.infra.store import SortedSetStore
from location_relay.shared.models.location import LocationEvent


@dataclass
class IngestResult:
    """Итог приёма события."""
    entity_id: str
    appended: bool
    delivered: int = 0
    failed: int = 0


class LocationRelay:
    """
    Сервис ретрансляции геолокации водителей.

    Ответственности:
    - Приём событий в журнал и live-рассылка подписчикам
    - Подписка соединений с отправкой истории
    - Очистка подписок при отписке и отключении
    - Статистика

    Все операции безопасно вызывать конкурентно из одного event loop.
    """

    def __init__(
        self,
        store: SortedSetStore,
        push: PushCallback,
        retention_ms: int | None = None,
        clock: Clock = current_timestamp_ms,
        push_timeout: float | None = DEFAULT_PUSH_TIMEOUT_S,
    ) -> None:
        """
        Args:
            store: Хранилище журнала, реестра и индекса соединений
            push: Отправка сообщения соединению (pushToConnection)
            retention_ms: Окно хранения журнала; None — без обрезки
            clock: Источник текущего времени (мс)
            push_timeout: Предел ожидания одной отправки, секунды
        """
        self._store = store
        self._entity_locks = KeyedLock()

        self.event_log = EventLog(store, retention_ms=retention_ms, clock=clock)
        self.registry = SubscriberRegistry(store)
        self.matcher = DeliveryMatcher(
            self.registry,
            push,
            clock=clock,
            push_timeout=push_timeout,
        )
        self.resolver = BackfillResolver(self.event_log)
        self.sessions = SessionManager(
            store,
            self.registry,
            self.resolver,
            push,
            clock=clock,
            entity_locks=self._entity_locks,
            push_timeout=push_timeout,
        )

        # Статистика
        self._total_ingested = 0
        self._total_duplicates = 0
        self._total_delivered = 0
        self._total_failed = 0
        self._total_subscriptions = 0
        self._total_backfills = 0
        self._total_unsubscriptions = 0
        self._events_per_driver: dict[str, int] = {}

    @property
    def store(self) -> SortedSetStore:
        return self._store

    async def ingest(self, entity_id: str, event: LocationEvent) -> IngestResult:
        """
        Принять событие геолокации.

        1. Добавление в журнал водителя
        2. Рассылка подписчикам (только если событие новое)

        StoreError пробрасывается вызывающему.
        """
        async with self._entity_locks.hold(entity_id):
            appended = await self.event_log.append(entity_id, event)
            report = await self.matcher.match(entity_id, event) if appended else None

        result = IngestResult(entity_id=entity_id, appended=appended)
        if report is not None:
            result.delivered = len(report.delivered)
            result.failed = len(report.failed)

        self._total_ingested += 1
        if not appended:
            self._total_duplicates += 1
        self._total_delivered += result.delivered
        self._total_failed += result.failed
        self._events_per_driver[entity_id] = self._events_per_driver.get(entity_id, 0) + 1

        await log_debug(
            f"Событие водителя {entity_id} принято",
            extra={
                "timestamp": event.timestamp,
                "appended": appended,
                "delivered": result.delivered,
                "failed": result.failed,
            },
        )
        return result

    async def on_subscribe(self, connection_id: str, entity_id: str, since: int) -> BindResult:
        """Подписать соединение на водителя начиная с since (мс)."""
        result = await self.sessions.bind(connection_id, entity_id, since)
        self._total_subscriptions += 1
        if result.backfill_sent:
            self._total_backfills += 1
        return result

    async def on_unsubscribe(self, connection_id: str) -> str | None:
        """Явная отписка: соединение остаётся открытым, но без подписки."""
        entity_id = await self.sessions.unbind(connection_id)
        if entity_id is not None:
            self._total_unsubscriptions += 1
        return entity_id

    async def on_disconnect(self, connection_id: str) -> str | None:
        """Очистка при отключении; соединение без подписки — не ошибка."""
        entity_id = await self.sessions.unbind(connection_id)
        if entity_id is not None:
            self._total_unsubscriptions += 1
        await log_info(f"Клиент {connection_id} отключился")
        return entity_id

    async def health_check(self) -> bool:
        """Доступно ли хранилище."""
        return await self._store.health_check()

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "total_ingested": self._total_ingested,
            "total_duplicates": self._total_duplicates,
            "total_delivered": self._total_delivered,
            "total_failed_deliveries": self._total_failed,
            "total_subscriptions": self._total_subscriptions,
            "total_backfills": self._total_backfills,
            "total_unsubscriptions": self._total_unsubscriptions,
            "unique_drivers": len(self._events_per_driver),
            "top_drivers": sorted(
                self._events_per_driver.items(),
                key=lambda x: x[1],
                reverse=True,
            )[:10],
        }
