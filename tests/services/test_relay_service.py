# tests/services/test_relay_service.py
"""
Тесты сервиса ретрансляции: приём, подписка, отключение.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from location_relay.common.exceptions import StoreError
from location_relay.infra.memory_store import MemoryStore
from location_relay.services.relay.service import LocationRelay
from location_relay.shared.models.location import LocationEvent


def _event(ts: int, lat: float = 52.0) -> LocationEvent:
    return LocationEvent(latitude=lat, longitude=-0.1, timestamp=ts)


class TestScenarios:
    """Сквозные сценарии подписки и доставки."""

    @pytest.mark.asyncio
    async def test_backfill_then_live(self, relay: LocationRelay, push, clock) -> None:
        """История одной пачкой, затем live-событие отдельно."""
        clock.now = 5000
        await relay.ingest("d1", _event(1000))
        await relay.ingest("d1", _event(2000))

        await relay.on_subscribe("c1", "d1", since=0)
        clock.now = 6000
        await relay.ingest("d1", _event(6000))

        assert push.sent_to("c1") == [[_event(1000), _event(2000)], _event(6000)]

    @pytest.mark.asyncio
    async def test_future_since_waits_for_clock(self, relay: LocationRelay, push, clock) -> None:
        """Подписчик с since в будущем ничего не получает, пока время не наступит."""
        clock.now = 1000
        await relay.on_subscribe("c1", "d1", since=5000)

        await relay.ingest("d1", _event(1000))
        assert push.sent_to("c1") == []

        clock.now = 5000
        await relay.ingest("d1", _event(1500))
        assert push.sent_to("c1") == [_event(1500)]

    @pytest.mark.asyncio
    async def test_disconnect_stops_delivery(self, relay: LocationRelay, push, clock) -> None:
        await relay.on_subscribe("c1", "d1", since=0)
        await relay.on_disconnect("c1")

        await relay.ingest("d1", _event(9000))

        assert push.calls == []
        assert await relay.sessions.bound_entity("c1") is None

    @pytest.mark.asyncio
    async def test_disconnect_twice_is_noop(self, relay: LocationRelay) -> None:
        await relay.on_subscribe("c1", "d1", since=0)

        assert await relay.on_disconnect("c1") == "d1"
        assert await relay.on_disconnect("c1") is None

    @pytest.mark.asyncio
    async def test_unsubscribe_keeps_other_subscribers(self, relay: LocationRelay, push) -> None:
        await relay.on_subscribe("c1", "d1", since=0)
        await relay.on_subscribe("c2", "d1", since=0)

        assert await relay.on_unsubscribe("c1") == "d1"
        await relay.ingest("d1", _event(9000))

        assert push.sent_to("c1") == []
        assert push.sent_to("c2") == [_event(9000)]


class TestIngest:
    """Тесты для LocationRelay.ingest."""

    @pytest.mark.asyncio
    async def test_duplicate_is_not_redelivered(self, relay: LocationRelay, push) -> None:
        await relay.on_subscribe("c1", "d1", since=0)

        first = await relay.ingest("d1", _event(1000))
        second = await relay.ingest("d1", _event(1000))

        assert first.appended is True and first.delivered == 1
        assert second.appended is False and second.delivered == 0
        assert push.sent_to("c1") == [_event(1000)]
        assert await relay.event_log.size("d1") == 1

    @pytest.mark.asyncio
    async def test_failed_receiver_counted(self, relay: LocationRelay, push) -> None:
        await relay.on_subscribe("c1", "d1", since=0)
        await relay.on_subscribe("c2", "d1", since=0)
        push.failing.add("c1")

        result = await relay.ingest("d1", _event(1000))

        assert result.delivered == 1
        assert result.failed == 1
        assert relay.get_stats()["total_failed_deliveries"] == 1

    @pytest.mark.asyncio
    async def test_store_error_propagates(self, push) -> None:
        """Сбой хранилища при добавлении пробрасывается, доставки нет."""
        store = AsyncMock()
        store.zadd = AsyncMock(side_effect=StoreError("ZADD", "down"))
        relay = LocationRelay(store, push)

        with pytest.raises(StoreError):
            await relay.ingest("d1", _event(1000))

        assert push.calls == []


def _flatten(payloads: list) -> list[LocationEvent]:
    received: list[LocationEvent] = []
    for payload in payloads:
        if isinstance(payload, list):
            received.extend(payload)
        else:
            received.append(payload)
    return received


class TestConcurrency:
    """Параллельные подписка и приём одного водителя."""

    def test_sessions_share_entity_locks(self, relay: LocationRelay) -> None:
        """Приём и подписка берут одну и ту же блокировку водителя."""
        assert relay.sessions._entity_locks is relay._entity_locks

    @pytest.mark.asyncio
    @pytest.mark.parametrize("subscribe_first", [True, False])
    async def test_event_during_subscribe_arrives_once(
        self,
        yielding_store,
        push,
        clock,
        subscribe_first: bool,
    ) -> None:
        """Событие, пришедшее во время подписки, доставляется ровно один раз."""
        relay = LocationRelay(yielding_store, push, clock=clock)
        event = _event(1000)

        subscribe = relay.on_subscribe("c1", "d1", since=0)
        ingest = relay.ingest("d1", event)
        if subscribe_first:
            await asyncio.gather(subscribe, ingest)
        else:
            await asyncio.gather(ingest, subscribe)

        assert _flatten(push.sent_to("c1")) == [event]

    @pytest.mark.asyncio
    async def test_subscribe_waits_for_held_entity_lock(self, yielding_store, push, clock) -> None:
        """Подписка не завершается, пока блокировку водителя держит приём."""
        relay = LocationRelay(yielding_store, push, clock=clock)

        async with relay._entity_locks.hold("d1"):
            task = asyncio.create_task(relay.on_subscribe("c1", "d1", since=0))
            for _ in range(20):
                await asyncio.sleep(0)
            assert not task.done()

        await task
        assert await relay.registry.entry("d1", "c1") is not None

    @pytest.mark.asyncio
    async def test_concurrent_ingest_and_subscribe_no_loss_no_duplicates(
        self,
        yielding_store,
        push,
        clock,
    ) -> None:
        """Каждое событие приходит подписчику ровно один раз: в истории или live."""
        relay = LocationRelay(yielding_store, push, clock=clock)
        events = [_event(ts, lat=float(ts % 80)) for ts in range(1000, 1050)]
        ingests = [relay.ingest("d1", event) for event in events]

        await asyncio.gather(
            *ingests[:25],
            relay.on_subscribe("c1", "d1", since=0),
            *ingests[25:],
        )

        received = _flatten(push.sent_to("c1"))
        assert sorted(received, key=lambda e: e.timestamp) == events
        assert len(received) == len(events)


class StallingPush:
    """pushToConnection, у которого отправка в stalled никогда не завершается."""

    def __init__(self, stalled: str) -> None:
        self.stalled = stalled
        self.calls: list[tuple[str, object]] = []
        self._never = asyncio.Event()

    async def __call__(self, connection_id: str, payload: object) -> None:
        if connection_id == self.stalled:
            await self._never.wait()
        self.calls.append((connection_id, payload))


class TestPushTimeout:
    """Зависший подписчик не блокирует водителя."""

    @pytest.mark.asyncio
    async def test_stalled_receiver_counts_as_failed(self, store: MemoryStore, clock) -> None:
        push = StallingPush("slow")
        relay = LocationRelay(store, push, clock=clock, push_timeout=0.05)
        await relay.on_subscribe("slow", "d1", since=0)
        await relay.on_subscribe("fast", "d1", since=0)

        result = await asyncio.wait_for(relay.ingest("d1", _event(1000)), 1)

        assert result.delivered == 1
        assert result.failed == 1
        assert push.calls == [("fast", _event(1000))]

    @pytest.mark.asyncio
    async def test_next_ingest_and_subscribe_not_blocked(self, store: MemoryStore, clock) -> None:
        """После зависшей отправки приём и подписка по водителю продолжают работать."""
        push = StallingPush("slow")
        relay = LocationRelay(store, push, clock=clock, push_timeout=0.05)
        await relay.on_subscribe("slow", "d1", since=0)
        await relay.ingest("d1", _event(1000))

        second = await asyncio.wait_for(relay.ingest("d1", _event(2000)), 1)
        bind = await asyncio.wait_for(relay.on_subscribe("other", "d1", since=0), 1)

        assert second.appended is True
        assert bind.backfill_sent is True
        assert not relay._entity_locks.is_locked("d1")

    @pytest.mark.asyncio
    async def test_stalled_backfill_keeps_subscription(self, store: MemoryStore, clock) -> None:
        push = StallingPush("slow")
        relay = LocationRelay(store, push, clock=clock, push_timeout=0.05)
        await relay.ingest("d1", _event(1000))

        result = await asyncio.wait_for(relay.on_subscribe("slow", "d1", since=0), 1)

        assert result.backfill_sent is False
        assert await relay.registry.entry("d1", "slow") is not None


class TestStats:
    """Тесты статистики."""

    @pytest.mark.asyncio
    async def test_counters(self, relay: LocationRelay, clock) -> None:
        clock.now = 5000
        await relay.ingest("d1", _event(1000))
        await relay.ingest("d1", _event(1000))
        await relay.ingest("d2", _event(1000))
        await relay.on_subscribe("c1", "d1", since=0)
        await relay.on_unsubscribe("c1")

        stats = relay.get_stats()

        assert stats["total_ingested"] == 3
        assert stats["total_duplicates"] == 1
        assert stats["total_subscriptions"] == 1
        assert stats["total_backfills"] == 1
        assert stats["total_unsubscriptions"] == 1
        assert stats["unique_drivers"] == 2
        assert stats["top_drivers"][0] == ("d1", 2)

    @pytest.mark.asyncio
    async def test_health_check(self, relay: LocationRelay) -> None:
        assert await relay.health_check() is True


class TestRetention:
    """Окно хранения на уровне сервиса."""

    @pytest.mark.asyncio
    async def test_backfill_excludes_expired(self, store: MemoryStore, push, clock) -> None:
        relay = LocationRelay(store, push, retention_ms=3000, clock=clock)
        clock.now = 10_000
        await relay.ingest("d1", _event(5000))
        await relay.ingest("d1", _event(8000))

        await relay.on_subscribe("c1", "d1", since=0)

        assert push.sent_to("c1") == [[_event(8000)]]

    @pytest.mark.asyncio
    async def test_expired_event_not_pushed_live(self, store: MemoryStore, push, clock) -> None:
        """Событие старше окна хранения не рассылается."""
        relay = LocationRelay(store, push, retention_ms=3000, clock=clock)
        clock.now = 10_000
        await relay.on_subscribe("c1", "d1", since=0)

        result = await relay.ingest("d1", _event(5000))

        assert result.appended is False
        assert push.calls == []
