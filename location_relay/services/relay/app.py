"""
FastAPI приложение Location Relay.

HTTP endpoints:
- POST /event — вебхук с геолокацией водителя
- GET /health — проверка здоровья
- GET /stats — статистика

WebSocket endpoint (SUBSCRIBE_PATH, по умолчанию /subscribe):
- {"action": "subscribe", "driver_id": "d1", "since": "2024-01-01T00:00:00Z"}
  (since также принимает число миллисекунд эпохи)
- {"action": "unsubscribe"}
- {"action": "ping"}
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from location_relay.common.constants import ClientAction, ServerMessage, TypeMsg
from location_relay.common.exceptions import StoreError
from location_relay.common.logger import log_error, log_info, setup_logging
from location_relay.config import settings
from location_relay.infra.memory_store import MemoryStore
from location_relay.infra.redis_client import create_redis_store
from location_relay.infra.store import SortedSetStore
from location_relay.services.relay.connection_manager import manager
from location_relay.services.relay.service import LocationRelay
from location_relay.shared.models.common import HealthStatus
from location_relay.shared.models.location import EventBody, SubscribeRequest


# === MODELS ===

class IngestResponse(BaseModel):
    """Ответ на вебхук."""
    status: str = "ok"
    driver_id: str
    appended: bool
    delivered: int


class StatsResponse(BaseModel):
    """Статистика сервиса."""
    total_ingested: int
    total_duplicates: int
    total_delivered: int
    total_failed_deliveries: int
    total_subscriptions: int
    total_backfills: int
    total_unsubscriptions: int
    unique_drivers: int
    active_connections: int
    total_messages_sent: int


# === SERVICE SINGLETON ===

_relay: LocationRelay | None = None


def get_relay() -> LocationRelay:
    """Получить сервис."""
    if _relay is None:
        raise RuntimeError("Service not initialized")
    return _relay


async def create_store() -> SortedSetStore:
    """Хранилище по настройке STORE_BACKEND."""
    if settings.relay.STORE_BACKEND == "memory":
        await log_info("Используется хранилище в памяти", type_msg=TypeMsg.WARNING)
        return MemoryStore()
    return await create_redis_store()


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    global _relay

    setup_logging()
    store = await create_store()
    _relay = LocationRelay(
        store,
        manager.push_to_connection,
        retention_ms=settings.relay.EVENT_RETENTION_MS,
        push_timeout=settings.relay.PUSH_TIMEOUT_S,
    )
    await log_info(
        f"Location Relay запущен, подписка на {settings.deployment.SUBSCRIBE_PATH}",
        type_msg=TypeMsg.INFO,
    )

    yield

    _relay = None
    await store.close()


# === APP ===

app = FastAPI(
    title="Location Relay",
    description="Ретрансляция геолокации водителей подписчикам с догрузкой истории.",
    version=settings.system.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.deployment.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === HEALTH CHECK ===

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса."""
    store_ok = await get_relay().health_check()
    return HealthStatus(
        status="healthy" if store_ok else "degraded",
        service="location_relay",
        version=settings.system.VERSION,
        dependencies={"store": "healthy" if store_ok else "unhealthy"},
    )


# === STATS ===

@app.get("/stats", response_model=StatsResponse, tags=["Stats"])
async def get_stats() -> StatsResponse:
    """Получить статистику сервиса."""
    stats = get_relay().get_stats()
    connections = manager.get_stats()
    return StatsResponse(
        total_ingested=stats["total_ingested"],
        total_duplicates=stats["total_duplicates"],
        total_delivered=stats["total_delivered"],
        total_failed_deliveries=stats["total_failed_deliveries"],
        total_subscriptions=stats["total_subscriptions"],
        total_backfills=stats["total_backfills"],
        total_unsubscriptions=stats["total_unsubscriptions"],
        unique_drivers=stats["unique_drivers"],
        active_connections=connections["active_connections"],
        total_messages_sent=connections["total_messages_sent"],
    )


# === WEBHOOK ===

@app.post(
    "/event",
    response_model=IngestResponse,
    tags=["Location"],
    summary="Принять геолокацию водителя",
)
async def ingest_event(body: EventBody) -> IngestResponse:
    """
    Принять событие геолокации.

    Сохраняет событие в журнал водителя и рассылает подписчикам,
    у которых since <= текущего времени.
    """
    relay = get_relay()
    await log_info(
        f"Вебхук {body.event.name} для водителя {body.entity_id}",
        type_msg=TypeMsg.DEBUG,
    )

    try:
        result = await relay.ingest(body.entity_id, body.to_location_event())
    except StoreError as e:
        await log_error(f"Не удалось принять событие: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error") from e

    return IngestResponse(
        driver_id=result.entity_id,
        appended=result.appended,
        delivered=result.delivered,
    )


# === WEBSOCKET ===

@app.websocket(settings.deployment.SUBSCRIBE_PATH)
async def websocket_subscribe(websocket: WebSocket) -> None:
    """
    WebSocket подписчика.

    Каждое соединение получает свой connection_id. Закрытие сокета
    снимает подписку.
    """
    relay = get_relay()
    connection_id = uuid4().hex

    await manager.connect(websocket, connection_id)
    await manager.send_personal(connection_id, {
        "type": ServerMessage.CONNECTED.value,
        "connection_id": connection_id,
    })

    try:
        while True:
            raw = await websocket.receive_text()
            await _handle_client_message(relay, connection_id, raw)

    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(connection_id)
        try:
            await relay.on_disconnect(connection_id)
        except StoreError as e:
            await log_error(f"Не удалось очистить подписку {connection_id}: {e}")


async def _send_error(connection_id: str, action: str | None, detail: Any) -> None:
    await manager.send_personal(connection_id, {
        "type": ServerMessage.ERROR.value,
        "action": action,
        "detail": detail,
    })


async def _handle_client_message(relay: LocationRelay, connection_id: str, raw: str) -> None:
    """Обработать сообщение от клиента."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        await _send_error(connection_id, None, "Некорректный JSON")
        return

    if not isinstance(data, dict):
        await _send_error(connection_id, None, "Ожидается JSON объект")
        return

    action = data.get("action")

    if action == ClientAction.SUBSCRIBE:
        try:
            request = SubscribeRequest.model_validate(data)
        except ValidationError as e:
            detail = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
            await _send_error(connection_id, action, detail)
            return

        try:
            await relay.on_subscribe(connection_id, request.driver_id, request.since_ms)
        except StoreError as e:
            await log_error(f"Подписка {connection_id} не удалась: {e}")
            await _send_error(connection_id, action, "Хранилище недоступно")
            return

        await manager.send_personal(connection_id, {
            "type": ServerMessage.SUBSCRIBED.value,
            "driver_id": request.driver_id,
            "since": request.since_ms,
        })

    elif action == ClientAction.UNSUBSCRIBE:
        try:
            entity_id = await relay.on_unsubscribe(connection_id)
        except StoreError as e:
            await log_error(f"Отписка {connection_id} не удалась: {e}")
            await _send_error(connection_id, action, "Хранилище недоступно")
            return

        await manager.send_personal(connection_id, {
            "type": ServerMessage.UNSUBSCRIBED.value,
            "driver_id": entity_id,
        })

    elif action == ClientAction.PING:
        await manager.send_personal(connection_id, {"type": ServerMessage.PONG.value})

    else:
        await _send_error(connection_id, action, "Неизвестное действие")


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.deployment.RELAY_HOST, port=settings.deployment.RELAY_PORT)
