"""
Менеджер WebSocket соединений подписчиков.
Реализует отправку сообщений конкретному соединению (pushToConnection).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence

from fastapi import WebSocket

from location_relay.common.exceptions import DeliveryError
from location_relay.config import settings
from location_relay.shared.models.location import LocationEvent


@dataclass
class ConnectionInfo:
    """Информация о соединении."""
    websocket: WebSocket
    connection_id: str
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectionManager:
    """
    Менеджер WebSocket соединений.

    Поддерживает:
    - Подключение/отключение клиентов
    - Push геолокации (одно событие или пачка истории)
    - Служебные сообщения клиенту
    """

    def __init__(self, event_name: str = "driver_location") -> None:
        # connection_id -> ConnectionInfo
        self._connections: dict[str, ConnectionInfo] = {}
        self._event_name = event_name

        # Для статистики
        self._total_connections: int = 0
        self._total_messages_sent: int = 0
        self._total_send_failures: int = 0

    @property
    def active_connections(self) -> int:
        """Количество активных соединений."""
        return len(self._connections)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    async def connect(self, websocket: WebSocket, connection_id: str) -> None:
        """Принять соединение."""
        await websocket.accept()

        self._connections[connection_id] = ConnectionInfo(
            websocket=websocket,
            connection_id=connection_id,
        )
        self._total_connections += 1

    async def disconnect(self, connection_id: str) -> None:
        """Забыть соединение. Повторный вызов ничего не делает."""
        self._connections.pop(connection_id, None)

    async def push_to_connection(
        self,
        connection_id: str,
        payload: LocationEvent | Sequence[LocationEvent],
    ) -> None:
        """
        Отправить геолокацию соединению.

        Raises:
            DeliveryError: соединения нет или отправка не удалась
        """
        if isinstance(payload, LocationEvent):
            data: Any = payload.model_dump()
        else:
            data = [event.model_dump() for event in payload]

        await self._send(connection_id, {"event": self._event_name, "data": data})

    async def send_personal(self, connection_id: str, message: dict[str, Any]) -> bool:
        """
        Отправить служебное сообщение соединению.

        Returns:
            True если сообщение отправлено, False если соединения нет
        """
        try:
            await self._send(connection_id, message)
        except DeliveryError:
            return False
        return True

    async def _send(self, connection_id: str, message: dict[str, Any]) -> None:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise DeliveryError(connection_id, "соединение не найдено")

        try:
            await conn.websocket.send_json(message)
        except Exception as e:
            # Соединение разорвано
            self._total_send_failures += 1
            await self.disconnect(connection_id)
            raise DeliveryError(connection_id, str(e)) from e

        self._total_messages_sent += 1

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._connections),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
            "total_send_failures": self._total_send_failures,
        }


# Глобальный экземпляр
manager = ConnectionManager(event_name=settings.relay.PUSH_EVENT_NAME)
