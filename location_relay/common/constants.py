"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class SessionState(str, Enum):
    """Состояние сессии подписчика."""
    UNBOUND = "unbound"
    BOUND = "bound"


class ClientAction(str, Enum):
    """Действия, которые клиент присылает по WebSocket."""
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"


class ServerMessage(str, Enum):
    """Служебные ответы сервера по WebSocket."""
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    PONG = "pong"
    ERROR = "error"


# Предел ожидания одной отправки подписчику, секунды
DEFAULT_PUSH_TIMEOUT_S = 5.0
