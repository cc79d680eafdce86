"""
Жизненный цикл сессий подписчиков.
"""

from location_relay.core.sessions.service import BindResult, SessionManager

__all__ = [
    "BindResult",
    "SessionManager",
]
