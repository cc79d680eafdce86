"""
Исключения сервиса ретрансляции.

- StoreError — хранилище недоступно, пробрасывается вызывающему
- DeliveryError — не удалось отправить сообщение соединению,
  гасится на уровне отдельного получателя
"""

from __future__ import annotations


class RelayError(Exception):
    """Базовое исключение сервиса."""


class StoreError(RelayError):
    """Хранилище недоступно или вернуло ошибку."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Ошибка хранилища при {operation}: {reason}")


class DeliveryError(RelayError):
    """Не удалось доставить сообщение соединению."""

    def __init__(self, connection_id: str, reason: str) -> None:
        self.connection_id = connection_id
        self.reason = reason
        super().__init__(f"Доставка в {connection_id} не удалась: {reason}")
