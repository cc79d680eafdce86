"""
Абстракция хранилища для журнала событий, реестра подписчиков и индекса соединений.

Модель данных повторяет Redis:
- {entity_id}:events — sorted set, score = timestamp события, member = JSON события
- {entity_id}:subs — sorted set, score = since подписчика, member = connection_id
- {connection_id}:entity — строка с entity_id
"""

from __future__ import annotations

from abc import ABC, abstractmethod

# Границы диапазона: число либо -inf / +inf
ScoreBound = int | float


def events_key(entity_id: str) -> str:
    """Ключ журнала событий водителя."""
    return f"{entity_id}:events"


def subscribers_key(entity_id: str) -> str:
    """Ключ реестра подписчиков водителя."""
    return f"{entity_id}:subs"


def connection_key(connection_id: str) -> str:
    """Ключ привязки соединения к водителю."""
    return f"{connection_id}:entity"


class SortedSetStore(ABC):
    """
    Хранилище с упорядоченными множествами и строковыми ключами.

    Любой сбой хранилища реализации оборачивают в StoreError.
    """

    @abstractmethod
    async def zadd(self, key: str, score: int, member: str, *, nx: bool = False) -> int:
        """
        Добавляет элемент в sorted set.

        Args:
            nx: Не трогать уже существующий элемент

        Returns:
            Количество добавленных элементов (0 или 1)
        """

    @abstractmethod
    async def zrangebyscore(self, key: str, min_score: ScoreBound, max_score: ScoreBound) -> list[str]:
        """Элементы с min_score <= score <= max_score по возрастанию score."""

    @abstractmethod
    async def zscore(self, key: str, member: str) -> float | None:
        """Score элемента или None."""

    @abstractmethod
    async def zrem(self, key: str, member: str) -> int:
        """Удаляет элемент, возвращает количество удалённых."""

    @abstractmethod
    async def zremrangebyscore(self, key: str, min_score: ScoreBound, max_score: ScoreBound) -> int:
        """Удаляет элементы в диапазоне score, возвращает количество удалённых."""

    @abstractmethod
    async def zcard(self, key: str) -> int:
        """Размер sorted set."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Получает строковое значение."""

    @abstractmethod
    async def set(self, key: str, value: str) -> bool:
        """Устанавливает строковое значение."""

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Удаляет ключ."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Доступно ли хранилище."""

    async def close(self) -> None:
        """Освобождает ресурсы хранилища."""
