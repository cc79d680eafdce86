"""
Хранилище в памяти процесса.

Используется в тестах и при одиночном запуске без Redis (STORE_BACKEND=memory).
Семантика sorted set совпадает с Redis: элементы упорядочены по (score, member).
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right, insort

from location_relay.infra.store import ScoreBound, SortedSetStore


class _SortedSet:
    """Sorted set: список (score, member) по возрастанию и словарь member -> score."""

    __slots__ = ("entries", "scores")

    def __init__(self) -> None:
        self.entries: list[tuple[float, str]] = []
        self.scores: dict[str, float] = {}

    def add(self, score: float, member: str) -> None:
        insort(self.entries, (score, member))
        self.scores[member] = score

    def remove(self, member: str) -> bool:
        score = self.scores.pop(member, None)
        if score is None:
            return False
        index = bisect_left(self.entries, (score, member))
        del self.entries[index]
        return True

    def bounds(self, min_score: ScoreBound, max_score: ScoreBound) -> tuple[int, int]:
        # Ключи бисекции сравниваются только по score
        start = bisect_left(self.entries, min_score, key=lambda entry: entry[0])
        stop = bisect_right(self.entries, max_score, key=lambda entry: entry[0])
        return start, stop


class MemoryStore(SortedSetStore):
    """Реализация SortedSetStore на словарях в памяти."""

    def __init__(self) -> None:
        self._sorted_sets: dict[str, _SortedSet] = {}
        self._values: dict[str, str] = {}

    async def zadd(self, key: str, score: int, member: str, *, nx: bool = False) -> int:
        sorted_set = self._sorted_sets.setdefault(key, _SortedSet())
        if member in sorted_set.scores:
            if not nx:
                sorted_set.remove(member)
                sorted_set.add(float(score), member)
            return 0
        sorted_set.add(float(score), member)
        return 1

    async def zrangebyscore(self, key: str, min_score: ScoreBound, max_score: ScoreBound) -> list[str]:
        sorted_set = self._sorted_sets.get(key)
        if sorted_set is None or min_score > max_score:
            return []
        start, stop = sorted_set.bounds(min_score, max_score)
        return [member for _, member in sorted_set.entries[start:stop]]

    async def zscore(self, key: str, member: str) -> float | None:
        sorted_set = self._sorted_sets.get(key)
        if sorted_set is None:
            return None
        return sorted_set.scores.get(member)

    async def zrem(self, key: str, member: str) -> int:
        sorted_set = self._sorted_sets.get(key)
        if sorted_set is None or not sorted_set.remove(member):
            return 0
        if not sorted_set.entries:
            del self._sorted_sets[key]
        return 1

    async def zremrangebyscore(self, key: str, min_score: ScoreBound, max_score: ScoreBound) -> int:
        sorted_set = self._sorted_sets.get(key)
        if sorted_set is None or min_score > max_score:
            return 0
        start, stop = sorted_set.bounds(min_score, max_score)
        removed = sorted_set.entries[start:stop]
        del sorted_set.entries[start:stop]
        for _, member in removed:
            del sorted_set.scores[member]
        if not sorted_set.entries:
            del self._sorted_sets[key]
        return len(removed)

    async def zcard(self, key: str) -> int:
        sorted_set = self._sorted_sets.get(key)
        return len(sorted_set.entries) if sorted_set else 0

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._values[key] = value
        return True

    async def delete(self, key: str) -> int:
        removed = 0
        if self._values.pop(key, None) is not None:
            removed += 1
        if self._sorted_sets.pop(key, None) is not None:
            removed += 1
        return removed

    async def health_check(self) -> bool:
        return True

    def keys(self) -> set[str]:
        """Все существующие ключи (для диагностики и тестов)."""
        return set(self._values) | set(self._sorted_sets)
