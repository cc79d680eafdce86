"""
Инфраструктура: хранилища журнала событий и реестра подписчиков.
"""

from location_relay.infra.memory_store import MemoryStore
from location_relay.infra.redis_client import RedisClient
from location_relay.infra.store import SortedSetStore

__all__ = ["MemoryStore", "RedisClient", "SortedSetStore"]
