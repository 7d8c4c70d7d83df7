"""Key-value store adapters - Ephemeral token storage."""

from .memory import InMemoryKeyValueStore
from .redis_store import RedisKeyValueStore

__all__ = ["InMemoryKeyValueStore", "RedisKeyValueStore"]
