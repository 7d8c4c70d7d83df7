"""
Redis key-value adapter - Implements KeyValueStore protocol.

Uses redis-py's asyncio client over a BlockingConnectionPool so an
exhausted pool waits at most ``timeout_seconds`` before failing. Every
socket operation carries the same short timeout.

Atomicity relies on single Redis commands:
- ``SET key value EX ttl GET`` for replace (Redis >= 6.2)
- ``GETDEL key`` for get-and-delete (Redis >= 6.2)

Any redis error (unreachable, timed out, pool exhausted) is raised to the
domain as StoreUnavailable.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from redis.asyncio import BlockingConnectionPool, Redis
from redis.exceptions import RedisError

from src.domain.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def _unavailable(action: str) -> Iterator[None]:
    try:
        yield
    except (RedisError, OSError) as e:
        logger.error("Key-value store error while trying to %s: %s", action, e)
        raise StoreUnavailable(
            f"Key-value store unavailable while trying to {action}", cause=e
        ) from e


class RedisKeyValueStore:
    """
    Implements KeyValueStore protocol via redis.asyncio.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, client: Redis) -> None:
        """
        Initialize store with a Redis client.

        Args:
            client: redis.asyncio client created with ``decode_responses=True``
        """
        self._client = client

    @classmethod
    def from_url(
        cls, url: str, *, max_connections: int = 20, timeout_seconds: float = 0.5
    ) -> "RedisKeyValueStore":
        """Create a store with a bounded, timed connection pool."""
        pool = BlockingConnectionPool.from_url(
            url,
            max_connections=max_connections,
            timeout=timeout_seconds,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
            decode_responses=True,
        )
        return cls(Redis(connection_pool=pool))

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        with _unavailable("store key"):
            await self._client.set(key, value, ex=ttl_seconds)

    async def replace_with_ttl(self, key: str, value: str, ttl_seconds: int) -> str | None:
        with _unavailable("replace key"):
            return await self._client.set(key, value, ex=ttl_seconds, get=True)

    async def get_and_delete(self, key: str) -> str | None:
        with _unavailable("consume key"):
            return await self._client.getdel(key)

    async def delete(self, key: str) -> None:
        with _unavailable("delete key"):
            await self._client.delete(key)

    async def ping(self) -> None:
        with _unavailable("ping"):
            await self._client.ping()

    async def close(self) -> None:
        await self._client.aclose()
