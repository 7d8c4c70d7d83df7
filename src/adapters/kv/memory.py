"""
In-memory key-value adapter - Implements KeyValueStore protocol.

For local development and tests only: state lives in the process, so it
is not shared between workers. Every operation completes without
awaiting, which makes each one atomic on a single event loop.
"""

import time
from collections.abc import Callable


class InMemoryKeyValueStore:
    """Dict-backed KeyValueStore with lazy TTL expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize an empty store.

        Args:
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def replace_with_ttl(self, key: str, value: str, ttl_seconds: int) -> str | None:
        previous = self._live(key)
        self._data[key] = (value, self._clock() + ttl_seconds)
        return previous

    async def get_and_delete(self, key: str) -> str | None:
        value = self._live(key)
        self._data.pop(key, None)
        return value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        """Number of live keys."""
        return sum(1 for key in list(self._data) if self._live(key) is not None)
