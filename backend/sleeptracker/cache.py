import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)


# Concurrent misses for one key share a single computation. Entries only expire; ttl <= 0 disables caching
class TTLCache:
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._pending: dict[Hashable, asyncio.Task] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    async def get_or_compute(self, key: Hashable, compute: Callable[[], Awaitable[Any]]) -> Any:
        if not self.enabled:
            return await compute()

        entry = self._entries.get(key)
        if entry is not None and entry[0] > self._clock():
            logger.debug("Cache hit for key: %s", key)
            return entry[1]

        task = self._pending.get(key)
        if task is None:
            logger.debug("Cache miss for key: %s", key)
            task = asyncio.ensure_future(self._fill(key, compute))
            self._pending[key] = task
        # shield: a cancelled waiter must not cancel the computation others wait on
        return await asyncio.shield(task)

    async def _fill(self, key: Hashable, compute: Callable[[], Awaitable[Any]]) -> Any:
        try:
            value = await compute()
            now = self._clock()
            # Day-bucketed keys never come back once their day is over
            for stale in [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]:
                del self._entries[stale]
            self._entries[key] = (now + self.ttl_seconds, value)
            return value
        finally:
            self._pending.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._entries)
