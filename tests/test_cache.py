import asyncio

import pytest

from sleeptracker.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def test_concurrent_misses_share_one_computation():
    cache = TTLCache(60)
    release = asyncio.Event()
    calls = 0

    async def compute():
        nonlocal calls
        calls += 1
        await release.wait()
        return ["feed"]

    waiters = [asyncio.ensure_future(cache.get_or_compute(("alice", "2026-10-18"), compute)) for _ in range(5)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*waiters)

    assert calls == 1
    assert all(result is results[0] for result in results)


async def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(3600, clock=clock)
    values = iter(["first", "second"])

    async def compute():
        return next(values)

    assert await cache.get_or_compute("key", compute) == "first"
    clock.now += 3599
    assert await cache.get_or_compute("key", compute) == "first"
    clock.now += 1
    assert await cache.get_or_compute("key", compute) == "second"


async def test_keys_are_independent():
    cache = TTLCache(60)

    async def alice():
        return "alice-feed"

    async def bob():
        return "bob-feed"

    assert await cache.get_or_compute((1, "2026-10-18"), alice) == "alice-feed"
    assert await cache.get_or_compute((2, "2026-10-18"), bob) == "bob-feed"
    assert len(cache) == 2


async def test_zero_ttl_disables_caching():
    cache = TTLCache(0)
    calls = 0

    async def compute():
        nonlocal calls
        calls += 1
        return calls

    assert await cache.get_or_compute("key", compute) == 1
    assert await cache.get_or_compute("key", compute) == 2
    assert len(cache) == 0


async def test_failures_are_not_cached():
    cache = TTLCache(60)
    attempts = 0

    async def flaky():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("database went away")
        return "ok"

    with pytest.raises(RuntimeError):
        await cache.get_or_compute("key", flaky)
    assert await cache.get_or_compute("key", flaky) == "ok"
    assert attempts == 2


async def test_cancelled_waiter_does_not_cancel_shared_computation():
    cache = TTLCache(60)
    release = asyncio.Event()

    async def compute():
        await release.wait()
        return "feed"

    first = asyncio.ensure_future(cache.get_or_compute("key", compute))
    await asyncio.sleep(0)
    second = asyncio.ensure_future(cache.get_or_compute("key", compute))
    await asyncio.sleep(0)

    first.cancel()
    release.set()

    assert await second == "feed"
    with pytest.raises(asyncio.CancelledError):
        await first
    assert len(cache) == 1
