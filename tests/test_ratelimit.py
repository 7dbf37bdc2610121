from __future__ import annotations

import asyncio

import pytest

from wolog.webmention.ratelimit import TokenBucket


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_burst_up_to_capacity_then_refill() -> None:
    clock = FakeClock()
    bucket = TokenBucket(capacity=3, refill_per_second=1.0, clock=clock)

    async def take(n: int) -> None:
        for _ in range(n):
            await bucket.acquire()

    asyncio.run(take(3))
    assert bucket.available == 0

    clock.now = 2.0
    assert bucket.available == 2

    clock.now = 100.0
    assert bucket.available == 3


def test_acquire_waits_for_refill() -> None:
    bucket = TokenBucket(capacity=1, refill_per_second=50.0)

    async def take_two() -> float:
        loop = asyncio.get_running_loop()
        await bucket.acquire()
        start = loop.time()
        await bucket.acquire()
        return loop.time() - start

    assert asyncio.run(take_two()) >= 0.01


def test_invalid_parameters() -> None:
    with pytest.raises(ValueError):
        TokenBucket(capacity=0, refill_per_second=1.0)
    with pytest.raises(ValueError):
        TokenBucket(capacity=1, refill_per_second=0)
