import pytest

from app.features.partner_suggestions.pipeline.dispatch import TokenBucketRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_burst_is_served_without_waiting():
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(1.0, burst=3, clock=clock, sleep=clock.sleep)

    waits = [await limiter.acquire() for _ in range(3)]

    assert waits == [0.0, 0.0, 0.0]
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_waits_for_refill_once_bucket_is_empty():
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(2.0, burst=1, clock=clock, sleep=clock.sleep)

    await limiter.acquire()
    waited = await limiter.acquire()

    assert waited == pytest.approx(0.5)
    assert limiter.stats()["acquired"] == 2


@pytest.mark.asyncio
async def test_elapsed_time_refills_tokens():
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(1.0, burst=1, clock=clock, sleep=clock.sleep)

    await limiter.acquire()
    clock.now += 5.0
    waited = await limiter.acquire()

    assert waited == 0.0


@pytest.mark.asyncio
async def test_zero_rate_disables_limiting():
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(0, clock=clock, sleep=clock.sleep)

    for _ in range(10):
        await limiter.acquire()

    assert limiter.enabled is False
    assert clock.sleeps == []
