from __future__ import annotations

import asyncio
import random

import pytest

from dockhub.runtime import FixedWindowRateLimiter, RateLimitPolicy, compute_backoff_delay


def run_async(coro):
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    """Advances the fake clock instead of sleeping."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.now += seconds


def test_exactly_quota_admissions_per_window():
    async def scenario() -> None:
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(
            RateLimitPolicy(requests_per_window=5, window_s=60), clock=clock
        )
        results = [await limiter.check_admission("hub", "GET /x") for _ in range(6)]
        assert results == [True] * 5 + [False]

        clock.now = 59.9
        assert await limiter.check_admission("hub", "GET /x") is False

        clock.now = 60.0
        assert await limiter.check_admission("hub", "GET /x") is True

    run_async(scenario())


def test_subjects_and_upstreams_have_independent_windows():
    async def scenario() -> None:
        limiter = FixedWindowRateLimiter(
            RateLimitPolicy(requests_per_window=1, window_s=60), clock=FakeClock()
        )
        assert await limiter.check_admission("hub", "a") is True
        assert await limiter.check_admission("hub", "a") is False
        assert await limiter.check_admission("hub", "b") is True
        assert await limiter.check_admission("registry", "a") is True

    run_async(scenario())


def test_get_state_does_not_consume_quota():
    async def scenario() -> None:
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(
            RateLimitPolicy(requests_per_window=2, window_s=10), clock=clock
        )
        fresh = await limiter.get_state("hub", "a")
        assert (fresh.remaining, fresh.ms_until_reset, fresh.total) == (2, 0.0, 2)

        await limiter.check_admission("hub", "a")
        clock.now = 4.0
        snapshot = await limiter.get_state("hub", "a")
        assert snapshot.remaining == 1
        assert snapshot.ms_until_reset == pytest.approx(6000.0)
        assert (await limiter.get_state("hub", "a")).remaining == 1

    run_async(scenario())


def test_acquire_delays_until_the_window_resets():
    async def scenario() -> None:
        clock = FakeClock()
        sleep = RecordingSleep(clock)
        limiter = FixedWindowRateLimiter(
            RateLimitPolicy(requests_per_window=2, window_s=30), clock=clock, sleep=sleep
        )
        await limiter.acquire("hub", "a")
        await limiter.acquire("hub", "a")
        assert sleep.calls == []

        clock.now = 10.0
        await limiter.acquire("hub", "a")
        assert sleep.calls == [pytest.approx(20.0)]
        assert (await limiter.get_state("hub", "a")).remaining == 1

    run_async(scenario())


def test_wait_for_reset_returns_immediately_with_quota_left():
    async def scenario() -> None:
        clock = FakeClock()
        sleep = RecordingSleep(clock)
        limiter = FixedWindowRateLimiter(clock=clock, sleep=sleep)
        await limiter.check_admission("hub", "a")
        await limiter.wait_for_reset("hub", "a")
        assert sleep.calls == []

    run_async(scenario())


def test_reset_state_restores_full_quota():
    async def scenario() -> None:
        limiter = FixedWindowRateLimiter(
            RateLimitPolicy(requests_per_window=1, window_s=60), clock=FakeClock()
        )
        await limiter.check_admission("hub", "a")
        await limiter.reset_state("hub", "a")
        assert await limiter.check_admission("hub", "a") is True

    run_async(scenario())


def test_concurrent_admission_never_exceeds_quota():
    async def scenario() -> None:
        limiter = FixedWindowRateLimiter(
            RateLimitPolicy(requests_per_window=10, window_s=60), clock=FakeClock()
        )
        results = await asyncio.gather(
            *(limiter.check_admission("hub", "a") for _ in range(50))
        )
        assert sum(results) == 10

    run_async(scenario())


def test_backoff_is_non_decreasing_and_bounded():
    rng = random.Random(7)
    previous_floor = 0.0
    for attempt in range(12):
        floor = compute_backoff_delay(attempt, jitter_ms=0)
        assert floor >= previous_floor
        previous_floor = floor

        delay = compute_backoff_delay(attempt, rng=rng)
        assert floor <= delay <= 30000.0 + 1000.0

    assert compute_backoff_delay(0, jitter_ms=0) == 1000.0
    assert compute_backoff_delay(3, jitter_ms=0) == 8000.0
    assert compute_backoff_delay(20, jitter_ms=0) == 30000.0


def test_rejects_empty_quota():
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(RateLimitPolicy(requests_per_window=0))
