"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/rate_limit.py.

Fixed window admission control. A window opens on the first request for a
subject and closes ``window_s`` later; a sliding window or token bucket would
smooth bursts at window edges, which this gateway does not need.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .contracts import RateLimitPolicy

logger = logging.getLogger("dockhub.ratelimit")


@dataclass(slots=True)
class _Window:
    """Quota consumed by one subject inside the current window."""

    started_at_s: float
    consumed: int = 0


@dataclass(frozen=True, slots=True)
class RateLimitSnapshot:
    remaining: int
    ms_until_reset: float
    total: int


def compute_backoff_delay(
    attempt: int,
    *,
    base_ms: float = 1000.0,
    cap_ms: float = 30000.0,
    jitter_ms: float = 1000.0,
    rng: random.Random | None = None,
) -> float:
    """Exponential delay ``base * 2**attempt`` capped at ``cap_ms``, plus jitter."""
    exponent = max(0, attempt)
    delay = min(base_ms * (2**exponent), cap_ms)
    if jitter_ms <= 0:
        return delay
    source = rng if rng is not None else random
    return delay + source.uniform(0.0, jitter_ms)


class FixedWindowRateLimiter:
    """Concurrency-safe fixed window limiter keyed by upstream and subject."""

    def __init__(
        self,
        policy: RateLimitPolicy | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._policy = policy or RateLimitPolicy()
        if self._policy.requests_per_window < 1:
            raise ValueError("requests_per_window must be >= 1")
        self._clock = clock
        self._sleep = sleep
        self._rows: dict[str, dict[str, _Window]] = {}
        self._lock = asyncio.Lock()

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    def _window(self, upstream_id: str, subject_key: str, now: float) -> _Window:
        per_upstream = self._rows.get(upstream_id)
        if per_upstream is None:
            per_upstream = {}
            self._rows[upstream_id] = per_upstream
            logger.debug("Created rate limit state for upstream %s", upstream_id)
        window = per_upstream.get(subject_key)
        if window is None or now - window.started_at_s >= self._policy.window_s:
            window = _Window(started_at_s=now)
            per_upstream[subject_key] = window
        return window

    def _snapshot(self, window: _Window | None, now: float) -> RateLimitSnapshot:
        total = self._policy.requests_per_window
        if window is None or now - window.started_at_s >= self._policy.window_s:
            return RateLimitSnapshot(remaining=total, ms_until_reset=0.0, total=total)
        reset_in_s = window.started_at_s + self._policy.window_s - now
        return RateLimitSnapshot(
            remaining=max(0, total - window.consumed),
            ms_until_reset=max(0.0, reset_in_s * 1000.0),
            total=total,
        )

    async def check_admission(self, upstream_id: str, subject_key: str) -> bool:
        """Consume one unit of quota; ``False`` when the window is exhausted."""
        async with self._lock:
            now = self._clock()
            window = self._window(upstream_id, subject_key, now)
            if window.consumed >= self._policy.requests_per_window:
                snapshot = self._snapshot(window, now)
                logger.warning(
                    "Rate limit exceeded for %s (%s), reset in %.0fms",
                    upstream_id,
                    subject_key,
                    snapshot.ms_until_reset,
                )
                return False
            window.consumed += 1
            logger.debug(
                "Rate limit admission for %s: %d remaining",
                upstream_id,
                self._policy.requests_per_window - window.consumed,
            )
            return True

    async def get_state(self, upstream_id: str, subject_key: str) -> RateLimitSnapshot:
        async with self._lock:
            window = self._rows.get(upstream_id, {}).get(subject_key)
            return self._snapshot(window, self._clock())

    async def wait_for_reset(self, upstream_id: str, subject_key: str) -> None:
        """Suspend until the current window closes, when its quota is spent."""
        snapshot = await self.get_state(upstream_id, subject_key)
        if snapshot.remaining == 0 and snapshot.ms_until_reset > 0:
            logger.info(
                "Waiting %.0fms for rate limit reset on %s",
                snapshot.ms_until_reset,
                upstream_id,
            )
            await self._sleep(snapshot.ms_until_reset / 1000.0)

    async def acquire(self, upstream_id: str, subject_key: str) -> None:
        """Admit one request, delaying (never dropping) it while over quota."""
        while not await self.check_admission(upstream_id, subject_key):
            await self.wait_for_reset(upstream_id, subject_key)

    async def reset_state(self, upstream_id: str, subject_key: str) -> None:
        async with self._lock:
            self._rows.get(upstream_id, {}).pop(subject_key, None)
        logger.debug("Rate limit reset for %s (%s)", upstream_id, subject_key)

    def stats(self) -> dict[str, dict[str, int | float]]:
        return {
            upstream_id: {
                "subjects": len(rows),
                "requests_per_window": self._policy.requests_per_window,
                "window_s": self._policy.window_s,
            }
            for upstream_id, rows in self._rows.items()
        }
