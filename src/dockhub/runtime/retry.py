"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/retry.py.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..errors import HubError, HubRateLimitedError, classify_error
from .contracts import RetryPolicy
from .rate_limit import compute_backoff_delay

T = TypeVar("T")

logger = logging.getLogger("dockhub.retry")

DelayFn = Callable[[int, RetryPolicy], float]


def default_delay_ms(server_failures: int, policy: RetryPolicy) -> float:
    return compute_backoff_delay(
        server_failures,
        base_ms=policy.backoff_base_ms,
        cap_ms=policy.backoff_cap_ms,
        jitter_ms=policy.jitter_ms,
    )


async def attempt_with_retry(
    action: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    delay_fn: DelayFn = default_delay_ms,
) -> T:
    """
    Run ``action`` under the upstream retry matrix.

    - 429: wait ``Retry-After`` (or the policy default) and retry; the
      exponential schedule does not advance.
    - 5xx and connection failures: wait ``delay_fn(n)`` where ``n`` counts
      server failures so far, then retry.
    - anything else, including 401/403 and 404: raised immediately.

    Every attempt counts toward ``policy.max_attempts``. No wait follows the
    final attempt; the last classified error is raised.
    """
    attempts = max(1, policy.max_attempts)
    server_failures = 0
    last: HubError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await action()
        except Exception as error:
            classified = classify_error(error)
            last = classified
            if not classified.retryable or attempt >= attempts:
                if classified is error:
                    raise
                raise classified from error

            if isinstance(classified, HubRateLimitedError):
                wait_s = (
                    classified.retry_after_s
                    if classified.retry_after_s is not None
                    else policy.default_retry_after_s
                )
                logger.warning(
                    "Rate limited by upstream (attempt %d/%d), waiting %.0fms",
                    attempt,
                    attempts,
                    wait_s * 1000.0,
                )
            else:
                server_failures += 1
                wait_s = delay_fn(server_failures, policy) / 1000.0
                logger.warning(
                    "Retrying after upstream failure (attempt %d/%d, status=%s), waiting %.0fms",
                    attempt,
                    attempts,
                    classified.status,
                    wait_s * 1000.0,
                )
            await sleep(wait_s)
    raise HubError("Retry loop exhausted") from last
