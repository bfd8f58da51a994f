"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Typed runtime policies for upstream request execution.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry semantics for one upstream request path."""

    max_attempts: int = 3
    backoff_base_ms: float = 1000.0
    backoff_cap_ms: float = 30000.0
    jitter_ms: float = 1000.0
    default_retry_after_s: float = 60.0


@dataclass(frozen=True, slots=True)
class TimeoutPolicy:
    """Timeout applied to every upstream HTTP call."""

    request_timeout_s: float = 30.0
    login_timeout_s: float = 10.0


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """Fixed window quota applied per upstream and subject key."""

    requests_per_window: int = 60
    window_s: float = 60.0
