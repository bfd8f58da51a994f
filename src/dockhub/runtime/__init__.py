"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/__init__.py.
"""

from .contracts import RateLimitPolicy, RetryPolicy, TimeoutPolicy
from .rate_limit import FixedWindowRateLimiter, RateLimitSnapshot, compute_backoff_delay
from .retry import attempt_with_retry

__all__ = [
    "RetryPolicy",
    "TimeoutPolicy",
    "RateLimitPolicy",
    "FixedWindowRateLimiter",
    "RateLimitSnapshot",
    "compute_backoff_delay",
    "attempt_with_retry",
]
