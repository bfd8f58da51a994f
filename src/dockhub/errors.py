"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy shared by the upstream client, operations and RPC front end.
"""

from __future__ import annotations

import asyncio
import socket

import httpx


class HubError(RuntimeError):
    """Base error for every failure raised by dockhub."""

    kind = "unknown"
    retryable = False

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class HubAuthenticationError(HubError):
    """Upstream rejected the request with 401/403."""

    kind = "authentication"


class HubRateLimitedError(HubError):
    """Upstream answered 429; ``retry_after_s`` is taken from ``Retry-After``."""

    kind = "rate_limited"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        status: int | None = 429,
        retry_after_s: float | None = None,
    ) -> None:
        super().__init__(message, status=status)
        self.retry_after_s = retry_after_s


class HubServerError(HubError):
    """5xx answers and connection-class failures (reset, timeout)."""

    kind = "server_error"
    retryable = True


class HubNotFoundError(HubError):
    kind = "not_found"


class HubValidationError(HubError):
    """Malformed caller input, raised before any network activity."""

    kind = "validation"


class HubUnknownError(HubError):
    kind = "unknown"


class HubConfigError(HubError):
    """Raised when settings fail validation at startup."""

    kind = "config"


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return max(0.0, seconds)


def error_for_status(
    status: int,
    *,
    method: str,
    path: str,
    retry_after: str | None = None,
) -> HubError:
    """Build the taxonomy error matching one upstream HTTP status."""
    message = f"{method} {path} failed with HTTP {status}"
    if status in (401, 403):
        return HubAuthenticationError(message, status=status)
    if status == 404:
        return HubNotFoundError(message, status=status)
    if status == 429:
        return HubRateLimitedError(
            message,
            status=status,
            retry_after_s=_parse_retry_after(retry_after),
        )
    if status >= 500:
        return HubServerError(message, status=status)
    return HubUnknownError(message, status=status)


def classify_error(error: Exception) -> HubError:
    """Classify exceptions into retryable/non-retryable dockhub errors."""
    if isinstance(error, HubError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        request = error.request
        return error_for_status(
            error.response.status_code,
            method=request.method,
            path=request.url.path,
            retry_after=error.response.headers.get("retry-after"),
        )
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, socket.timeout)):
        return HubServerError(f"Upstream timed out: {error}")
    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return HubServerError(f"Upstream connection failed: {error}")
    return HubUnknownError(str(error) or type(error).__name__)
