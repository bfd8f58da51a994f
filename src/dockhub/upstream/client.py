"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Resilient HTTP client for one upstream REST API.

Request pipeline for ``fetch``: cache lookup, rate-limit admission,
authenticated call under the retry matrix, cache population.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from .. import __version__
from ..cache import HubCacheBackend, OperationClass
from ..errors import HubAuthenticationError, HubUnknownError, error_for_status
from ..runtime import FixedWindowRateLimiter, RetryPolicy, TimeoutPolicy, attempt_with_retry
from .credentials import CredentialKind, TokenCache, UpstreamCredential

logger = logging.getLogger("dockhub.upstream")

USER_AGENT = f"dockhub-mcp/{__version__}"


@dataclass(frozen=True, slots=True)
class UpstreamConfig:
    """
    One upstream REST API.

    Attributes:
        name: Upstream identity; keys the rate-limit windows.
        base_url: Root URL every request path is resolved against.
        credential: Credential material for this upstream.
        auth_style: ``bearer`` sends a (derived) token; ``basic`` sends
            registry-style Basic credentials.
        accept: ``Accept`` header sent with each request.
        login_url: Absolute URL exchanging username/password for a token.
    """

    name: str
    base_url: str
    credential: UpstreamCredential = field(default_factory=UpstreamCredential)
    auth_style: Literal["bearer", "basic"] = "bearer"
    accept: str = "application/json"
    login_url: str | None = None


class UpstreamClient:
    """Cached, rate-limited, retrying JSON client for one upstream."""

    def __init__(
        self,
        config: UpstreamConfig,
        *,
        cache: HubCacheBackend | None = None,
        rate_limiter: FixedWindowRateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_policy: TimeoutPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        token_cache: TokenCache | None = None,
    ) -> None:
        self._config = config
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._retry_policy = retry_policy or RetryPolicy()
        self._timeout_policy = timeout_policy or TimeoutPolicy()
        self._sleep = sleep
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=self._timeout_policy.request_timeout_s,
        )
        self._tokens = token_cache or TokenCache(config.credential, login=self._login)

        logger.info(
            "Upstream client initialized: %s (%s, auth=%s)",
            config.name,
            config.base_url,
            config.credential.kind.value,
        )

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> UpstreamConfig:
        return self._config

    @property
    def cache(self) -> HubCacheBackend | None:
        return self._cache

    async def fetch(
        self,
        method: str,
        path: str,
        *,
        operation: OperationClass | str = OperationClass.IMAGE_DETAILS,
        cache_key: str | None = None,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
    ) -> Any:
        """
        Return the decoded JSON body for one upstream request.

        A cache hit returns before rate-limit admission, so cached answers
        never consume upstream quota. Failures left after the retry matrix
        propagate as ``HubError`` subclasses.
        """
        method = method.upper()
        if cache_key is not None:
            cached = await self.lookup_cached(cache_key)
            if cached is not None:
                return cached

        await self._admit(f"{self._config.name}:{method}:{path}")

        data = await attempt_with_retry(
            lambda: self._send(method, path, params=params, json_body=json_body),
            self._retry_policy,
            sleep=self._sleep,
        )

        if cache_key is not None and data is not None:
            await self.store_cached(cache_key, data, operation)
        return data

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None,
        json_body: Any,
    ) -> Any:
        headers = {"Accept": self._config.accept, "User-Agent": USER_AGENT}
        authorization = await self._authorization()
        if authorization:
            headers["Authorization"] = authorization

        started = time.perf_counter()
        try:
            response = await self._http.request(
                method,
                self._url(path),
                params=dict(params) if params else None,
                json=json_body,
                headers=headers,
                timeout=self._timeout_policy.request_timeout_s,
            )
        except httpx.HTTPError as e:
            logger.warning(
                "%s %s failed after %.0fms: %s",
                method,
                path,
                (time.perf_counter() - started) * 1000.0,
                type(e).__name__,
            )
            raise
        logger.info(
            "%s %s -> %d (%.0fms)",
            method,
            path,
            response.status_code,
            (time.perf_counter() - started) * 1000.0,
        )

        if response.status_code >= 400:
            error = error_for_status(
                response.status_code,
                method=method,
                path=path,
                retry_after=response.headers.get("retry-after"),
            )
            if (
                isinstance(error, HubAuthenticationError)
                and authorization
                and authorization.startswith("Bearer ")
                and self._config.credential.kind is CredentialKind.USERNAME_PASSWORD
            ):
                self._tokens.invalidate(authorization[len("Bearer "):])
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise HubUnknownError(
                f"{method} {path} returned a non-JSON body", status=response.status_code
            ) from e

    def _url(self, path: str) -> str:
        return f"{self._config.base_url.rstrip('/')}{path}"

    async def _authorization(self) -> str | None:
        credential = self._config.credential
        if credential.kind is CredentialKind.NONE:
            return None
        if self._config.auth_style == "basic":
            return credential.basic_header()
        try:
            token = await self._tokens.acquire()
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "Failed to get bearer token for %s, proceeding without auth: %s",
                self._config.name,
                type(e).__name__,
            )
            return None
        return f"Bearer {token}" if token else None

    async def _login(self, username: str, password: str) -> str:
        if not self._config.login_url:
            raise HubAuthenticationError(
                f"Upstream '{self._config.name}' has no login endpoint"
            )
        response = await self._http.post(
            self._config.login_url,
            json={"username": username, "password": password},
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
            timeout=self._timeout_policy.login_timeout_s,
        )
        if response.status_code >= 400:
            raise error_for_status(
                response.status_code, method="POST", path=response.request.url.path
            )
        token = response.json().get("token") if response.content else None
        if not isinstance(token, str) or not token:
            raise HubAuthenticationError("Invalid response from auth endpoint")
        return token

    async def _admit(self, subject_key: str) -> None:
        if self._rate_limiter is None:
            return
        try:
            await self._rate_limiter.acquire(self._config.name, subject_key)
        except Exception as e:  # noqa: BLE001
            logger.error("Rate limiter failed, admitting request: %s", e)

    async def lookup_cached(self, key: str) -> Any | None:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(key)
        except Exception as e:  # noqa: BLE001
            logger.error("Cache lookup failed, treating as miss: %s", e)
            return None

    async def store_cached(self, key: str, value: Any, operation: OperationClass | str) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set_with_operation_policy(key, value, operation)
        except Exception as e:  # noqa: BLE001
            logger.error("Cache store failed, continuing uncached: %s", e)
