"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Upstream credentials and the per-client derived token cache.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from ..settings import RegistryConfig

logger = logging.getLogger("dockhub.upstream.auth")

TOKEN_TTL_S = 3600.0


class CredentialKind(str, Enum):
    TOKEN = "token"
    USERNAME_PASSWORD = "username_password"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class UpstreamCredential:
    """Immutable credential material for one configured upstream."""

    kind: CredentialKind = CredentialKind.NONE
    token: str | None = field(default=None, repr=False)
    username: str | None = None
    password: str | None = field(default=None, repr=False)

    @staticmethod
    def anonymous() -> "UpstreamCredential":
        return UpstreamCredential()

    @staticmethod
    def from_token(token: str) -> "UpstreamCredential":
        return UpstreamCredential(kind=CredentialKind.TOKEN, token=token)

    @staticmethod
    def from_login(username: str, password: str) -> "UpstreamCredential":
        return UpstreamCredential(
            kind=CredentialKind.USERNAME_PASSWORD, username=username, password=password
        )

    @staticmethod
    def from_registry(registry: RegistryConfig) -> "UpstreamCredential":
        """Username/password wins over a token, matching settings precedence."""
        if registry.username and registry.password:
            return UpstreamCredential.from_login(registry.username, registry.password)
        if registry.token:
            return UpstreamCredential.from_token(registry.token)
        return UpstreamCredential.anonymous()

    def basic_header(self) -> str | None:
        """Registry-style Basic header; tokens authenticate as user ``oauth2``."""
        if self.kind is CredentialKind.TOKEN and self.token:
            raw = f"oauth2:{self.token}"
        elif self.kind is CredentialKind.USERNAME_PASSWORD and self.username and self.password:
            raw = f"{self.username}:{self.password}"
        else:
            return None
        return "Basic " + base64.b64encode(raw.encode("utf-8")).decode("ascii")


LoginFn = Callable[[str, str], Awaitable[str]]


class TokenCache:
    """
    Bearer token lifecycle for one upstream client.

    Tokens are used verbatim. Username/password credentials are exchanged
    through ``login`` once and the derived token is reused until it expires,
    then refreshed on the next request.
    """

    def __init__(
        self,
        credential: UpstreamCredential,
        *,
        login: LoginFn | None = None,
        ttl_s: float = TOKEN_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._credential = credential
        self._login = login
        self._ttl_s = ttl_s
        self._clock = clock
        self._token: str | None = None
        self._expires_at_s = 0.0
        self._dropped_at_s: float | None = None
        self._lock = asyncio.Lock()

    @property
    def credential(self) -> UpstreamCredential:
        return self._credential

    def invalidate(self, token: str | None = None) -> bool:
        """
        Drop the derived token after an authentication failure.

        Ignored when ``token`` is not the current token, or when a token was
        already dropped within the last token lifetime, so a resource that
        keeps answering 401 costs at most one extra login per lifetime.
        """
        if self._token is None or (token is not None and token != self._token):
            return False
        now = self._clock()
        if self._dropped_at_s is not None and now - self._dropped_at_s < self._ttl_s:
            return False
        self._token = None
        self._expires_at_s = 0.0
        self._dropped_at_s = now
        logger.debug("Bearer token dropped after authentication failure")
        return True

    async def acquire(self) -> str | None:
        cred = self._credential
        if cred.kind is CredentialKind.NONE:
            return None
        if cred.kind is CredentialKind.TOKEN:
            return cred.token

        if self._token is not None and self._clock() < self._expires_at_s:
            return self._token
        async with self._lock:
            if self._token is not None and self._clock() < self._expires_at_s:
                return self._token
            if self._login is None or not cred.username or not cred.password:
                return None
            token = await self._login(cred.username, cred.password)
            self._token = token
            self._expires_at_s = self._clock() + self._ttl_s
            logger.debug("Bearer token obtained, valid for %.0fs", self._ttl_s)
            return token
