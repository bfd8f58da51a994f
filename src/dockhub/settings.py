"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Gateway settings and explicit environment loading.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from .errors import HubConfigError

logger = logging.getLogger("dockhub.settings")

DEFAULT_REGISTRY_NAME = "dockerhub"
DEFAULT_REGISTRY_URL = "https://registry.hub.docker.com"
DEFAULT_API_URL = "https://hub.docker.com"


@dataclass(frozen=True, slots=True)
class RegistryConfig:
    """
    One configured registry.

    Attributes:
        name: Stable registry identity, also used as the rate-limit upstream id.
        url: Registry API base URL.
        username: Optional login name (paired with ``password``).
        password: Optional login password.
        token: Optional personal access token, used verbatim.
        is_default: Whether this registry serves the operation catalog.
    """

    name: str
    url: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    token: str | None = field(default=None, repr=False)
    is_default: bool = False

    @property
    def has_auth(self) -> bool:
        return bool(self.token or (self.username and self.password))

    @staticmethod
    def from_dict(row: dict[str, Any]) -> "RegistryConfig":
        name = row.get("name")
        url = row.get("url")
        if not isinstance(name, str) or not name.strip():
            raise HubConfigError("Registry entry requires non-empty 'name'")
        if not isinstance(url, str) or not url.strip():
            raise HubConfigError(f"Registry '{name}' requires non-empty 'url'")

        def _opt(key: str) -> str | None:
            value = row.get(key)
            return value if isinstance(value, str) and value else None

        return RegistryConfig(
            name=name.strip(),
            url=url.strip(),
            username=_opt("username"),
            password=_opt("password"),
            token=_opt("token"),
            is_default=bool(row.get("isDefault", row.get("is_default", False))),
        )


@dataclass(frozen=True, slots=True)
class CacheSettings:
    ttl_s: int = 300
    check_period_s: int = 60
    max_keys: int = 1000


@dataclass(frozen=True, slots=True)
class RateLimitSettings:
    requests_per_window: int = 60
    window_s: float = 60.0


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise HubConfigError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise HubConfigError(f"{name} must be a number, got {raw!r}") from e


def _registries_from_env() -> tuple[RegistryConfig, ...]:
    username = os.getenv("DOCKERHUB_USERNAME")
    password = os.getenv("DOCKERHUB_PASSWORD")
    token = os.getenv("DOCKERHUB_TOKEN")
    url = os.getenv("DOCKERHUB_REGISTRY_URL", DEFAULT_REGISTRY_URL)

    if username and password:
        default = RegistryConfig(
            name=DEFAULT_REGISTRY_NAME,
            url=url,
            username=username,
            password=password,
            is_default=True,
        )
    elif token:
        default = RegistryConfig(
            name=DEFAULT_REGISTRY_NAME, url=url, token=token, is_default=True
        )
    else:
        default = RegistryConfig(name=DEFAULT_REGISTRY_NAME, url=url, is_default=True)

    registries = [default]
    raw = os.getenv("PRIVATE_REGISTRIES")
    if raw:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Failed to parse PRIVATE_REGISTRIES environment variable")
            parsed = None
        if isinstance(parsed, list):
            for row in parsed:
                if not isinstance(row, dict):
                    logger.warning("Skipping non-object PRIVATE_REGISTRIES entry")
                    continue
                try:
                    registries.append(RegistryConfig.from_dict(row))
                except HubConfigError as e:
                    logger.warning("Skipping PRIVATE_REGISTRIES entry: %s", e)
    return tuple(registries)


@dataclass(frozen=True, slots=True)
class HubSettings:
    """Explicit settings consumed once at startup by the gateway core."""

    registries: tuple[RegistryConfig, ...] = field(
        default_factory=lambda: (
            RegistryConfig(
                name=DEFAULT_REGISTRY_NAME, url=DEFAULT_REGISTRY_URL, is_default=True
            ),
        )
    )
    api_url: str = DEFAULT_API_URL
    timeout_s: float = 30.0
    cache: CacheSettings = field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    log_level: str = "info"

    @staticmethod
    def from_env() -> "HubSettings":
        """Load settings from environment variables."""
        return HubSettings(
            registries=_registries_from_env(),
            api_url=os.getenv("DOCKERHUB_API_URL", DEFAULT_API_URL),
            timeout_s=_env_float("DOCKERHUB_TIMEOUT_S", 30.0),
            cache=CacheSettings(
                ttl_s=_env_int("CACHE_TTL", 300),
                check_period_s=_env_int("CACHE_CHECK_PERIOD", 60),
                max_keys=_env_int("CACHE_MAX_KEYS", 1000),
            ),
            rate_limit=RateLimitSettings(
                requests_per_window=_env_int("RATE_LIMIT_PER_MINUTE", 60),
                window_s=_env_float("RATE_LIMIT_WINDOW_S", 60.0),
            ),
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
        )

    def validate(self) -> None:
        if not self.registries:
            raise HubConfigError("No registries configured")
        defaults = [r for r in self.registries if r.is_default]
        if not defaults:
            raise HubConfigError("No default registry configured")
        if len(defaults) > 1:
            raise HubConfigError("More than one default registry configured")
        if self.cache.ttl_s <= 0:
            raise HubConfigError("Cache TTL must be positive")
        if self.cache.max_keys <= 0:
            raise HubConfigError("Cache max keys must be positive")
        if self.rate_limit.requests_per_window <= 0:
            raise HubConfigError("Rate limit per minute must be positive")
        if self.rate_limit.window_s <= 0:
            raise HubConfigError("Rate limit window must be positive")
        if self.timeout_s <= 0:
            raise HubConfigError("Upstream timeout must be positive")

    def default_registry(self) -> RegistryConfig:
        for registry in self.registries:
            if registry.is_default:
                return registry
        raise HubConfigError("No default registry configured")

    def registry_by_name(self, name: str) -> RegistryConfig | None:
        for registry in self.registries:
            if registry.name == name:
                return registry
        return None
