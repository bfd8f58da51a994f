"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/base.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class OperationClass(str, Enum):
    """Request categories used to pick a cache TTL."""

    SEARCH = "search"
    IMAGE_DETAILS = "image_details"
    TAGS = "tags"
    MANIFEST = "manifest"
    VULNERABILITIES = "vulnerabilities"
    STATS = "stats"


# Tags churn faster than statistics; lifetimes follow upstream volatility.
OPERATION_TTL_S: dict[OperationClass, int] = {
    OperationClass.SEARCH: 300,
    OperationClass.IMAGE_DETAILS: 600,
    OperationClass.TAGS: 900,
    OperationClass.MANIFEST: 1800,
    OperationClass.VULNERABILITIES: 3600,
    OperationClass.STATS: 7200,
}


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """One cached upstream payload with expiration metadata."""

    value: Any
    expires_at_s: float


@dataclass(frozen=True, slots=True)
class CacheStats:
    hits: int
    misses: int
    keys: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "keys": self.keys,
            "hit_rate": self.hit_rate,
        }


class HubCacheBackend(Protocol):
    """Protocol implemented by cache backends used by the upstream client."""

    backend_id: str

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, *, ttl_s: float | None = None) -> bool: ...

    async def set_with_operation_policy(
        self, key: str, value: Any, operation: OperationClass | str
    ) -> bool: ...

    async def delete(self, key: str) -> int: ...

    async def flush(self) -> None: ...
