"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/inmemory.py.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from .base import OPERATION_TTL_S, CacheEntry, CacheStats, HubCacheBackend, OperationClass

logger = logging.getLogger("dockhub.cache")


class InMemoryHubCache(HubCacheBackend):
    """
    Process-local TTL cache with a bounded key count.

    When ``max_keys`` is reached, expired rows are purged first and then the
    least-recently-set row is evicted. Entries are kept in set order, so
    eviction is deterministic for a given sequence of writes.
    """

    backend_id = "inmemory"

    def __init__(
        self,
        *,
        default_ttl_s: float = 300.0,
        max_keys: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_keys < 1:
            raise ValueError("max_keys must be >= 1")
        self._default_ttl_s = default_ttl_s
        self._max_keys = max_keys
        self._clock = clock
        self._rows: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    @property
    def default_ttl_s(self) -> float:
        return self._default_ttl_s

    async def get(self, key: str) -> Any | None:
        with self._lock:
            row = self._rows.get(key)
            if row is not None and row.expires_at_s <= self._clock():
                self._rows.pop(key, None)
                logger.debug("Cache key expired: %s", key)
                row = None
            if row is None:
                self._misses += 1
                logger.debug("Cache miss: %s", key)
                return None
            self._hits += 1
            logger.debug("Cache hit: %s", key)
            return row.value

    async def set(self, key: str, value: Any, *, ttl_s: float | None = None) -> bool:
        ttl = self._default_ttl_s if ttl_s is None else ttl_s
        with self._lock:
            if key in self._rows:
                self._rows.pop(key)
            elif len(self._rows) >= self._max_keys:
                self._make_room()
            self._rows[key] = CacheEntry(value=value, expires_at_s=self._clock() + ttl)
        logger.debug("Cache key set: %s (ttl=%ss)", key, ttl)
        return True

    async def set_with_operation_policy(
        self, key: str, value: Any, operation: OperationClass | str
    ) -> bool:
        return await self.set(key, value, ttl_s=self.ttl_for(operation))

    def ttl_for(self, operation: OperationClass | str) -> float:
        """Resolve the TTL for one operation class, falling back to the default."""
        try:
            op = OperationClass(operation)
        except ValueError:
            return self._default_ttl_s
        return float(OPERATION_TTL_S.get(op, self._default_ttl_s))

    async def delete(self, key: str) -> int:
        with self._lock:
            removed = self._rows.pop(key, None)
        if removed is None:
            return 0
        logger.debug("Cache key deleted: %s", key)
        return 1

    async def has(self, key: str) -> bool:
        with self._lock:
            row = self._rows.get(key)
            return row is not None and row.expires_at_s > self._clock()

    async def keys(self) -> list[str]:
        with self._lock:
            now = self._clock()
            return [k for k, row in self._rows.items() if row.expires_at_s > now]

    async def size(self) -> int:
        return len(await self.keys())

    async def flush(self) -> None:
        with self._lock:
            self._rows.clear()
            self._hits = 0
            self._misses = 0
        logger.info("Cache flushed")

    async def sweep(self) -> int:
        """Drop expired rows; returns how many were removed."""
        with self._lock:
            removed = self._purge_expired()
        if removed:
            logger.debug("Cache sweep removed %d expired keys", removed)
        return removed

    def stats(self) -> CacheStats:
        with self._lock:
            now = self._clock()
            live = sum(1 for row in self._rows.values() if row.expires_at_s > now)
            return CacheStats(hits=self._hits, misses=self._misses, keys=live)

    def _purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, row in self._rows.items() if row.expires_at_s <= now]
        for k in expired:
            del self._rows[k]
        return len(expired)

    def _make_room(self) -> None:
        self._purge_expired()
        while len(self._rows) >= self._max_keys:
            evicted, _ = self._rows.popitem(last=False)
            logger.debug("Cache full, evicted least-recently-set key: %s", evicted)
