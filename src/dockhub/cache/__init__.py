"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/__init__.py.
"""

from .base import OPERATION_TTL_S, CacheEntry, CacheStats, HubCacheBackend, OperationClass
from .inmemory import InMemoryHubCache
from .keys import (
    generate_key,
    image_details_key,
    manifest_key,
    search_key,
    stats_key,
    tags_key,
    vulnerabilities_key,
)

__all__ = [
    "OperationClass",
    "OPERATION_TTL_S",
    "CacheEntry",
    "CacheStats",
    "HubCacheBackend",
    "InMemoryHubCache",
    "generate_key",
    "search_key",
    "image_details_key",
    "tags_key",
    "manifest_key",
    "vulnerabilities_key",
    "stats_key",
]
