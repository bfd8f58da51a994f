"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Deterministic cache key derivation for upstream requests.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from .base import OperationClass

KEY_PREFIX = "dockhub"


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


def generate_key(operation: OperationClass | str, params: Mapping[str, Any]) -> str:
    """
    Build ``dockhub:<operation>:k1:v1|k2:v2`` over sorted parameter names.

    Parameter order never changes the key.
    """
    op = operation.value if isinstance(operation, OperationClass) else str(operation)
    rendered = "|".join(f"{name}:{_render(params[name])}" for name in sorted(params))
    return f"{KEY_PREFIX}:{op}:{rendered}"


def search_key(
    query: str,
    limit: int,
    page: int,
    filters: Mapping[str, Any] | None = None,
) -> str:
    return generate_key(
        OperationClass.SEARCH,
        {"query": query, "limit": limit, "page": page, "filters": dict(filters or {})},
    )


def image_details_key(repository: str, tag: str) -> str:
    return generate_key(OperationClass.IMAGE_DETAILS, {"repository": repository, "tag": tag})


def tags_key(repository: str, limit: int, page: int) -> str:
    return generate_key(
        OperationClass.TAGS, {"repository": repository, "limit": limit, "page": page}
    )


def manifest_key(repository: str, tag: str) -> str:
    return generate_key(OperationClass.MANIFEST, {"repository": repository, "tag": tag})


def vulnerabilities_key(repository: str, tag: str, severity: str | None = None) -> str:
    return generate_key(
        OperationClass.VULNERABILITIES,
        {"repository": repository, "tag": tag, "severity": severity},
    )


def stats_key(repository: str) -> str:
    return generate_key(OperationClass.STATS, {"repository": repository})
