"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Docker Hub read operations over the Hub API and the registry API.

Results that could not be fetched carry ``available: False`` and a ``note``;
results the upstream cannot provide at all carry ``supported: False``. Neither
is ever dressed up as zero-valued real data.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from ..cache import (
    OperationClass,
    image_details_key,
    manifest_key,
    search_key,
    stats_key,
    tags_key,
)
from ..errors import HubAuthenticationError, HubError
from ..upstream import UpstreamClient

logger = logging.getLogger("dockhub.operations")

MIB = 1024 * 1024
DEFAULT_PULL_ESTIMATE_BYTES = 100 * MIB
FALLBACK_TIMEOUT_S = 10.0
SEARCH_FALLBACK_PAGE_SIZE = 10

MANIFEST_ACCEPT = ", ".join(
    (
        "application/vnd.docker.distribution.manifest.v2+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.oci.image.index.v1+json",
    )
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_repository(repository: str) -> str:
    """Official images live under ``library/``; ``nginx`` → ``library/nginx``."""
    repo = repository.strip().strip("/")
    return repo if "/" in repo else f"library/{repo}"


def parse_image_ref(image: str) -> tuple[str, str]:
    """Split ``repo[:tag]``; a colon before the last ``/`` belongs to a host."""
    name, sep, tag = image.strip().rpartition(":")
    if not sep or "/" in tag:
        return image.strip(), "latest"
    return name, tag or "latest"


def normalize_manifest(raw: Mapping[str, Any], repository: str, tag: str) -> dict[str, Any]:
    """Flatten schema v1 ``fsLayers`` and v2/OCI ``layers`` into one layer list."""
    layers: list[dict[str, Any]] = []
    if isinstance(raw.get("layers"), list):
        for row in raw["layers"]:
            if isinstance(row, dict):
                layers.append(
                    {
                        "digest": row.get("digest"),
                        "size": row.get("size"),
                        "media_type": row.get("mediaType"),
                    }
                )
    elif isinstance(raw.get("fsLayers"), list):
        for row in raw["fsLayers"]:
            if isinstance(row, dict):
                layers.append({"digest": row.get("blobSum"), "size": row.get("size")})

    platforms = []
    for row in raw.get("manifests") or []:
        platform = row.get("platform") if isinstance(row, dict) else None
        if isinstance(platform, dict):
            platforms.append(
                {
                    "architecture": platform.get("architecture"),
                    "os": platform.get("os"),
                    "variant": platform.get("variant"),
                    "digest": row.get("digest"),
                }
            )

    config = raw.get("config") if isinstance(raw.get("config"), dict) else {}
    return {
        "name": raw.get("name", repository),
        "tag": raw.get("tag", tag),
        "schemaVersion": raw.get("schemaVersion"),
        "media_type": raw.get("mediaType"),
        "architecture": raw.get("architecture"),
        "config_digest": config.get("digest"),
        "layers": layers,
        "platforms": platforms,
        "available": True,
    }


def compare_manifests(first: Mapping[str, Any], second: Mapping[str, Any]) -> dict[str, Any]:
    layers1 = [row.get("digest") for row in first.get("layers", [])]
    layers2 = [row.get("digest") for row in second.get("layers", [])]
    set1, set2 = set(layers1), set(layers2)
    common = [d for d in layers1 if d in set2]
    widest = max(len(layers1), len(layers2))

    size_difference_mb = None
    size1 = _total_size(first)
    size2 = _total_size(second)
    if size1 is not None and size2 is not None:
        size_difference_mb = round((size1 - size2) / MIB, 2)

    return {
        "commonLayers": len(common),
        "uniqueToImage1": len([d for d in layers1 if d not in set2]),
        "uniqueToImage2": len([d for d in layers2 if d not in set1]),
        "totalLayersImage1": len(layers1),
        "totalLayersImage2": len(layers2),
        "layerEfficiency": (len(common) / widest) * 100 if widest else 0.0,
        "sizeDifferenceMB": size_difference_mb,
    }


def _total_size(manifest: Mapping[str, Any]) -> int | None:
    layers = manifest.get("layers") or []
    sizes = [row.get("size") for row in layers]
    if not layers or not all(isinstance(s, int) for s in sizes):
        return None
    return sum(sizes)


class DockerHubService:
    """Field mapping over the Hub API client and the registry API client."""

    def __init__(
        self,
        hub: UpstreamClient,
        registry: UpstreamClient,
        *,
        fallback_timeout_s: float = FALLBACK_TIMEOUT_S,
    ) -> None:
        self._hub = hub
        self._registry = registry
        self._fallback_timeout_s = fallback_timeout_s

    async def search_images(
        self,
        query: str,
        limit: int = 25,
        page: int = 1,
        filters: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        filters = dict(filters or {})
        data = await self._hub.fetch(
            "GET",
            "/v2/search/repositories/",
            operation=OperationClass.SEARCH,
            cache_key=search_key(query, limit, page, filters),
            params={"query": query, "page": page, "page_size": limit, **filters},
        )
        data = data if isinstance(data, dict) else {}
        return {
            "results": data.get("results") or [],
            "count": data.get("count", 0),
        }

    async def get_image_details(self, repository: str, tag: str = "latest") -> dict[str, Any]:
        repo = normalize_repository(repository)
        try:
            return await self._hub.fetch(
                "GET",
                f"/v2/repositories/{repo}/",
                operation=OperationClass.IMAGE_DETAILS,
                cache_key=image_details_key(repository, tag),
            )
        except HubAuthenticationError:
            logger.warning(
                "Authentication required for image details, using search fallback: %s",
                repository,
            )
        try:
            match = await self._find_in_search(repository)
        except (HubError, asyncio.TimeoutError) as e:
            logger.warning("Search fallback failed for %s: %s", repository, e)
            match = None
        if match is not None:
            return {**match, "data_source": "search"}

        namespace, _, name = repo.partition("/")
        return {
            "name": name,
            "namespace": namespace,
            "available": False,
            "data_source": "placeholder",
            "note": "Image details not available without authentication",
        }

    async def list_tags(self, repository: str, limit: int = 25, page: int = 1) -> dict[str, Any]:
        repo = normalize_repository(repository)
        try:
            data = await self._hub.fetch(
                "GET",
                f"/v2/repositories/{repo}/tags/",
                operation=OperationClass.TAGS,
                cache_key=tags_key(repository, limit, page),
                params={"page": page, "page_size": limit},
            )
        except HubAuthenticationError:
            logger.warning("Authentication required for tags: %s", repository)
            return {
                "results": [],
                "count": None,
                "available": False,
                "note": "Tags not available without authentication",
            }
        data = data if isinstance(data, dict) else {}
        return {
            "results": data.get("results") or [],
            "count": data.get("count", 0),
            "available": True,
        }

    async def get_manifest(self, repository: str, tag: str = "latest") -> dict[str, Any]:
        repo = normalize_repository(repository)
        try:
            raw = await self._registry.fetch(
                "GET",
                f"/v2/{repo}/manifests/{tag}",
                operation=OperationClass.MANIFEST,
                cache_key=manifest_key(repository, tag),
            )
        except HubAuthenticationError:
            logger.warning("Authentication required for manifest: %s:%s", repository, tag)
            return {
                "name": repo,
                "tag": tag,
                "schemaVersion": None,
                "architecture": None,
                "layers": [],
                "platforms": [],
                "available": False,
                "note": "Manifest not available without authentication",
            }
        return normalize_manifest(raw if isinstance(raw, dict) else {}, repo, tag)

    async def get_vulnerabilities(
        self, repository: str, tag: str = "latest", severity: str | None = None
    ) -> dict[str, Any]:
        logger.info(
            "Vulnerability scanning not available via Docker Hub API: %s:%s", repository, tag
        )
        return {
            "supported": False,
            "vulnerabilities": None,
            "severity": severity,
            "note": "Vulnerability scan results are not exposed by the Docker Hub API",
        }

    async def get_dockerfile(self, repository: str, tag: str = "latest") -> dict[str, Any]:
        logger.info("Dockerfile retrieval not available via Docker Hub API: %s:%s", repository, tag)
        return {
            "supported": False,
            "dockerfile": None,
            "note": "Dockerfiles are not exposed by the Docker Hub API",
        }

    async def get_stats(self, repository: str) -> dict[str, Any]:
        key = stats_key(repository)
        cached = await self._hub.lookup_cached(key)
        if cached is not None:
            return cached

        try:
            match = await self._find_in_search(repository)
        except (HubError, asyncio.TimeoutError) as e:
            logger.warning("Could not get stats from search for %s: %s", repository, e)
            match = None

        if match is None:
            return {
                "available": False,
                "pull_count": None,
                "star_count": None,
                "last_updated": None,
                "tags_count": None,
                "note": "Repository not found in public search results",
            }

        stats = {
            "available": True,
            "pull_count": int(match.get("pull_count") or 0),
            "star_count": int(match.get("star_count") or 0),
            "last_updated": match.get("last_updated"),
            "tags_count": None,
        }
        await self._hub.store_cached(key, stats, OperationClass.STATS)
        return stats

    async def get_image_history(self, repository: str, tag: str = "latest") -> dict[str, Any]:
        try:
            details = await self.get_image_details(repository, tag)
        except HubError as e:
            logger.warning("Image history not available for %s:%s: %s", repository, tag, e)
            return {"available": False, "history": [], "note": str(e)}
        if details.get("available") is False:
            return {"available": False, "history": [], "note": details.get("note")}
        return {
            "available": True,
            "history": [
                {
                    "repository": repository,
                    "tag": tag,
                    "last_updated": details.get("last_updated"),
                    "date_registered": details.get("date_registered"),
                }
            ],
        }

    async def analyze_layers(self, repository: str, tag: str = "latest") -> dict[str, Any]:
        unavailable = {
            "repository": repository,
            "tag": tag,
            "available": False,
            "total_layers": None,
            "layers": [],
            "total_size": None,
            "error": "Could not retrieve manifest",
            "note": "Layer analysis requires authentication or the image may not be accessible",
        }
        try:
            manifest = await asyncio.wait_for(
                self.get_manifest(repository, tag), timeout=self._fallback_timeout_s
            )
        except (HubError, asyncio.TimeoutError) as e:
            logger.warning("Could not analyze layers for %s:%s: %s", repository, tag, e)
            return unavailable
        if not manifest.get("available"):
            return unavailable

        layers = [
            {"index": i, "digest": row.get("digest"), "size": row.get("size")}
            for i, row in enumerate(manifest["layers"], start=1)
        ]
        total = _total_size(manifest)
        return {
            "repository": repository,
            "tag": tag,
            "available": True,
            "architecture": manifest.get("architecture"),
            "platforms": manifest.get("platforms", []),
            "total_layers": len(layers),
            "layers": layers,
            "total_size": total,
            "total_size_mb": round(total / MIB, 2) if total is not None else None,
        }

    async def compare_images(self, image1: str, image2: str) -> dict[str, Any]:
        repo1, tag1 = parse_image_ref(image1)
        repo2, tag2 = parse_image_ref(image2)
        manifest1, manifest2 = await asyncio.gather(
            self.get_manifest(repo1, tag1),
            self.get_manifest(repo2, tag2),
        )
        comparison = compare_manifests(manifest1, manifest2)
        comparison["comparable"] = bool(manifest1.get("available") and manifest2.get("available"))
        return {
            "image1": {"repository": repo1, "tag": tag1, "manifest": manifest1},
            "image2": {"repository": repo2, "tag": tag2, "manifest": manifest2},
            "comparison": comparison,
        }

    async def estimate_pull_size(self, repository: str, tag: str = "latest") -> dict[str, Any]:
        try:
            manifest = await self.get_manifest(repository, tag)
        except HubError as e:
            logger.warning("Could not estimate pull size for %s:%s: %s", repository, tag, e)
            manifest = None

        if manifest is not None and manifest.get("available") and manifest.get("layers"):
            total = _total_size(manifest)
            if total is not None:
                return {"bytes": total, "basis": "layer_sizes"}
            return {"bytes": len(manifest["layers"]) * MIB, "basis": "layer_count"}
        return {"bytes": DEFAULT_PULL_ESTIMATE_BYTES, "basis": "default"}

    async def check_base_image_updates(self, repository: str, tag: str = "latest") -> dict[str, Any]:
        return {
            "supported": False,
            "has_updates": None,
            "current_version": tag,
            "latest_version": None,
            "last_checked": _now_iso(),
            "note": "Base image tracking needs the image Dockerfile, which the Docker Hub API does not expose",
        }

    async def _find_in_search(self, repository: str) -> dict[str, Any] | None:
        repo = normalize_repository(repository)
        namespace, _, name = repo.partition("/")
        found = await asyncio.wait_for(
            self.search_images(name, limit=SEARCH_FALLBACK_PAGE_SIZE),
            timeout=self._fallback_timeout_s,
        )
        candidates = {repository.strip(), repo}
        if namespace == "library":
            candidates.add(name)
        for row in found["results"]:
            if not isinstance(row, dict):
                continue
            row_name = row.get("repo_name") or row.get("name")
            owner = row.get("repo_owner") or row.get("namespace")
            if row_name in candidates:
                return row
            if row_name == name and owner == namespace:
                return row
        return None
