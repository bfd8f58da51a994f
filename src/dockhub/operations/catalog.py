"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

The Docker Hub tool catalog exposed over MCP.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from .base import Operation, operation
from .service import MIB, DockerHubService


class _SearchImagesArgs(BaseModel):
    query: str = Field(min_length=1, description="Search query for Docker images")
    limit: int = Field(default=25, ge=1, le=100, description="Maximum number of results to return")
    page: int = Field(default=1, ge=1, description="Page number for pagination")
    is_official: bool | None = Field(default=None, description="Filter for official images only")
    is_automated: bool | None = Field(default=None, description="Filter for automated builds only")


class _ImageRefArgs(BaseModel):
    repository: str = Field(min_length=1, description="Docker repository name (e.g., 'library/nginx')")
    tag: str = Field(default="latest", min_length=1, description="Image tag (e.g., 'latest')")


class _ListTagsArgs(BaseModel):
    repository: str = Field(min_length=1, description="Docker repository name (e.g., 'library/nginx')")
    limit: int = Field(default=25, ge=1, le=100, description="Maximum number of tags to return")
    page: int = Field(default=1, ge=1, description="Page number for pagination")


class _CompareImagesArgs(BaseModel):
    image1: str = Field(min_length=1, description="First image (e.g., 'nginx:latest')")
    image2: str = Field(min_length=1, description="Second image (e.g., 'nginx:alpine')")


class _StatsArgs(BaseModel):
    repository: str = Field(min_length=1, description="Docker repository name (e.g., 'library/nginx')")


class _VulnerabilitiesArgs(_ImageRefArgs):
    severity: Literal["low", "medium", "high", "critical"] | None = Field(
        default=None, description="Filter by severity level"
    )


def popularity_score(pull_count: int | None, star_count: int | None) -> float | None:
    if pull_count is None or star_count is None:
        return None
    return (pull_count * 0.7 + star_count * 0.3) / 1000


def build_docker_operations(service: DockerHubService) -> list[Operation[Any]]:
    """
    Construct the twelve ``docker_*`` operations bound to ``service``.

    Every operation returns ``{"success": True, "data": {...}}``; failures
    raise and are rendered by the protocol layer.
    """

    @operation(
        args_model=_SearchImagesArgs,
        name="docker_search_images",
        description="Search Docker Hub for images based on query and filters",
    )
    async def search_images(args: _SearchImagesArgs) -> dict[str, Any]:
        filters = {}
        if args.is_official is not None:
            filters["is_official"] = args.is_official
        if args.is_automated is not None:
            filters["is_automated"] = args.is_automated
        result = await service.search_images(args.query, args.limit, args.page, filters)
        return {
            "success": True,
            "data": {
                "results": result["results"],
                "total_count": result["count"],
                "page": args.page,
                "limit": args.limit,
                "query": args.query,
                "filters": filters,
            },
        }

    @operation(
        args_model=_ImageRefArgs,
        name="docker_get_image_details",
        description="Get detailed information about a specific Docker image",
    )
    async def get_image_details(args: _ImageRefArgs) -> dict[str, Any]:
        image = await service.get_image_details(args.repository, args.tag)
        return {
            "success": True,
            "data": {"image": image, "repository": args.repository, "tag": args.tag},
        }

    @operation(
        args_model=_ListTagsArgs,
        name="docker_list_tags",
        description="List all available tags for a Docker repository",
    )
    async def list_tags(args: _ListTagsArgs) -> dict[str, Any]:
        result = await service.list_tags(args.repository, args.limit, args.page)
        data = {
            "tags": result["results"],
            "total_count": result["count"],
            "repository": args.repository,
            "page": args.page,
            "limit": args.limit,
            "available": result["available"],
        }
        if "note" in result:
            data["note"] = result["note"]
        return {"success": True, "data": data}

    @operation(
        args_model=_ImageRefArgs,
        name="docker_get_manifest",
        description="Retrieve the manifest for a specific Docker image",
    )
    async def get_manifest(args: _ImageRefArgs) -> dict[str, Any]:
        manifest = await service.get_manifest(args.repository, args.tag)
        return {
            "success": True,
            "data": {
                "manifest": manifest,
                "repository": args.repository,
                "tag": args.tag,
                "layer_count": len(manifest["layers"]) if manifest["available"] else None,
                "architecture": manifest.get("architecture"),
            },
        }

    @operation(
        args_model=_ImageRefArgs,
        name="docker_analyze_layers",
        description="Analyze image layers and provide size breakdown",
    )
    async def analyze_layers(args: _ImageRefArgs) -> dict[str, Any]:
        analysis = await service.analyze_layers(args.repository, args.tag)
        return {
            "success": True,
            "data": {"analysis": analysis, "repository": args.repository, "tag": args.tag},
        }

    @operation(
        args_model=_CompareImagesArgs,
        name="docker_compare_images",
        description="Compare two Docker images (layers, sizes, base images)",
    )
    async def compare_images(args: _CompareImagesArgs) -> dict[str, Any]:
        result = await service.compare_images(args.image1, args.image2)
        comparison = result["comparison"]
        return {
            "success": True,
            "data": {
                "comparison": comparison,
                "image1": result["image1"],
                "image2": result["image2"],
                "summary": {
                    "efficiency_percentage": f"{comparison['layerEfficiency']:.2f}",
                    "common_layers": comparison["commonLayers"],
                    "unique_layers_image1": comparison["uniqueToImage1"],
                    "unique_layers_image2": comparison["uniqueToImage2"],
                    "size_difference_mb": comparison["sizeDifferenceMB"],
                    "total_layers_image1": comparison["totalLayersImage1"],
                    "total_layers_image2": comparison["totalLayersImage2"],
                    "comparable": comparison["comparable"],
                },
            },
        }

    @operation(
        args_model=_ImageRefArgs,
        name="docker_get_dockerfile",
        description="Attempt to retrieve Dockerfile for an image (when available)",
    )
    async def get_dockerfile(args: _ImageRefArgs) -> dict[str, Any]:
        result = await service.get_dockerfile(args.repository, args.tag)
        return {
            "success": True,
            "data": {
                **result,
                "repository": args.repository,
                "tag": args.tag,
                "available": result["dockerfile"] is not None,
            },
        }

    @operation(
        args_model=_StatsArgs,
        name="docker_get_stats",
        description="Get download statistics and popularity metrics for an image",
    )
    async def get_stats(args: _StatsArgs) -> dict[str, Any]:
        stats = await service.get_stats(args.repository)
        return {
            "success": True,
            "data": {
                "stats": stats,
                "repository": args.repository,
                "popularity_score": popularity_score(stats["pull_count"], stats["star_count"]),
            },
        }

    @operation(
        args_model=_VulnerabilitiesArgs,
        name="docker_get_vulnerabilities",
        description="Fetch security scan results for a Docker image",
    )
    async def get_vulnerabilities(args: _VulnerabilitiesArgs) -> dict[str, Any]:
        result = await service.get_vulnerabilities(args.repository, args.tag, args.severity)
        return {
            "success": True,
            "data": {
                **result,
                "repository": args.repository,
                "tag": args.tag,
                "total_count": None,
                "severity_counts": None,
            },
        }

    @operation(
        args_model=_ImageRefArgs,
        name="docker_get_image_history",
        description="Get image build history and creation details",
    )
    async def get_image_history(args: _ImageRefArgs) -> dict[str, Any]:
        result = await service.get_image_history(args.repository, args.tag)
        data = {
            "history": result["history"],
            "repository": args.repository,
            "tag": args.tag,
            "total_entries": len(result["history"]),
            "available": result["available"],
        }
        if result.get("note"):
            data["note"] = result["note"]
        return {"success": True, "data": data}

    @operation(
        args_model=_ImageRefArgs,
        name="docker_track_base_updates",
        description="Check if base images have updates available",
    )
    async def track_base_updates(args: _ImageRefArgs) -> dict[str, Any]:
        updates = await service.check_base_image_updates(args.repository, args.tag)
        return {
            "success": True,
            "data": {
                "updates": updates,
                "repository": args.repository,
                "tag": args.tag,
                "recommendation": None,
            },
        }

    @operation(
        args_model=_ImageRefArgs,
        name="docker_estimate_pull_size",
        description="Calculate estimated download size for pulling an image",
    )
    async def estimate_pull_size(args: _ImageRefArgs) -> dict[str, Any]:
        estimate = await service.estimate_pull_size(args.repository, args.tag)
        size = estimate["bytes"]
        notes = {
            "layer_sizes": "Sum of compressed layer sizes from the manifest",
            "layer_count": "Rough estimate of 1 MiB per layer; layer sizes were not reported",
            "default": "Default estimate; the manifest could not be retrieved",
        }
        return {
            "success": True,
            "data": {
                "estimated_size_bytes": size,
                "estimated_size_mb": f"{size / MIB:.2f}",
                "estimated_size_gb": f"{size / (MIB * 1024):.3f}",
                "basis": estimate["basis"],
                "repository": args.repository,
                "tag": args.tag,
                "note": notes[estimate["basis"]],
            },
        }

    return [
        search_images,
        get_image_details,
        list_tags,
        get_manifest,
        analyze_layers,
        compare_images,
        get_dockerfile,
        get_stats,
        get_vulnerabilities,
        get_image_history,
        track_base_updates,
        estimate_pull_size,
    ]
