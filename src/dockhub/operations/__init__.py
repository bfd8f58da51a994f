"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Operation catalog: named, schema-validated Docker Hub operations.
"""

from .base import Operation, OperationSpec, operation
from .catalog import build_docker_operations, popularity_score
from .errors import (
    OperationAlreadyRegisteredError,
    OperationError,
    OperationNotFoundError,
    OperationTimeoutError,
)
from .registry import OperationCallRecord, OperationRegistry
from .service import (
    DockerHubService,
    compare_manifests,
    normalize_manifest,
    normalize_repository,
    parse_image_ref,
)

__all__ = [
    "Operation",
    "OperationSpec",
    "operation",
    "build_docker_operations",
    "popularity_score",
    "OperationError",
    "OperationAlreadyRegisteredError",
    "OperationNotFoundError",
    "OperationTimeoutError",
    "OperationCallRecord",
    "OperationRegistry",
    "DockerHubService",
    "compare_manifests",
    "normalize_manifest",
    "normalize_repository",
    "parse_image_ref",
]
