"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

dockhub: Docker Hub read operations exposed as an MCP tool server.

Quick start::

    from dockhub import DockerHubMCPServer, HubSettings

    server = DockerHubMCPServer(HubSettings.from_env())
    exit_code = asyncio.run(server.run_stdio())
"""

__version__ = "1.0.0"

from .errors import (  # noqa: E402
    HubAuthenticationError,
    HubConfigError,
    HubError,
    HubNotFoundError,
    HubRateLimitedError,
    HubServerError,
    HubUnknownError,
    HubValidationError,
)
from .server import DockerHubMCPServer  # noqa: E402
from .settings import HubSettings  # noqa: E402

__all__ = [
    "__version__",
    "DockerHubMCPServer",
    "HubSettings",
    "HubError",
    "HubAuthenticationError",
    "HubRateLimitedError",
    "HubServerError",
    "HubNotFoundError",
    "HubValidationError",
    "HubUnknownError",
    "HubConfigError",
]
