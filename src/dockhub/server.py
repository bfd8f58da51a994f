"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Composition root for the Docker Hub MCP server.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import Any

import httpx

from . import __version__
from .cache import InMemoryHubCache
from .mcp import MCPProtocolHandler, StdioServer, ThreadedLineReader, stdout_writer
from .mcp.stdio import DRAIN_GRACE_S, LineReader, LineWriter
from .operations import DockerHubService, OperationRegistry, build_docker_operations
from .operations.service import MANIFEST_ACCEPT
from .runtime import FixedWindowRateLimiter, RateLimitPolicy, RetryPolicy, TimeoutPolicy
from .settings import HubSettings
from .upstream import UpstreamClient, UpstreamConfig, UpstreamCredential

logger = logging.getLogger("dockhub.server")

SERVER_NAME = "dockerhub-mcp-server"


class DockerHubMCPServer:
    """
    Wires cache, rate limiter, upstream clients, the operation catalog and
    the protocol handler from one ``HubSettings``.

    ``http_client`` and ``sleep`` are injection points for tests; production
    callers pass neither.
    """

    def __init__(
        self,
        settings: HubSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        registry_http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Any = asyncio.sleep,
        drain_grace_s: float = DRAIN_GRACE_S,
    ) -> None:
        self.settings = settings or HubSettings()
        self._drain_grace_s = drain_grace_s
        self.settings.validate()
        self._started_at = time.monotonic()
        self._sweeper: asyncio.Task[None] | None = None
        self._stdio: StdioServer | None = None

        self.cache = InMemoryHubCache(
            default_ttl_s=float(self.settings.cache.ttl_s),
            max_keys=self.settings.cache.max_keys,
        )
        self.rate_limiter = FixedWindowRateLimiter(
            RateLimitPolicy(
                requests_per_window=self.settings.rate_limit.requests_per_window,
                window_s=self.settings.rate_limit.window_s,
            ),
            sleep=sleep,
        )
        timeouts = TimeoutPolicy(request_timeout_s=self.settings.timeout_s)
        registry = self.settings.default_registry()
        credential = UpstreamCredential.from_registry(registry)
        api_url = self.settings.api_url.rstrip("/")

        self.hub = UpstreamClient(
            UpstreamConfig(
                name=registry.name,
                base_url=api_url,
                credential=credential,
                auth_style="bearer",
                login_url=f"{api_url}/v2/users/login/",
            ),
            cache=self.cache,
            rate_limiter=self.rate_limiter,
            retry_policy=retry_policy,
            timeout_policy=timeouts,
            http_client=http_client,
            sleep=sleep,
        )
        self.registry_api = UpstreamClient(
            UpstreamConfig(
                name=f"{registry.name}-registry",
                base_url=registry.url.rstrip("/"),
                credential=credential,
                auth_style="basic",
                accept=MANIFEST_ACCEPT,
            ),
            cache=self.cache,
            rate_limiter=self.rate_limiter,
            retry_policy=retry_policy,
            timeout_policy=timeouts,
            http_client=registry_http_client or http_client,
            sleep=sleep,
        )

        self.service = DockerHubService(self.hub, self.registry_api)
        self.operations = OperationRegistry()
        self.operations.register_many(build_docker_operations(self.service))
        self.protocol = MCPProtocolHandler(
            registry=self.operations,
            server_name=SERVER_NAME,
            server_version=__version__,
            health=self.health_status,
        )
        logger.info(
            "Docker Hub MCP server ready: %d tools, registry %s",
            len(self.operations.names()),
            registry.name,
        )

    def health_status(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "version": __version__,
            "uptime_s": round(time.monotonic() - self._started_at, 3),
            "cache": self.cache.stats().to_dict(),
            "rate_limits": self.rate_limiter.stats(),
            "tools": len(self.operations.names()),
            "calls": self.operations.call_count,
        }

    async def run_stdio(
        self,
        reader: LineReader | None = None,
        write: LineWriter | None = None,
    ) -> int:
        """Serve JSON-RPC over stdin/stdout until end-of-stream or ``stop()``."""
        self._stdio = StdioServer(self.protocol, drain_grace_s=self._drain_grace_s)
        self._sweeper = asyncio.create_task(self._sweep_loop())
        try:
            return await self._stdio.serve(
                reader or ThreadedLineReader(sys.stdin),
                write or stdout_writer(),
            )
        finally:
            await self.shutdown()

    def stop(self) -> None:
        if self._stdio is not None:
            self._stdio.stop()

    async def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        await self.cache.flush()
        await self.hub.aclose()
        await self.registry_api.aclose()
        logger.info("Docker Hub MCP server stopped")

    async def _sweep_loop(self) -> None:
        period = max(1, self.settings.cache.check_period_s)
        while True:
            await asyncio.sleep(period)
            removed = await self.cache.sweep()
            if removed:
                logger.debug("Cache sweep removed %d expired entries", removed)
