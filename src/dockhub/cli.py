"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Command-line entry point: ``dockhub-mcp``.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
from collections.abc import Sequence

from dotenv import load_dotenv

from . import __version__
from .errors import HubConfigError
from .observability import configure_logging
from .server import DockerHubMCPServer
from .settings import HubSettings

logger = logging.getLogger("dockhub.cli")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dockhub-mcp",
        description="Docker Hub MCP server over stdio",
    )
    parser.add_argument(
        "--log-level",
        choices=("error", "warn", "info", "debug"),
        default=None,
        help="Overrides LOG_LEVEL",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file (default: search from the working directory)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


async def _serve(server: DockerHubMCPServer) -> int:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, server.stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support.
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(server.stop))
    return await server.run_stdio()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    load_dotenv(args.env_file)

    try:
        settings = HubSettings.from_env()
        if args.log_level:
            settings = dataclasses.replace(settings, log_level=args.log_level)
        configure_logging(settings.log_level)
        server = DockerHubMCPServer(settings)
    except HubConfigError as e:
        configure_logging("error")
        logger.error("Invalid configuration: %s", e)
        return 1

    try:
        return asyncio.run(_serve(server))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
