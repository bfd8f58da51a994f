"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Line-delimited JSON-RPC transport over stdin/stdout.

Requests are read in arrival order. ``initialize`` is handled inline so the
handshake completes before anything read after it; every other request runs
as its own task and responses are written as they complete. Each outbound
message is one complete JSON line.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import threading
from collections.abc import Awaitable, Callable
from typing import Any, BinaryIO, TextIO

from .protocol import MCPProtocolHandler

logger = logging.getLogger("dockhub.mcp.stdio")

LineReader = Callable[[], Awaitable[str]]
LineWriter = Callable[[str], None]

DRAIN_GRACE_S = 5.0


class ThreadedLineReader:
    """
    Reads a byte stream on a daemon thread and hands lines to the loop.

    Each line is decoded on its own with undecodable bytes replaced, so a
    bad line reaches the protocol handler as a parse failure instead of
    ending the stream. Text streams are read through their ``buffer`` when
    they have one. Returns ``""`` once the stream is exhausted. A daemon
    thread never holds interpreter shutdown when stdin stays open after a
    stop signal.
    """

    def __init__(
        self,
        stream: BinaryIO | TextIO,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._stream = getattr(stream, "buffer", stream)
        self._loop = loop
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        loop = self._loop or asyncio.get_running_loop()
        self._thread = threading.Thread(target=self._pump, args=(loop,), daemon=True)
        self._thread.start()

    def _pump(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            for raw in self._stream:
                line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
                loop.call_soon_threadsafe(self._queue.put_nowait, line)
        except (OSError, ValueError) as e:
            logger.warning("stdin reader stopped: %s", e)
        finally:
            try:
                loop.call_soon_threadsafe(self._queue.put_nowait, "")
            except RuntimeError:
                pass  # loop already closed

    async def __call__(self) -> str:
        self.start()
        return await self._queue.get()


def stdout_writer(stream: TextIO | None = None) -> LineWriter:
    out = stream or sys.stdout

    def write(line: str) -> None:
        out.write(line)
        out.flush()

    return write


class StdioServer:
    """
    Runs an ``MCPProtocolHandler`` over a line reader and writer.

    At end-of-stream every in-flight request is drained. After ``stop()``
    in-flight requests get ``drain_grace_s`` to finish and are then
    cancelled without a response; a second ``stop()`` cancels them at once.
    """

    def __init__(
        self, handler: MCPProtocolHandler, *, drain_grace_s: float = DRAIN_GRACE_S
    ) -> None:
        self._handler = handler
        self._drain_grace_s = drain_grace_s
        self._stop = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()

    def stop(self) -> None:
        """Stop reading; in-flight requests get a bounded grace period."""
        if self._stop.is_set():
            for task in self._tasks:
                task.cancel()
            return
        self._stop.set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def serve(self, reader: LineReader, write: LineWriter) -> int:
        """Serve until end-of-stream or ``stop()``; returns the exit status."""
        logger.info("Serving MCP over stdio")
        stop_wait = asyncio.ensure_future(self._stop.wait())
        try:
            while not self._stop.is_set():
                read = asyncio.ensure_future(reader())
                done, _ = await asyncio.wait({read, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
                if read not in done:
                    read.cancel()
                    break
                line = read.result()
                if line == "":
                    logger.info("stdin closed")
                    break
                if _is_initialize(line):
                    await self._process(line, write)
                else:
                    task = asyncio.create_task(self._process(line, write))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
        finally:
            stop_wait.cancel()
            if self._tasks:
                await self._drain(self._drain_grace_s if self._stop.is_set() else None)
            self._handler.session.close()
        return 0

    async def _drain(self, timeout: float | None) -> None:
        pending = set(self._tasks)
        logger.info("Draining %d in-flight request(s)", len(pending))
        _, pending = await asyncio.wait(pending, timeout=timeout)
        if pending:
            logger.warning(
                "Cancelling %d request(s) still running after %.1fs", len(pending), timeout
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _process(self, line: str, write: LineWriter) -> None:
        try:
            outbound = await self._handler.handle_line(line)
        except Exception as e:
            logger.error("Unhandled error processing line: %s", type(e).__name__)
            return
        for message in outbound:
            _emit(write, message)


def _emit(write: LineWriter, message: dict[str, Any]) -> None:
    try:
        write(json.dumps(message, default=str) + "\n")
    except (OSError, ValueError) as e:
        logger.error("Failed to write response: %s", e)


def _is_initialize(line: str) -> bool:
    if '"initialize"' not in line:
        return False
    try:
        message = json.loads(line)
    except ValueError:
        return False
    return isinstance(message, dict) and message.get("method") == "initialize"
