"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Protocol-layer helpers for MCP JSON-RPC request handling.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from ..errors import HubValidationError, classify_error
from ..operations import OperationNotFoundError, OperationRegistry

logger = logging.getLogger("dockhub.mcp")

MCP_PROTOCOL_VERSION = "2024-11-05"

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# Server-defined
NOT_INITIALIZED = -32002

MethodHandler = Callable[[dict[str, Any]], Awaitable[Any]]

_ID_PATTERN = re.compile(r'"id"\s*:\s*("(?:[^"\\]|\\.)*"|-?\d+)')


def jsonrpc_response(id: Any, result: Any) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 success response."""
    return {"jsonrpc": "2.0", "id": id, "result": result}


def jsonrpc_error(
    id: Any,
    code: int,
    message: str,
    data: Any = None,
) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 error response."""
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


def jsonrpc_notification(method: str, params: Any = None) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        message["params"] = params
    return message


def recover_id(line: str) -> Any:
    """Best-effort id extraction from a line that is not valid JSON."""
    match = _ID_PATTERN.search(line)
    if match is None:
        return None
    try:
        return json.loads(match.group(1))
    except ValueError:
        return None


class _ParamsError(ValueError):
    pass


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CLOSED = "closed"


class RpcSession:
    """Handshake state for one client connection."""

    def __init__(self) -> None:
        self.state = SessionState.UNINITIALIZED
        self.client_info: dict[str, Any] = {}
        self.protocol_version: str | None = None

    @property
    def initialized(self) -> bool:
        return self.state is SessionState.INITIALIZED

    def close(self) -> None:
        self.state = SessionState.CLOSED


class MCPProtocolHandler:
    """
    Handles MCP methods and JSON-RPC envelope validation.

    Every inbound message yields a list of outbound messages: empty for
    notifications, one response for requests, and a response followed by
    the ``notifications/initialized`` notification for ``initialize``.
    Transport concerns (line framing, concurrency) live in ``stdio``.
    """

    def __init__(
        self,
        *,
        registry: OperationRegistry,
        server_name: str,
        server_version: str,
        health: Callable[[], dict[str, Any]] | None = None,
        session: RpcSession | None = None,
    ) -> None:
        self._registry = registry
        self._server_name = server_name
        self._server_version = server_version
        self._health = health
        self.session = session or RpcSession()
        self._methods: dict[str, MethodHandler] = {
            "tools/list": self.handle_tools_list,
            "tools/call": self.handle_tools_call,
            "resources/list": self._empty("resources"),
            "prompts/list": self._empty("prompts"),
            "health": self.handle_health,
        }

    def register_method(self, name: str, handler: MethodHandler) -> None:
        """Add or replace a method available after ``initialize``."""
        self._methods[name] = handler

    def methods(self) -> list[str]:
        return ["initialize", "ping", *self._methods]

    async def handle_line(self, line: str) -> list[dict[str, Any]]:
        """Parse one transport line and handle it."""
        text = line.strip()
        if not text:
            return []
        try:
            message = json.loads(text)
        except ValueError:
            msg_id = recover_id(text)
            if msg_id is None:
                logger.warning("Dropping unparseable line (%d bytes)", len(text))
                return []
            logger.warning("Unparseable line for request id %r", msg_id)
            return [jsonrpc_error(msg_id, INTERNAL_ERROR, "Internal error")]
        return await self.handle_message(message)

    async def handle_message(self, message: Any) -> list[dict[str, Any]]:
        """Route one JSON-RPC 2.0 message to the appropriate MCP method."""
        if not isinstance(message, dict):
            return [jsonrpc_error(None, INVALID_REQUEST, "Invalid Request")]

        msg_id = message.get("id")
        method = message.get("method")
        is_notification = "id" not in message or msg_id is None

        if "jsonrpc" in message and message["jsonrpc"] != "2.0":
            if is_notification:
                return []
            return [jsonrpc_error(msg_id, INVALID_REQUEST, "Invalid JSON-RPC version")]

        if not method or not isinstance(method, str):
            if is_notification:
                # Stray responses from the client carry no method.
                return []
            return [jsonrpc_error(msg_id, INVALID_REQUEST, "Missing method")]

        if is_notification:
            self._handle_notification(method, message.get("params"))
            return []

        params = message.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return [jsonrpc_error(msg_id, INVALID_PARAMS, "'params' must be an object")]

        if method == "initialize":
            return self.handle_initialize(msg_id, params)

        if not self.session.initialized:
            return [jsonrpc_error(msg_id, NOT_INITIALIZED, "Server not initialized")]

        if method == "ping":
            return [jsonrpc_response(msg_id, {"pong": True})]

        handler = self._methods.get(method)
        if handler is None:
            return [jsonrpc_error(msg_id, METHOD_NOT_FOUND, f"Method not found: {method}")]

        try:
            result = await handler(params)
        except _ParamsError as e:
            return [jsonrpc_error(msg_id, INVALID_PARAMS, str(e))]
        except Exception as e:
            logger.error("Error handling MCP method %s: %s", method, type(e).__name__)
            return [jsonrpc_error(msg_id, INTERNAL_ERROR, "Internal error")]
        return [jsonrpc_response(msg_id, result)]

    def handle_initialize(self, msg_id: Any, params: dict[str, Any]) -> list[dict[str, Any]]:
        """Handle ``initialize``; always answered, even when repeated."""
        self.session.protocol_version = params.get("protocolVersion")
        client_info = params.get("clientInfo")
        self.session.client_info = client_info if isinstance(client_info, dict) else {}
        self.session.state = SessionState.INITIALIZED
        logger.info(
            "Client initialized: %s (protocol %s)",
            self.session.client_info.get("name", "unknown"),
            self.session.protocol_version,
        )
        result = {
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {},
                "prompts": {},
            },
            "serverInfo": {
                "name": self._server_name,
                "version": self._server_version,
            },
        }
        return [
            jsonrpc_response(msg_id, result),
            jsonrpc_notification("notifications/initialized"),
        ]

    async def handle_tools_list(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle ``tools/list`` and return MCP tool schemas."""
        _ = params
        return {
            "tools": [
                {
                    "name": op.spec.name,
                    "description": op.spec.description,
                    "inputSchema": op.input_schema(),
                }
                for op in self._registry.list()
            ]
        }

    async def handle_tools_call(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle ``tools/call`` and return MCP content result."""
        tool_name = params.get("name")
        if not tool_name or not isinstance(tool_name, str):
            raise _ParamsError("Missing 'name' in tools/call params")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise _ParamsError("'arguments' must be an object")

        if not self._registry.has(tool_name):
            raise _ParamsError(f"Unknown tool: {tool_name}")

        try:
            output = await self._registry.call(tool_name, arguments)
        except OperationNotFoundError as e:
            raise _ParamsError(str(e)) from e
        except Exception as e:
            error = classify_error(e)
            if not isinstance(error, HubValidationError):
                logger.error("Tool %s failed: %s: %s", tool_name, type(error).__name__, error)
            payload = {
                "success": False,
                "error": str(error),
                "error_type": error.kind,
                "tool": tool_name,
            }
            return {"content": _text_content(payload), "isError": True}

        return {"content": _text_content(output), "isError": False}

    async def handle_health(self, params: dict[str, Any]) -> dict[str, Any]:
        _ = params
        if self._health is None:
            return {"status": "healthy"}
        return self._health()

    def _handle_notification(self, method: str, params: Any) -> None:
        if method == "notifications/initialized":
            return
        if method == "notifications/cancelled":
            request_id = params.get("requestId") if isinstance(params, dict) else None
            logger.debug("Cancellation requested for %r; ignoring", request_id)
            return
        logger.debug("Ignoring notification %s", method)

    @staticmethod
    def _empty(key: str) -> MethodHandler:
        async def handler(params: dict[str, Any]) -> dict[str, Any]:
            _ = params
            return {key: []}

        return handler


def _text_content(output: Any) -> list[dict[str, Any]]:
    if isinstance(output, str):
        return [{"type": "text", "text": output}]
    if output is None:
        return [{"type": "text", "text": ""}]
    return [{"type": "text", "text": json.dumps(output, indent=2, default=str)}]
