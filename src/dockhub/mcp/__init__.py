"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

MCP front end: JSON-RPC protocol handling and the stdio transport.
"""

from .protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    MCP_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    NOT_INITIALIZED,
    PARSE_ERROR,
    MCPProtocolHandler,
    RpcSession,
    SessionState,
    jsonrpc_error,
    jsonrpc_notification,
    jsonrpc_response,
)
from .stdio import StdioServer, ThreadedLineReader, stdout_writer

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "MCP_PROTOCOL_VERSION",
    "METHOD_NOT_FOUND",
    "NOT_INITIALIZED",
    "PARSE_ERROR",
    "MCPProtocolHandler",
    "RpcSession",
    "SessionState",
    "jsonrpc_error",
    "jsonrpc_notification",
    "jsonrpc_response",
    "StdioServer",
    "ThreadedLineReader",
    "stdout_writer",
]
