from __future__ import annotations

import asyncio
import json

from pydantic import BaseModel

from dockhub.errors import HubServerError
from dockhub.mcp import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    NOT_INITIALIZED,
    MCPProtocolHandler,
    SessionState,
)
from dockhub.operations import OperationRegistry, operation


def run_async(coro):
    return asyncio.run(coro)


class _LookupArgs(BaseModel):
    repository: str


@operation(args_model=_LookupArgs, name="lookup", description="Look up a repository")
async def lookup(args: _LookupArgs) -> dict:
    if args.repository == "down":
        raise HubServerError("GET /v2/down failed with HTTP 500", status=500)
    if args.repository == "crash":
        raise KeyError("secret-internal-detail")
    return {"success": True, "data": {"repository": args.repository}}


def make_handler() -> MCPProtocolHandler:
    registry = OperationRegistry()
    registry.register(lookup)
    return MCPProtocolHandler(
        registry=registry,
        server_name="test-server",
        server_version="0.0.1",
        health=lambda: {"status": "healthy", "tools": 1},
    )


def request(id, method, params=None):
    message = {"jsonrpc": "2.0", "id": id, "method": method}
    if params is not None:
        message["params"] = params
    return message


INITIALIZE = request(
    0,
    "initialize",
    {"protocolVersion": "2024-11-05", "clientInfo": {"name": "tests", "version": "1"}},
)


def test_initialize_returns_response_then_initialized_notification():
    async def scenario() -> None:
        handler = make_handler()
        out = await handler.handle_message(INITIALIZE)

        assert len(out) == 2
        response, notification = out
        assert response["id"] == 0
        assert set(response["result"]) == {"protocolVersion", "capabilities", "serverInfo"}
        assert response["result"]["serverInfo"] == {"name": "test-server", "version": "0.0.1"}
        assert notification == {"jsonrpc": "2.0", "method": "notifications/initialized"}
        assert "id" not in notification
        assert handler.session.state is SessionState.INITIALIZED

    run_async(scenario())


def test_requests_before_initialize_are_rejected():
    async def scenario() -> None:
        handler = make_handler()
        call = request(1, "tools/call", {"name": "lookup", "arguments": {"repository": "nginx"}})

        rejected = await handler.handle_message(call)
        assert rejected[0]["error"]["code"] == NOT_INITIALIZED
        assert (await handler.handle_message(request(2, "ping")))[0]["error"]["code"] == NOT_INITIALIZED

        await handler.handle_message(INITIALIZE)
        accepted = await handler.handle_message(call)
        assert "error" not in accepted[0]
        assert accepted[0]["result"]["isError"] is False

    run_async(scenario())


def test_notifications_produce_no_output_in_any_state():
    async def scenario() -> None:
        handler = make_handler()
        assert await handler.handle_message({"jsonrpc": "2.0", "method": "tools/list"}) == []
        await handler.handle_message(INITIALIZE)
        assert (
            await handler.handle_message(
                {"jsonrpc": "2.0", "method": "notifications/cancelled", "params": {"requestId": 5}}
            )
            == []
        )
        assert (
            await handler.handle_message({"jsonrpc": "2.0", "method": "notifications/initialized"})
            == []
        )

    run_async(scenario())


def test_builtin_methods_after_initialize():
    async def scenario() -> None:
        handler = make_handler()
        await handler.handle_message(INITIALIZE)

        assert (await handler.handle_message(request(1, "ping")))[0]["result"] == {"pong": True}
        assert (await handler.handle_message(request(2, "resources/list")))[0]["result"] == {
            "resources": []
        }
        assert (await handler.handle_message(request(3, "prompts/list")))[0]["result"] == {
            "prompts": []
        }
        health = (await handler.handle_message(request(4, "health")))[0]["result"]
        assert health["status"] == "healthy"

        tools = (await handler.handle_message(request(5, "tools/list")))[0]["result"]["tools"]
        assert tools[0]["name"] == "lookup"
        assert tools[0]["inputSchema"]["required"] == ["repository"]

        missing = await handler.handle_message(request(6, "resources/read"))
        assert missing[0]["error"]["code"] == METHOD_NOT_FOUND

    run_async(scenario())


def test_registered_methods_are_dispatched():
    async def scenario() -> None:
        handler = make_handler()

        async def version(params):
            return {"v": params.get("x", 0) + 1}

        handler.register_method("custom/version", version)
        await handler.handle_message(INITIALIZE)
        out = await handler.handle_message(request(1, "custom/version", {"x": 1}))
        assert out[0]["result"] == {"v": 2}

    run_async(scenario())


def test_tools_call_errors():
    async def scenario() -> None:
        handler = make_handler()
        await handler.handle_message(INITIALIZE)

        unknown = await handler.handle_message(request(1, "tools/call", {"name": "nope"}))
        assert unknown[0]["error"]["code"] == INVALID_PARAMS

        no_name = await handler.handle_message(request(2, "tools/call", {}))
        assert no_name[0]["error"]["code"] == INVALID_PARAMS

        bad_args = await handler.handle_message(
            request(3, "tools/call", {"name": "lookup", "arguments": []})
        )
        assert bad_args[0]["error"]["code"] == INVALID_PARAMS

        failed = await handler.handle_message(
            request(4, "tools/call", {"name": "lookup", "arguments": {"repository": "down"}})
        )
        result = failed[0]["result"]
        assert result["isError"] is True
        payload = json.loads(result["content"][0]["text"])
        assert payload["success"] is False
        assert payload["error_type"] == "server_error"
        assert payload["tool"] == "lookup"

        invalid = await handler.handle_message(
            request(5, "tools/call", {"name": "lookup", "arguments": {}})
        )
        payload = json.loads(invalid[0]["result"]["content"][0]["text"])
        assert payload["error_type"] == "validation"

    run_async(scenario())


def test_unexpected_failures_are_reported_without_tracebacks():
    async def scenario() -> None:
        handler = make_handler()
        await handler.handle_message(INITIALIZE)

        async def explode(params):
            raise RuntimeError("token=abc123 leaked")

        handler.register_method("explode", explode)
        out = await handler.handle_message(request(1, "explode"))
        assert out[0]["error"] == {"code": INTERNAL_ERROR, "message": "Internal error"}

        crashed = await handler.handle_message(
            request(2, "tools/call", {"name": "lookup", "arguments": {"repository": "crash"}})
        )
        text = crashed[0]["result"]["content"][0]["text"]
        assert "Traceback" not in text

    run_async(scenario())


def test_envelope_validation():
    async def scenario() -> None:
        handler = make_handler()
        assert (await handler.handle_message([1, 2]))[0]["error"]["code"] == INVALID_REQUEST
        wrong_version = {"jsonrpc": "1.0", "id": 1, "method": "ping"}
        assert (await handler.handle_message(wrong_version))[0]["error"]["code"] == INVALID_REQUEST
        no_method = {"jsonrpc": "2.0", "id": 1}
        assert (await handler.handle_message(no_method))[0]["error"]["code"] == INVALID_REQUEST

    run_async(scenario())


def test_handle_line_recovers_ids_from_corrupt_json():
    async def scenario() -> None:
        handler = make_handler()
        assert await handler.handle_line("{not json at all") == []
        assert await handler.handle_line("   ") == []

        out = await handler.handle_line('{"jsonrpc": "2.0", "id": 7, "method": ')
        assert out == [
            {"jsonrpc": "2.0", "id": 7, "error": {"code": INTERNAL_ERROR, "message": "Internal error"}}
        ]

        out = await handler.handle_line('{"id": "abc", "method": "ping"')
        assert out[0]["id"] == "abc"

    run_async(scenario())
