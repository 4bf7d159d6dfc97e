"""
Tool protocol adapter: exposes the engine operations as MCP tools.

Two transports share one ``ToolProtocolAdapter``:

* HTTP at ``/mcp``: JSON-RPC calls over POST, a server-sent-events stream
  over GET, session teardown over DELETE. The authorization gate runs as a
  FastAPI dependency before any of these handlers.
* stdio, via the MCP SDK low-level ``Server``.
"""

from typing import Any, Dict, List, Optional
import json
import logging

import anyio.to_thread
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    CallToolResult,
    Implementation,
    InitializeResult,
    ServerCapabilities,
    TextContent,
    Tool,
    ToolsCapability,
)
from sse_starlette.sse import EventSourceResponse

from . import __version__
from .auth import require_auth
from .engine import DuckDBEngine, EngineFailure
from .errors import GENERIC_ERROR_MESSAGE
from .sessions import SessionManager, SessionStateError, ToolSession
from .tools import TOOLS, ToolDefinition

logger = logging.getLogger(__name__)

SERVER_NAME = "white-duck"
SESSION_HEADER = "mcp-session-id"
INSTRUCTIONS = (
    "DuckDB SQL interface. Use execute_sql to run queries, "
    "list_schemas and list_tables to explore schema."
)
SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18", LATEST_PROTOCOL_VERSION)


class ToolCallError(Exception):
    """A tool call rejected before execution (unknown tool or invalid arguments)."""

    code = INVALID_PARAMS


def jsonrpc_result(request_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def jsonrpc_error(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


class ToolProtocolAdapter:
    """Validates and runs tool calls, turning failures into structured results."""

    def __init__(self, engine: DuckDBEngine, tools=TOOLS):
        self.engine = engine
        self._tools: Dict[str, ToolDefinition] = {t.name: t for t in tools}
        self._validators = {t.name: Draft7Validator(t.input_schema) for t in tools}

    def list_tools(self) -> List[Tool]:
        return [t.to_tool() for t in self._tools.values()]

    def initialize_result(self, params: Dict[str, Any]) -> InitializeResult:
        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        return InitializeResult(
            protocolVersion=version,
            capabilities=ServerCapabilities(tools=ToolsCapability(listChanged=False)),
            serverInfo=Implementation(name=SERVER_NAME, version=__version__),
            instructions=INSTRUCTIONS,
        )

    def validate_arguments(self, name: str, arguments: Any) -> ToolDefinition:
        """
        Resolve a tool and check its arguments against the input schema.

        Raises:
            ToolCallError: Unknown tool or arguments not matching the schema
        """
        tool = self._tools.get(name) if isinstance(name, str) else None
        if tool is None:
            raise ToolCallError(f"Unknown tool: {name}")
        if not isinstance(arguments, dict):
            raise ToolCallError(f"Arguments for '{name}' must be an object")
        error = best_match(self._validators[name].iter_errors(arguments))
        if error is not None:
            raise ToolCallError(f"Invalid arguments for '{name}': {error.message}")
        return tool

    async def call_tool(self, session: ToolSession, name: str, arguments: Any) -> CallToolResult:
        """
        Run one tool call within a session.

        Engine failures and unexpected exceptions become an ``isError`` result;
        the session stays usable either way.

        Raises:
            SessionStateError: The session is not established
            ToolCallError: The call was rejected before execution
        """
        session.require_established()
        tool = self.validate_arguments(name, arguments)

        try:
            outcome = await anyio.to_thread.run_sync(tool.invoke, self.engine, arguments)
        except Exception as e:
            logger.error(f"Error executing tool '{name}': {e}", exc_info=True)
            outcome = EngineFailure(GENERIC_ERROR_MESSAGE)

        if isinstance(outcome, EngineFailure):
            session.publish(_log_notification("error", {"tool": name, "error": outcome.message}))
            return CallToolResult(
                content=[TextContent(type="text", text=f"Error: {outcome.message}")],
                isError=True,
            )

        session.publish(_log_notification("info", {"tool": name, "status": "ok"}))
        return CallToolResult(content=[TextContent(type="text", text=json.dumps(outcome, indent=2))])

    async def dispatch(self, session: ToolSession, message: Dict[str, Any]) -> Dict[str, Any]:
        """Handle one JSON-RPC request on an established session."""
        request_id = message.get("id")
        method = message["method"]
        params = message.get("params") or {}
        if not isinstance(params, dict):
            return jsonrpc_error(request_id, INVALID_PARAMS, "params must be an object")

        if method == "ping":
            return jsonrpc_result(request_id, {})

        if method == "tools/list":
            return jsonrpc_result(request_id, {"tools": [_dump(t) for t in self.list_tools()]})

        if method == "tools/call":
            try:
                result = await self.call_tool(session, params.get("name"), params.get("arguments", {}))
            except ToolCallError as e:
                return jsonrpc_error(request_id, e.code, str(e))
            except SessionStateError as e:
                return jsonrpc_error(request_id, INVALID_REQUEST, str(e))
            return jsonrpc_result(request_id, _dump(result))

        logger.warning(f"Unknown method: {method}")
        return jsonrpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")


def _log_notification(level: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "method": "notifications/message",
        "params": {"level": level, "logger": SERVER_NAME, "data": data},
    }


def _rpc_response(body: Dict[str, Any], status_code: int = 200, headers=None) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"cache-control": "no-store", **(headers or {})})


# HTTP transport

router = APIRouter(dependencies=[Depends(require_auth)])


def _session_from_request(request: Request) -> tuple:
    """Resolve the session header; returns (session, error_response)."""
    sessions: SessionManager = request.app.state.sessions
    session_id = request.headers.get(SESSION_HEADER)
    if not session_id:
        return None, _rpc_response(
            jsonrpc_error(None, INVALID_REQUEST, "Missing Mcp-Session-Id header"), status_code=400
        )
    session = sessions.get(session_id)
    if session is None:
        return None, _rpc_response(
            jsonrpc_error(None, INVALID_REQUEST, "Session not found"), status_code=404
        )
    return session, None


@router.post("/mcp")
async def mcp_post(request: Request):
    """JSON-RPC calls. ``initialize`` opens a session; everything else needs one."""
    adapter: ToolProtocolAdapter = request.app.state.protocol
    sessions: SessionManager = request.app.state.sessions

    try:
        message = json.loads(await request.body())
    except ValueError:
        return _rpc_response(jsonrpc_error(None, PARSE_ERROR, "Parse error"), status_code=400)

    if (
        not isinstance(message, dict)
        or message.get("jsonrpc") != "2.0"
        or not isinstance(message.get("method"), str)
    ):
        request_id = message.get("id") if isinstance(message, dict) else None
        return _rpc_response(jsonrpc_error(request_id, INVALID_REQUEST, "Invalid Request"), status_code=400)

    method = message["method"]
    logger.debug(f"[MCP] Received JSON-RPC request: method={method} id={message.get('id')}")

    if method == "initialize":
        if request.headers.get(SESSION_HEADER):
            return _rpc_response(
                jsonrpc_error(message.get("id"), INVALID_REQUEST, "Session already initialized"),
                status_code=400,
            )
        params = message.get("params") if isinstance(message.get("params"), dict) else {}
        session = sessions.open()
        result = adapter.initialize_result(params)
        return _rpc_response(
            jsonrpc_result(message.get("id"), _dump(result)),
            headers={SESSION_HEADER: session.session_id},
        )

    session, error = _session_from_request(request)
    if error is not None:
        return error

    if method.startswith("notifications/"):
        logger.debug(f"[MCP] Received notification: {method}")
        return Response(status_code=202)

    try:
        body = await adapter.dispatch(session, message)
    except Exception as e:
        logger.error(f"[MCP] Error handling {method}: {e}", exc_info=True)
        body = jsonrpc_error(message.get("id"), INTERNAL_ERROR, GENERIC_ERROR_MESSAGE)
    return _rpc_response(body)


@router.get("/mcp")
async def mcp_stream(request: Request):
    """Long-lived server-to-client event stream for a session."""
    sessions: SessionManager = request.app.state.sessions
    session, error = _session_from_request(request)
    if error is not None:
        return error
    if session.stream_attached:
        return _rpc_response(
            jsonrpc_error(None, INVALID_REQUEST, "Stream already open for this session"), status_code=409
        )
    session.stream_attached = True

    async def event_generator():
        try:
            async for event in session.events():
                if event is None:
                    yield {"comment": "keepalive"}
                else:
                    yield {"event": "message", "data": json.dumps(event)}
        finally:
            # Disconnect or shutdown both end the session
            sessions.close(session.session_id)

    logger.info(f"[MCP] Event stream opened for session {session.session_id}")
    return EventSourceResponse(event_generator(), headers={SESSION_HEADER: session.session_id})


@router.delete("/mcp")
async def mcp_delete(request: Request):
    sessions: SessionManager = request.app.state.sessions
    session, error = _session_from_request(request)
    if error is not None:
        return error
    sessions.close(session.session_id)
    return Response(status_code=204)


# stdio transport

def build_mcp_server(adapter: ToolProtocolAdapter, session: ToolSession) -> Server:
    """Low-level MCP server bound to one stdio session."""
    server = Server(SERVER_NAME, version=__version__, instructions=INSTRUCTIONS)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return adapter.list_tools()

    @server.call_tool()
    async def call_tool(name: str, arguments: Optional[dict]) -> list[TextContent]:
        result = await adapter.call_tool(session, name, arguments or {})
        if result.isError:
            # The SDK reports raised exceptions as isError results
            raise RuntimeError(result.content[0].text)
        return list(result.content)

    return server


async def run_stdio(adapter: ToolProtocolAdapter) -> None:
    sessions = SessionManager()
    session = sessions.open()
    server = build_mcp_server(adapter, session)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        sessions.close_all()
