"""
GraphQL MCP bridge exposing `introspect-schema` and `query-graphql` tools over HTTP.

What it does:
- Accepts JSON-RPC 2.0 messages on `POST /mcp` and answers with plain JSON.
- Routes `tools/call` through the tool dispatcher; answers `initialize`, `ping`
  and `tools/list` itself; acknowledges notifications with 202.
- Tracks sessions through the `Mcp-Session-Id` header. A request without a known
  session id gets a fresh session once it has been handled successfully;
  `DELETE /mcp` ends a session.

Error surfaces:
- Tool failures (upstream down, GraphQL errors, schema not introspected yet) come
  back as a normal JSON-RPC result whose text content holds `{error, details}`.
- Malformed envelopes, unknown tools and invalid arguments are HTTP 500 with an
  `{error, details}` body.
- If building or sending the response fails, the client gets a generic 500 unless
  the response had already started, in which case the failure is only logged.

If the client disconnects while a tool is running, the in-flight upstream call is
left to finish on its own, its result is thrown away and the session is dropped.
"""

import argparse
import asyncio
import json
import logging
from typing import Any, Awaitable

import uvicorn
from mcp import types
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import ClientDisconnect, Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.types import Message, Receive, Scope, Send

from config import APP_NAME, BridgeConfig, load_bridge_config, parse_header_args
from dispatcher import DispatchError, ToolDispatcher
from envelope import (
    error_body,
    internal_error_body,
    jsonrpc_error,
    jsonrpc_result,
    tool_result_to_call_result,
)
from graphql_client import GraphQLClient
from schema_cache import SchemaCache
from session_registry import Session, SessionRegistry

SERVER_NAME = "graphql-mcp-server"
SERVER_VERSION = "1.0.0"
MCP_PATH = "/mcp"
MCP_SESSION_ID_HEADER = "Mcp-Session-Id"
JSON_MEDIA_TYPE = "application/json"
DEFAULT_INSTRUCTIONS = (
    "This server proxies a GraphQL API. Call introspect-schema once to load the schema, "
    "then call query-graphql with a query (and optional variables). Tool failures are "
    "reported inside the result text as an object with an `error` field."
)
_DISCONNECT_POLL_S = 0.1

logger = logging.getLogger(APP_NAME)


class MalformedEnvelopeError(Exception):
    pass


class ClientDisconnected(Exception):
    pass


def _json_response(content: Any, status_code: int = 200, headers: dict[str, str] | None = None) -> Response:
    return JSONResponse(content, status_code=status_code, headers=headers, media_type=JSON_MEDIA_TYPE)


def parse_envelope(body: bytes) -> types.JSONRPCRequest | types.JSONRPCNotification:
    try:
        message = json.loads(body)
    except ValueError as exc:
        raise MalformedEnvelopeError(f"Body is not valid JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedEnvelopeError("Expected a single JSON-RPC 2.0 object")
    model = types.JSONRPCRequest if "id" in message else types.JSONRPCNotification
    try:
        return model.model_validate(message)
    except ValidationError as exc:
        raise MalformedEnvelopeError(str(exc)) from exc


def _discard_result(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Discarded result of abandoned request: %s", exc)


async def await_unless_disconnected(request: Request, awaitable: Awaitable) -> Any:
    """Wait for `awaitable`, giving up (without cancelling it) if the client goes away."""
    task = asyncio.ensure_future(awaitable)
    while True:
        done, _ = await asyncio.wait({task}, timeout=_DISCONNECT_POLL_S)
        if done:
            return task.result()
        if await request.is_disconnected():
            task.add_done_callback(_discard_result)
            raise ClientDisconnected()


class McpHttpEndpoint:
    """ASGI endpoint serving the MCP JSON-RPC protocol on a single path."""

    def __init__(
        self,
        *,
        dispatcher: ToolDispatcher,
        sessions: SessionRegistry,
        instructions: str = DEFAULT_INSTRUCTIONS,
    ):
        self.dispatcher = dispatcher
        self.sessions = sessions
        self._instructions = instructions
        self._methods = {
            "initialize": self._handle_initialize,
            "ping": self._handle_ping,
            "tools/list": self._handle_tools_list,
            "tools/call": self._handle_tools_call,
        }

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        response_started = False

        async def tracked_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            response = await self.handle(request)
            if response is not None:
                await response(scope, receive, tracked_send)
        except Exception as exc:
            if response_started:
                logger.exception("MCP response failed after it started; closing connection")
                return
            logger.exception("Error handling MCP request")
            await _json_response(internal_error_body(exc), status_code=500)(scope, receive, send)

    async def handle(self, request: Request) -> Response | None:
        if request.method == "DELETE":
            return self._handle_delete(request)
        if request.method != "POST":
            return _json_response(
                error_body("Method not allowed", f"{request.method} is not supported on {MCP_PATH}"),
                status_code=405,
                headers={"Allow": "POST, DELETE"},
            )

        session = self._lookup_session(request)
        try:
            message = parse_envelope(await request.body())
            logger.debug("MCP message: method=%s", message.method)
            reply = await await_unless_disconnected(request, self.handle_message(message))
        except MalformedEnvelopeError as exc:
            logger.warning("Rejected malformed MCP request: %s", exc)
            return _json_response(error_body("Invalid JSON-RPC request", str(exc)), status_code=500)
        except DispatchError as exc:
            logger.warning("Tool dispatch failed: %s", exc)
            return _json_response(error_body(exc.error, str(exc)), status_code=500)
        except (ClientDisconnect, ClientDisconnected):
            logger.info("Client disconnected before the MCP response was sent")
            if session is not None:
                self.sessions.delete_session(session.id)
            return None

        if session is None:
            session = self.sessions.create_session()
        headers = {MCP_SESSION_ID_HEADER: session.id}
        if reply is None:
            return Response(status_code=202, headers=headers, media_type=JSON_MEDIA_TYPE)
        return _json_response(reply, headers=headers)

    async def handle_message(
        self, message: types.JSONRPCRequest | types.JSONRPCNotification
    ) -> dict | None:
        if isinstance(message, types.JSONRPCNotification):
            return None
        handler = self._methods.get(message.method)
        if handler is None:
            logger.warning("MCP method not found: %s", message.method)
            return jsonrpc_error(message.id, types.METHOD_NOT_FOUND, f"Method not found: {message.method}")
        result = await handler(message.params or {})
        return jsonrpc_result(message.id, result)

    def _lookup_session(self, request: Request) -> Session | None:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        if not session_id:
            return None
        return self.sessions.get_session(session_id)

    def _handle_delete(self, request: Request) -> Response:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        if session_id:
            self.sessions.delete_session(session_id)
        return _json_response({})

    async def _handle_initialize(self, params: dict[str, Any]) -> types.InitializeResult:
        client_info = params.get("clientInfo")
        if isinstance(client_info, dict):
            logger.info(
                "MCP client connected: %s %s",
                client_info.get("name", "unknown"),
                client_info.get("version", ""),
            )
        requested = params.get("protocolVersion")
        if requested not in SUPPORTED_PROTOCOL_VERSIONS:
            requested = types.LATEST_PROTOCOL_VERSION
        return types.InitializeResult(
            protocolVersion=requested,
            capabilities=types.ServerCapabilities(tools=types.ToolsCapability(listChanged=False)),
            serverInfo=types.Implementation(name=SERVER_NAME, version=SERVER_VERSION),
            instructions=self._instructions,
        )

    async def _handle_ping(self, params: dict[str, Any]) -> dict:
        return {}

    async def _handle_tools_list(self, params: dict[str, Any]) -> types.ListToolsResult:
        return types.ListToolsResult(tools=self.dispatcher.list_tools())

    async def _handle_tools_call(self, params: dict[str, Any]) -> types.CallToolResult:
        result = await self.dispatcher.call_tool(params.get("name"), params.get("arguments"))
        return tool_result_to_call_result(result)


def create_app(
    config: BridgeConfig | None = None,
    *,
    client=None,
    schema_cache: SchemaCache | None = None,
    sessions: SessionRegistry | None = None,
) -> Starlette:
    if config is None:
        config = load_bridge_config()
    if client is None:
        client = GraphQLClient(config=config)
    if schema_cache is None:
        schema_cache = SchemaCache()
    if sessions is None:
        sessions = SessionRegistry()

    endpoint = McpHttpEndpoint(
        dispatcher=ToolDispatcher(client=client, schema_cache=schema_cache),
        sessions=sessions,
    )
    app = Starlette(routes=[Route(MCP_PATH, endpoint=endpoint)])
    app.state.mcp_endpoint = endpoint
    return app


def build_arg_parser(defaults: BridgeConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the GraphQL MCP bridge.")
    parser.add_argument(
        "--endpoint",
        default=defaults.endpoint_url,
        help="GraphQL endpoint URL to proxy (default: GRAPHQL_ENDPOINT_URL or the public countries API).",
    )
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        help="Add an HTTP header for upstream requests, like 'Authorization: Bearer ...' (repeatable).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=defaults.timeout_s,
        help="HTTP timeout (seconds) for upstream GraphQL requests.",
    )
    parser.add_argument("--host", default=defaults.host, help="Host to listen on (default: 127.0.0.1).")
    parser.add_argument("--port", type=int, default=defaults.port, help="Port to listen on (default: 3000).")
    parser.add_argument(
        "--log-level",
        default=defaults.log_level,
        help="Log level (DEBUG, INFO, WARNING, ERROR).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    try:
        defaults = load_bridge_config()
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    args = build_arg_parser(defaults).parse_args(argv)
    log_level = str(args.log_level).upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO))

    try:
        headers = dict(defaults.headers)
        headers.update(parse_header_args(args.header))
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    config = defaults.with_overrides(
        endpoint_url=args.endpoint.strip(),
        headers=headers,
        timeout_s=float(args.timeout),
        host=args.host,
        port=args.port,
        log_level=log_level,
    )
    app = create_app(config)

    print(
        f"Starting {APP_NAME} on http://{config.host}:{config.port}{MCP_PATH}, "
        f"endpoint={config.endpoint_url}",
        flush=True,
    )
    uvicorn.run(app, host=config.host, port=config.port, log_level=log_level.lower())


if __name__ == "__main__":
    main()
