"""Translation of tool results and errors into MCP / JSON-RPC wire shapes.

Tool failures are reported inside a normal JSON-RPC result: the content block
text carries `{"error": ..., "details": ...}` and the JSON-RPC envelope itself
is a success. Clients have to look at the payload to tell the two apart.
"""
from __future__ import annotations

import json
from typing import Any

from mcp import types
from pydantic import BaseModel

from tool_handlers import Failure, Success, ToolResult

JSONRPC_VERSION = "2.0"
INTERNAL_ERROR_MESSAGE = "Internal server error"


def tool_result_payload(result: ToolResult) -> dict:
    if isinstance(result, Success):
        return {"data": result.payload}
    if isinstance(result, Failure):
        payload: dict[str, Any] = {"error": result.message}
        if result.details is not None:
            payload["details"] = result.details
        return payload
    raise TypeError(f"Unsupported tool result: {type(result).__name__}")


def tool_result_to_call_result(result: ToolResult) -> types.CallToolResult:
    text = json.dumps(tool_result_payload(result))
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)])


def dump_model(model: BaseModel) -> dict:
    return model.model_dump(by_alias=True, mode="json", exclude_none=True)


def jsonrpc_result(request_id: types.RequestId, result: BaseModel | dict) -> dict:
    if isinstance(result, BaseModel):
        result = dump_model(result)
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def jsonrpc_error(request_id: types.RequestId, code: int, message: str, data: Any = None) -> dict:
    error = types.JSONRPCError(
        jsonrpc=JSONRPC_VERSION,
        id=request_id,
        error=types.ErrorData(code=code, message=message, data=data),
    )
    return dump_model(error)


def error_body(error: str, details: Any = None) -> dict:
    """Body of an HTTP 500 for failures that never reached a tool handler."""
    return {"error": error, "details": details}


def internal_error_body(exc: BaseException) -> dict:
    return error_body(INTERNAL_ERROR_MESSAGE, str(exc))
