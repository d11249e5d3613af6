from __future__ import annotations

import logging
from typing import Any, Iterable

from mcp import types
from pydantic import BaseModel, ValidationError

from config import APP_NAME
from schema_cache import SchemaCache
from tool_handlers import TOOLS, ToolResult, ToolSpec, UpstreamClient

logger = logging.getLogger(APP_NAME)


class DispatchError(Exception):
    """A tools/call request that could not be routed to a handler."""

    error = "Dispatch failed"


class UnknownToolError(DispatchError):
    error = "Unknown tool"

    def __init__(self, tool_name: Any):
        super().__init__(f"Tool {tool_name!r} not found")
        self.tool_name = tool_name


class InvalidArgumentsError(DispatchError):
    error = "Invalid arguments"

    def __init__(self, tool_name: str, problems: dict[str, str]):
        rendered = "; ".join(f"{field}: {problem}" for field, problem in problems.items())
        super().__init__(f"Invalid arguments for tool {tool_name!r}: {rendered}")
        self.tool_name = tool_name
        self.fields = list(problems)


def _validation_problems(exc: ValidationError) -> dict[str, str]:
    problems: dict[str, str] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "arguments"
        problems.setdefault(field, err.get("msg", "invalid value"))
    return problems


class ToolDispatcher:
    """Routes tools/call requests to the matching tool handler.

    Arguments are validated against the tool's pydantic model before the
    handler runs, so handlers only ever see typed input. Unknown argument
    fields are dropped by the models rather than rejected.
    """

    def __init__(
        self,
        *,
        client: UpstreamClient,
        schema_cache: SchemaCache,
        tools: Iterable[ToolSpec] = TOOLS,
    ):
        self._client = client
        self._schema_cache = schema_cache
        self._tools = {tool.name: tool for tool in tools}

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[types.Tool]:
        return [
            types.Tool(name=tool.name, description=tool.description, inputSchema=tool.input_schema())
            for tool in self._tools.values()
        ]

    def resolve(self, name: Any) -> ToolSpec:
        if not isinstance(name, str) or name not in self._tools:
            raise UnknownToolError(name)
        return self._tools[name]

    @staticmethod
    def parse_arguments(tool: ToolSpec, arguments: Any) -> BaseModel:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArgumentsError(tool.name, {"arguments": "must be an object"})
        try:
            return tool.arguments_model.model_validate(arguments)
        except ValidationError as exc:
            raise InvalidArgumentsError(tool.name, _validation_problems(exc)) from exc

    async def call_tool(self, name: Any, arguments: Any) -> ToolResult:
        tool = self.resolve(name)
        parsed = self.parse_arguments(tool, arguments)
        logger.debug("Dispatching tool %s", tool.name)
        return await tool.handler(parsed, client=self._client, schema_cache=self._schema_cache)
