"""
Tool handlers exposed over MCP.

`introspect-schema` fetches the upstream schema and keeps it in the schema cache.
`query-graphql` forwards a query and its variables to the upstream endpoint, but
only once a schema has been cached. The cached schema is a readiness gate, it is
never used to validate queries locally; the upstream service does that.

Handlers never raise for tool-level problems. They return `Success` or `Failure`
and leave the wire format to the envelope translator.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Union

from graphql import get_introspection_query
from pydantic import BaseModel, ConfigDict, Field

from config import APP_NAME
from schema_cache import SchemaCache

logger = logging.getLogger(APP_NAME)

INTROSPECTION_QUERY = get_introspection_query(descriptions=True)
SCHEMA_NOT_READY_MESSAGE = "Schema not available. Please run introspect-schema first."
INTROSPECTION_FAILED_MESSAGE = "Failed to introspect schema"
QUERY_FAILED_MESSAGE = "Failed to execute GraphQL query"


class UpstreamClient(Protocol):
    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict: ...


@dataclass(frozen=True)
class Success:
    payload: Any


@dataclass(frozen=True)
class Failure:
    message: str
    details: Any = None


ToolResult = Union[Success, Failure]


class IntrospectSchemaArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class QueryGraphQLArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    query: str = Field(min_length=1, pattern=r"\S", description="GraphQL query string")
    variables: dict[str, Any] | None = Field(default=None, description="GraphQL variables")


async def introspect_schema(
    arguments: IntrospectSchemaArguments,
    *,
    client: UpstreamClient,
    schema_cache: SchemaCache,
) -> ToolResult:
    try:
        schema = await client.execute(INTROSPECTION_QUERY)
    except Exception as exc:
        logger.error("Error during schema introspection: %s", exc)
        return Failure(INTROSPECTION_FAILED_MESSAGE, str(exc))
    schema_cache.set(schema)
    logger.info("Cached introspected schema from upstream endpoint.")
    return Success(schema)


async def query_graphql(
    arguments: QueryGraphQLArguments,
    *,
    client: UpstreamClient,
    schema_cache: SchemaCache,
) -> ToolResult:
    if not schema_cache.is_ready:
        logger.error(SCHEMA_NOT_READY_MESSAGE)
        return Failure(SCHEMA_NOT_READY_MESSAGE)

    logger.debug("Query: %s variables: %s", arguments.query, arguments.variables)
    try:
        data = await client.execute(arguments.query, arguments.variables)
    except Exception as exc:
        logger.error("Error during GraphQL query: %s", exc)
        return Failure(QUERY_FAILED_MESSAGE, str(exc))
    return Success(data)


ToolHandler = Callable[..., Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    arguments_model: type[BaseModel]
    handler: ToolHandler

    def input_schema(self) -> dict:
        schema = self.arguments_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="introspect-schema",
        description="Retrieves the GraphQL schema from the endpoint.",
        arguments_model=IntrospectSchemaArguments,
        handler=introspect_schema,
    ),
    ToolSpec(
        name="query-graphql",
        description="Executes a GraphQL query against the endpoint.",
        arguments_model=QueryGraphQLArguments,
        handler=query_graphql,
    ),
)
