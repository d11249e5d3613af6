"""Shared fixtures for the GraphQL MCP bridge tests.

The upstream GraphQL client is always a stub so no test touches the network,
except ``test_graphql_client.py`` which runs an in-process aiohttp server.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.testclient import TestClient

from config import BridgeConfig
from dispatcher import ToolDispatcher
from schema_cache import SchemaCache
from server import create_app
from session_registry import SessionRegistry

SAMPLE_SCHEMA = {
    "__schema": {
        "queryType": {"name": "Query"},
        "mutationType": None,
        "subscriptionType": None,
        "types": [
            {
                "kind": "OBJECT",
                "name": "Query",
                "fields": [
                    {
                        "name": "countries",
                        "args": [],
                        "type": {
                            "kind": "NON_NULL",
                            "name": None,
                            "ofType": {"kind": "LIST", "name": None, "ofType": {"kind": "OBJECT", "name": "Country"}},
                        },
                        "isDeprecated": False,
                        "deprecationReason": None,
                    }
                ],
            },
            {
                "kind": "OBJECT",
                "name": "Country",
                "fields": [
                    {"name": "name", "args": [], "type": {"kind": "SCALAR", "name": "String"}},
                    {"name": "capital", "args": [], "type": {"kind": "SCALAR", "name": "String"}},
                ],
            },
        ],
        "directives": [],
    }
}

COUNTRIES_QUERY = "query { countries { name capital } }"
COUNTRIES_DATA = {"countries": [{"name": "France", "capital": "Paris"}]}


@pytest.fixture
def upstream():
    """Stub upstream client; ``execute`` answers with the sample schema by default."""
    client = MagicMock()
    client.execute = AsyncMock(return_value=SAMPLE_SCHEMA)
    return client


@pytest.fixture
def schema_cache() -> SchemaCache:
    return SchemaCache()


@pytest.fixture
def sessions() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def dispatcher(upstream, schema_cache) -> ToolDispatcher:
    return ToolDispatcher(client=upstream, schema_cache=schema_cache)


@pytest.fixture
def app(upstream, schema_cache, sessions):
    return create_app(BridgeConfig(), client=upstream, schema_cache=schema_cache, sessions=sessions)


@pytest.fixture
def http(app):
    with TestClient(app) as client:
        yield client
