from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from dotenv import load_dotenv

APP_NAME = "graphql-mcp-bridge"
DEFAULT_ENDPOINT_URL = "https://countries.trevorblades.com/"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"
_REPO_ROOT = Path(__file__).resolve().parent.parent
ENV_PATHS = [Path.cwd() / ".env", _REPO_ROOT / ".env"]
for _path in ENV_PATHS:
    if _path.exists():
        load_dotenv(_path, override=True)


@dataclass(frozen=True)
class BridgeConfig:
    endpoint_url: str = DEFAULT_ENDPOINT_URL
    headers: dict[str, str] = field(default_factory=dict)
    timeout_s: float = DEFAULT_TIMEOUT_S
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL

    def with_overrides(self, **overrides) -> BridgeConfig:
        """Return a copy with every override that is not None applied."""
        return replace(self, **{key: val for key, val in overrides.items() if val is not None})


def parse_header_args(raw_headers: list[str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in raw_headers or []:
        if ":" not in raw:
            raise ValueError(f"Invalid header (expected 'Name: Value'): {raw}")
        name, value = raw.split(":", 1)
        name = name.strip()
        if not name:
            raise ValueError(f"Invalid header name in: {raw}")
        headers[name] = value.strip()
    return headers


def _load_env_headers() -> dict[str, str]:
    raw_headers = os.environ.get("GRAPHQL_ENDPOINT_HEADERS")
    if not raw_headers:
        return {}
    try:
        parsed = json.loads(raw_headers)
    except json.JSONDecodeError as exc:
        raise ValueError("GRAPHQL_ENDPOINT_HEADERS must be valid JSON") from exc
    if not isinstance(parsed, dict):
        raise ValueError("GRAPHQL_ENDPOINT_HEADERS must be a JSON object")
    return {str(key): str(val) for key, val in parsed.items()}


def _env_number(name: str, default, cast):
    value = os.environ.get(name) or default
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {name} value") from exc


def load_bridge_config() -> BridgeConfig:
    endpoint_url = (os.environ.get("GRAPHQL_ENDPOINT_URL") or DEFAULT_ENDPOINT_URL).strip()
    return BridgeConfig(
        endpoint_url=endpoint_url,
        headers=_load_env_headers(),
        timeout_s=_env_number("GRAPHQL_TIMEOUT_S", DEFAULT_TIMEOUT_S, float),
        host=os.environ.get("MCP_HOST") or DEFAULT_HOST,
        port=_env_number("MCP_PORT", DEFAULT_PORT, int),
        log_level=(os.environ.get("MCP_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )
