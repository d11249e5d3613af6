from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from config import APP_NAME, BridgeConfig

logger = logging.getLogger(APP_NAME)


class GraphQLClientError(RuntimeError):
    """Base error for anything that went wrong talking to the upstream endpoint."""


class UpstreamUnavailableError(GraphQLClientError):
    pass


class GraphQLResponseError(GraphQLClientError):
    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []


def _summarize_errors(errors: list) -> str:
    messages = []
    for err in errors:
        if isinstance(err, dict) and err.get("message"):
            messages.append(str(err["message"]))
        else:
            messages.append(str(err))
    return "; ".join(messages)


class GraphQLClient:
    """Posts GraphQL documents to a single fixed endpoint."""

    def __init__(self, *, config: BridgeConfig):
        self._config = config
        self.endpoint_url = config.endpoint_url
        self._headers = dict(config.headers)

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict:
        payload: dict[str, Any] = {"query": query}
        if variables is not None:
            payload["variables"] = variables
        response = await self._post_json(payload)

        errors = response.get("errors")
        if errors:
            raise GraphQLResponseError(f"GraphQL errors: {_summarize_errors(errors)}", errors)

        data = response.get("data")
        if not isinstance(data, dict):
            raise GraphQLResponseError("GraphQL response missing 'data'")
        return data

    async def _post_json(self, payload: dict) -> dict:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        headers.update(self._headers)

        timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.endpoint_url, json=payload, headers=headers) as resp:
                    text = await resp.text()
                    status = resp.status
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailableError(
                f"GraphQL request timed out after {self._config.timeout_s}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise UpstreamUnavailableError(f"GraphQL request failed: {exc}") from exc

        parsed = self._parse_body(text)
        if status >= 400:
            # Servers often answer validation errors with 400 and a regular GraphQL body.
            if isinstance(parsed, dict) and parsed.get("errors"):
                return parsed
            raise UpstreamUnavailableError(f"GraphQL request failed ({status}): {text.strip()}")
        if parsed is None:
            raise GraphQLResponseError("GraphQL response was not valid JSON")
        if not isinstance(parsed, dict):
            raise GraphQLResponseError("GraphQL response was not a JSON object")
        return parsed

    @staticmethod
    def _parse_body(text: str):
        if not text:
            return {}
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Upstream returned non-JSON body: %.200s", text)
            return None
