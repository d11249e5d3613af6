from __future__ import annotations


class SchemaCache:
    """Single-slot holder for the last successfully introspected schema.

    There is no eviction or expiry; `set` replaces whatever was there.
    """

    def __init__(self) -> None:
        self._schema: dict | None = None

    def get(self) -> dict | None:
        return self._schema

    def set(self, schema: dict) -> None:
        self._schema = schema

    @property
    def is_ready(self) -> bool:
        return self._schema is not None
