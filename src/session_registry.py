from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from config import APP_NAME

logger = logging.getLogger(APP_NAME)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    id: str
    created_at: datetime = field(default_factory=_utcnow)


class SessionRegistry:
    """In-memory map of session id to Session.

    Ids come from a counter that only moves forward, so an id is never handed
    out twice in the lifetime of the registry, even after deletion.
    """

    def __init__(self, prefix: str = "session") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._sessions: dict[str, Session] = {}

    def create_session(self) -> Session:
        session = Session(id=f"{self._prefix}-{next(self._counter)}")
        self._sessions[session.id] = session
        logger.info("Created MCP session %s", session.id)
        return session

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def delete_session(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info("Deleted MCP session %s", session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
