from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4

from loguru import logger

from tableplan.exceptions import SessionNotFoundError
from tableplan.floorplan.schema import AnalyzeResponse
from tableplan.floorplan.store import FloorPlanStore


@dataclass
class EditorSession:
    id: UUID
    store: FloorPlanStore = field(default_factory=FloorPlanStore)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    # analyze responses by idempotency key, so retried uploads are answered without a new run
    analyses: dict[UUID, AnalyzeResponse] = field(default_factory=dict)


class SessionRegistry:
    """In-process registry of editor sessions; each session owns its own store."""

    def __init__(self) -> None:
        self._sessions: dict[UUID, EditorSession] = {}

    def create(self) -> EditorSession:
        session = EditorSession(id=uuid4())
        self._sessions[session.id] = session
        logger.info("Opened editor session {sid}", sid=session.id)
        return session

    def get(self, session_id: UUID) -> EditorSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found", {"session_id": str(session_id)})
        return session

    def close(self, session_id: UUID) -> None:
        session = self.get(session_id)
        session.store.reset()
        del self._sessions[session_id]
        logger.info("Closed editor session {sid}", sid=session_id)

    def __len__(self) -> int:
        return len(self._sessions)
