"""Dependency injection for API routes."""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Annotated, Any, Callable, Dict, List, Optional

import structlog
from fastapi import Depends

from src.core.config import settings
from src.core.exceptions import SessionNotFoundError
from src.domain.models.turn_state import Phase
from src.persistence.repositories.profile_repo import ProfileRepository
from src.services.orchestrator import ConversationOrchestrator, build_orchestrator
from src.services.speech.remote import RemoteSpeechCapture, RemoteSpeechOutput

log = structlog.get_logger(__name__)


@dataclass
class InterviewSession:
    """One live interview with its WebSocket outbox."""

    session_id: str
    orchestrator: ConversationOrchestrator
    capture: RemoteSpeechCapture
    output: RemoteSpeechOutput
    outbox: "asyncio.Queue[Dict[str, Any]]"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def send(self, message: Dict[str, Any]) -> None:
        self.outbox.put_nowait(message)

    def clear_outbox(self) -> int:
        """Drop undelivered messages (stale while no client was connected)."""
        dropped = 0
        while not self.outbox.empty():
            self.outbox.get_nowait()
            dropped += 1
        return dropped

    def state_message(self) -> Dict[str, Any]:
        snapshot = self.orchestrator.snapshot()
        return {
            "type": "state",
            "phase": snapshot["phase"],
            "step": snapshot["step"]["name"],
            "progress": snapshot["progress"],
            "loop": snapshot["loop"],
            "error": snapshot["error"],
            "closed": snapshot["closed"],
        }


class InterviewRegistry:
    """
    In-memory registry of live interview sessions.

    Sessions are process-local; collected fields are mirrored to SQLite when
    persistence is enabled.
    """

    def __init__(
        self,
        store: Optional[ProfileRepository] = None,
        orchestrator_factory: Callable[..., ConversationOrchestrator] = build_orchestrator,
    ):
        self.store = store
        self.orchestrator_factory = orchestrator_factory
        self._sessions: Dict[str, InterviewSession] = {}

    def create(self, api_key: Optional[str] = None, voice_mode: bool = True) -> InterviewSession:
        """Create and register a new session. Raises ConfigurationError."""
        session_id = str(uuid.uuid4())
        outbox: asyncio.Queue = asyncio.Queue()
        capture = RemoteSpeechCapture(outbox.put_nowait)
        output = RemoteSpeechOutput(outbox.put_nowait)

        holder: Dict[str, InterviewSession] = {}

        def push_state(old: Phase, new: Phase) -> None:
            session = holder.get("session")
            if session is not None:
                session.send(session.state_message())

        orchestrator = self.orchestrator_factory(
            session_id=session_id,
            capture=capture,
            output=output,
            api_key=api_key,
            store=self.store,
            on_phase_change=push_state,
        )
        orchestrator.state.voice_mode = voice_mode

        session = InterviewSession(
            session_id=session_id,
            orchestrator=orchestrator,
            capture=capture,
            output=output,
            outbox=outbox,
        )
        holder["session"] = session
        self._sessions[session_id] = session
        log.info("interview_created", session_id=session_id, voice_mode=voice_mode)
        return session

    def get(self, session_id: str) -> InterviewSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Interview {session_id} not found")
        return session

    async def remove(self, session_id: str) -> None:
        session = self.get(session_id)
        del self._sessions[session_id]
        await session.orchestrator.shutdown()
        log.info("interview_removed", session_id=session_id)

    def list_ids(self) -> List[str]:
        return list(self._sessions)

    async def close_all(self) -> None:
        for session_id in self.list_ids():
            await self.remove(session_id)


def get_profile_repository() -> Optional[ProfileRepository]:
    """Repository for collected fields, or None when persistence is disabled."""
    if not settings.enable_persistence:
        return None
    return ProfileRepository(settings.database_path)


@lru_cache(maxsize=1)
def get_interview_registry() -> InterviewRegistry:
    """Process-wide registry; created once and reused."""
    return InterviewRegistry(store=get_profile_repository())


# Type aliases for dependency injection
RegistryDep = Annotated[InterviewRegistry, Depends(get_interview_registry)]
