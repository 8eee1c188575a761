"""Turn state owned by the conversation orchestrator.

The orchestrator's lifecycle is a single tagged value, ``Phase``, instead of
independent listening/speaking/processing flags. Exactly one phase is active
at any time, so "listening while speaking" is unrepresentable.

Core Concepts:
    - Phase: Idle, Listening, Speaking, Processing, Transitioning, Error, Closing
    - Event: what happened (submit, speak, listen, advance, fail, ...)
    - ConversationEntry: append-only log of user and assistant turns
    - ErrorInfo: retry bookkeeping surfaced to the user
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Phase(str, Enum):
    """Orchestrator phase. Exactly one is active at a time."""

    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"
    PROCESSING = "processing"
    TRANSITIONING = "transitioning"
    ERROR = "error"
    CLOSING = "closing"


class Event(str, Enum):
    """Inputs to the phase transition function.

    Values:
        - LISTEN: resume speech capture
        - SUBMIT: user input handed to the response generator
        - SPEAK: system speech playback begins
        - ADVANCE: reply delivered and the step or loop moves forward
        - SETTLE: wait for typed input or a manual action
        - FAIL: generation or playback failure
        - RETRY: explicit retry of the last failed input
        - CLOSE: final step reached
    """

    LISTEN = "listen"
    SUBMIT = "submit"
    SPEAK = "speak"
    ADVANCE = "advance"
    SETTLE = "settle"
    FAIL = "fail"
    RETRY = "retry"
    CLOSE = "close"


class Speaker(str, Enum):
    """Speaker role for conversation log entries."""

    USER = "user"
    ASSISTANT = "assistant"


class SubmissionSource(str, Enum):
    """Where a submitted input came from."""

    VOICE = "voice"
    TEXT = "text"
    RETRY = "retry"


class ConversationEntry(BaseModel):
    """One line of the conversation log."""

    speaker: Speaker
    content: str
    step_name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def as_chat_message(self) -> dict:
        return {"role": self.speaker.value, "content": self.content}


class ErrorInfo(BaseModel):
    """Retry bookkeeping for failed turns.

    retry_count never exceeds max_retries; reaching it makes the error
    terminal until the user explicitly retries.
    """

    message: str
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=1)
    last_input: Optional[str] = None
    is_fatal: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.retry_count >= self.max_retries


class TurnState(BaseModel):
    """Mutable turn state; only the orchestrator writes to it."""

    phase: Phase = Phase.IDLE
    transcript: str = ""
    text_input: str = ""
    conversation_log: List[ConversationEntry] = Field(default_factory=list)
    error_info: Optional[ErrorInfo] = None
    voice_mode: bool = True
    is_active: bool = True

    @property
    def is_listening(self) -> bool:
        return self.phase is Phase.LISTENING

    @property
    def is_speaking(self) -> bool:
        return self.phase is Phase.SPEAKING

    @property
    def is_processing(self) -> bool:
        return self.phase is Phase.PROCESSING

    def recent_history(self, limit: int) -> List[ConversationEntry]:
        if limit <= 0:
            return []
        return self.conversation_log[-limit:]
