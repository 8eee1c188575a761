"""
API request/response schemas.

Pydantic models for API validation and serialization.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ============ INTERVIEW SCHEMAS ============


class InterviewCreate(BaseModel):
    """Request to create a new interview session."""

    api_key: Optional[str] = Field(
        default=None,
        description="Per-session LLM credential; the server key is used when omitted",
    )
    voice_mode: bool = Field(default=True, description="Start with voice capture enabled")


class StepSchema(BaseModel):
    id: int
    name: str
    title: str
    requires_text_input: bool
    index: int
    total: int


class LoopSchema(BaseModel):
    current: str
    index: int
    total: int
    has_more_items: bool
    progress: str


class ErrorSchema(BaseModel):
    message: str
    retry_count: int
    max_retries: int
    is_fatal: bool
    can_retry: bool


class ConversationEntrySchema(BaseModel):
    speaker: Literal["user", "assistant"]
    content: str
    step: Optional[str] = None


class InterviewCreated(BaseModel):
    """Response for a created interview session."""

    session_id: str
    websocket_path: str
    created_at: datetime
    step: StepSchema


class InterviewStateResponse(BaseModel):
    """Snapshot of a running interview."""

    session_id: str
    phase: str
    is_active: bool
    is_processing: bool
    voice_mode: bool
    transcript: str
    step: StepSchema
    progress: int = Field(..., ge=0, le=100)
    loop: Optional[LoopSchema] = None
    error: Optional[ErrorSchema] = None
    conversation: List[ConversationEntrySchema] = Field(default_factory=list)
    profile: Dict[str, Any] = Field(default_factory=dict)
    closed: bool = False


# ============ WEBSOCKET SCHEMAS ============


class ClientMessage(BaseModel):
    """Message from the browser over the interview WebSocket."""

    type: Literal[
        "start",
        "transcript",
        "capture_error",
        "playback",
        "text",
        "submit",
        "retry",
        "pause",
        "resume",
        "stop_speaking",
        "voice_mode",
    ]
    final: str = ""
    interim: str = ""
    code: Optional[str] = None
    utterance_id: Optional[str] = None
    status: Optional[Literal["ended", "interrupted", "error"]] = None
    error: Optional[str] = None
    text: Optional[str] = Field(default=None, max_length=20000)
    enabled: Optional[bool] = None
