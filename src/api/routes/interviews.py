"""
Interview API routes.

REST endpoints manage sessions; the WebSocket carries the live conversation
between the browser speech engines and the orchestrator.

Browser -> server messages: see ClientMessage. Server -> browser messages:
    {"type": "speak", "utterance_id", "text"}   play this utterance
    {"type": "speech", "action": "cancel"}      stop playback
    {"type": "capture", "action": ...}          start/stop/reset recognition
    {"type": "state", ...}                      phase/step/progress changed
    {"type": "ack", "action", "accepted"}       result of a submission
    {"type": "error", "message"}                malformed or rejected message
"""

import asyncio
from typing import Any, Dict

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.responses import Response
from pydantic import ValidationError as PydanticValidationError

from src.api.dependencies import InterviewSession, RegistryDep
from src.api.schemas import (
    ClientMessage,
    InterviewCreate,
    InterviewCreated,
    InterviewStateResponse,
)
from src.core.exceptions import InterviewSystemError, SessionNotFoundError
from src.core.logging import bind_context, clear_context

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/interviews", tags=["interviews"])


@router.post("", response_model=InterviewCreated, status_code=status.HTTP_201_CREATED)
async def create_interview(request: InterviewCreate, registry: RegistryDep):
    """Create an interview session; connect to its WebSocket to begin."""
    session = registry.create(api_key=request.api_key, voice_mode=request.voice_mode)
    snapshot = session.orchestrator.snapshot()
    return InterviewCreated(
        session_id=session.session_id,
        websocket_path=f"/interviews/{session.session_id}/ws",
        created_at=session.created_at,
        step=snapshot["step"],
    )


@router.get("/{session_id}", response_model=InterviewStateResponse)
async def get_interview(session_id: str, registry: RegistryDep):
    """Current snapshot of an interview."""
    return registry.get(session_id).orchestrator.snapshot()


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_interview(session_id: str, registry: RegistryDep):
    """Stop an interview and drop it from the registry."""
    await registry.remove(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============ WEBSOCKET ============


async def _pump_outbox(websocket: WebSocket, session: InterviewSession) -> None:
    while True:
        message = await session.outbox.get()
        await websocket.send_json(message)


def dispatch_client_message(session: InterviewSession, message: ClientMessage) -> None:
    """Apply one browser message to the session."""
    orchestrator = session.orchestrator
    kind = message.type

    if kind == "start":
        orchestrator.start_in_background()
    elif kind == "transcript":
        session.capture.handle_result(final=message.final, interim=message.interim)
    elif kind == "capture_error":
        session.capture.handle_error(message.code or "unknown")
    elif kind == "playback":
        session.output.handle_playback_event(
            message.utterance_id or "", message.status or "error", message.error
        )
    elif kind == "text":
        accepted = orchestrator.submit_text(message.text)
        session.send({"type": "ack", "action": "text", "accepted": accepted})
    elif kind == "submit":
        accepted = orchestrator.submit_voice()
        session.send({"type": "ack", "action": "submit", "accepted": accepted})
    elif kind == "retry":
        accepted = orchestrator.retry()
        session.send({"type": "ack", "action": "retry", "accepted": accepted})
    elif kind == "pause":
        orchestrator.pause()
    elif kind == "resume":
        orchestrator.resume()
    elif kind == "stop_speaking":
        orchestrator.stop_speaking()
    elif kind == "voice_mode":
        orchestrator.set_voice_mode(bool(message.enabled))


@router.websocket("/{session_id}/ws")
async def interview_socket(websocket: WebSocket, session_id: str, registry: RegistryDep):
    """Live conversation channel for one interview."""
    try:
        session = registry.get(session_id)
    except SessionNotFoundError:
        await websocket.close(code=4404)
        return

    await websocket.accept()
    bind_context(session_id=session_id)
    dropped = session.clear_outbox()
    log.info("websocket_connected", dropped_messages=dropped)

    session.send(session.state_message())
    writer = asyncio.create_task(_pump_outbox(websocket, session))

    try:
        while True:
            try:
                raw: Dict[str, Any] = await websocket.receive_json()
                message = ClientMessage.model_validate(raw)
            except (ValueError, PydanticValidationError) as e:
                log.debug("websocket_message_invalid", error=str(e))
                session.send({"type": "error", "message": "Invalid message"})
                continue

            try:
                dispatch_client_message(session, message)
            except InterviewSystemError as e:
                log.info("websocket_message_rejected", type=message.type, error=e.message)
                session.send({"type": "error", "message": e.message})
    except WebSocketDisconnect:
        log.info("websocket_disconnected")
    finally:
        writer.cancel()
        await asyncio.gather(writer, return_exceptions=True)
        session.orchestrator.pause()
        clear_context()
