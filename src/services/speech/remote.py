"""
WebSocket bridge to browser speech engines.

The browser hosts the real recognition and synthesis engines. The server
side sends control messages through ``send`` and receives engine events via
handle_result/handle_error (capture) and handle_playback_event (output).

Outgoing messages:
    {"type": "capture", "action": "start" | "stop" | "reset"}
    {"type": "speak", "utterance_id": str, "text": str}
    {"type": "speech", "action": "cancel"}
"""

import uuid
from typing import Any, Callable, Dict, Optional

import structlog

from src.core.exceptions import SpeechPlaybackError
from src.services.speech.base import PlaybackOutcome
from src.services.speech.capture import StreamingSpeechCapture
from src.services.speech.output import PlaybackTracker

log = structlog.get_logger(__name__)

SendFn = Callable[[Dict[str, Any]], None]


class RemoteSpeechCapture(StreamingSpeechCapture):
    """Capture driven by recognition events from the browser."""

    def __init__(self, send: SendFn):
        super().__init__()
        self._send = send

    def _on_start(self) -> None:
        self._send({"type": "capture", "action": "start"})

    def _on_stop(self) -> None:
        self._send({"type": "capture", "action": "stop"})

    def _on_reset(self) -> None:
        self._send({"type": "capture", "action": "reset"})


class RemoteSpeechOutput(PlaybackTracker):
    """Playback performed by the browser; resolves on its playback events."""

    def __init__(self, send: SendFn):
        super().__init__()
        self._send = send
        self._utterance_id: Optional[str] = None

    @property
    def utterance_id(self) -> Optional[str]:
        return self._utterance_id if self.is_speaking else None

    async def speak(self, text: str) -> PlaybackOutcome:
        future = self._begin()
        utterance_id = uuid.uuid4().hex
        self._utterance_id = utterance_id
        self._send({"type": "speak", "utterance_id": utterance_id, "text": text})
        return await self._wait(future)

    def stop(self) -> None:
        if self.is_speaking:
            self._send({"type": "speech", "action": "cancel"})
        super().stop()

    def handle_playback_event(
        self, utterance_id: str, status: str, error: Optional[str] = None
    ) -> None:
        """Apply a playback event: ``ended``, ``interrupted`` or ``error``."""
        if not self.is_speaking or utterance_id != self._utterance_id:
            log.debug("playback_event_stale", utterance_id=utterance_id, status=status)
            return

        if status == "ended":
            self._resolve(self._current, PlaybackOutcome.COMPLETED)
        elif status == "interrupted":
            self._resolve(self._current, PlaybackOutcome.INTERRUPTED)
        elif status == "error":
            log.warning("playback_engine_error", utterance_id=utterance_id, error=error)
            self._fail(
                self._current,
                SpeechPlaybackError(f"Speech playback failed: {error or 'unknown'}"),
            )
        else:
            log.warning("playback_event_unknown", status=status)
