"""Engine-agnostic continuous speech capture."""

from typing import List, Optional

import structlog

from src.services.speech.base import (
    CRITICAL_CAPTURE_ERRORS,
    IGNORABLE_CAPTURE_ERRORS,
    CaptureErrorCallback,
    TranscriptCallback,
)

log = structlog.get_logger(__name__)


class StreamingSpeechCapture:
    """
    Accumulates recognition results pushed by a speech engine.

    The engine calls handle_result() with final and interim segments and
    handle_error() with its error codes. Results arriving while not listening
    are dropped, so a late event after stop() cannot change the transcript.
    Subclasses hook engine control into _on_start/_on_stop/_on_reset.
    """

    def __init__(self) -> None:
        self._final_segments: List[str] = []
        self._interim = ""
        self._listening = False
        self._on_transcript: Optional[TranscriptCallback] = None
        self._on_error: Optional[CaptureErrorCallback] = None

    @property
    def transcript(self) -> str:
        parts = self._final_segments + [self._interim]
        return " ".join(" ".join(parts).split())

    @property
    def is_listening(self) -> bool:
        return self._listening

    def subscribe(
        self,
        on_transcript: TranscriptCallback,
        on_error: Optional[CaptureErrorCallback] = None,
    ) -> None:
        self._on_transcript = on_transcript
        self._on_error = on_error

    def start(self) -> None:
        if self._listening:
            return
        self._listening = True
        log.debug("speech_capture_started")
        self._on_start()

    def stop(self) -> None:
        if not self._listening:
            return
        self._listening = False
        log.debug("speech_capture_stopped", transcript_length=len(self.transcript))
        self._on_stop()

    def reset(self) -> None:
        self._final_segments.clear()
        self._interim = ""
        self._on_reset()

    def handle_result(self, final: str = "", interim: str = "") -> None:
        """Apply one recognition event from the engine."""
        if not self._listening:
            log.debug("speech_result_dropped", reason="not_listening")
            return

        before = self.transcript
        if final and final.strip():
            self._final_segments.append(final.strip())
        self._interim = interim.strip() if interim else ""

        after = self.transcript
        if after != before and self._on_transcript is not None:
            self._on_transcript(after)

    def handle_error(self, code: str) -> None:
        """Apply an engine error.

        Ignorable codes are logged only. Every other error stops listening
        and is reported to the subscriber; device failures also reset the
        transcript.
        """
        if code in IGNORABLE_CAPTURE_ERRORS:
            log.debug("speech_capture_error_ignored", code=code)
            return

        if code in CRITICAL_CAPTURE_ERRORS:
            log.warning("speech_capture_device_error", code=code)
            self.reset()
        else:
            log.info("speech_capture_error", code=code)

        self.stop()
        if self._on_error is not None:
            self._on_error(code)

    # Engine hooks
    def _on_start(self) -> None:
        pass

    def _on_stop(self) -> None:
        pass

    def _on_reset(self) -> None:
        pass
