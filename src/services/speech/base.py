"""
Speech adapter protocols.

The orchestrator only depends on these interfaces, so the real engines
(browser speech recognition and synthesis) can be swapped for in-process
adapters in the console runner and in tests.
"""

from enum import Enum
from typing import Callable, Optional, Protocol

# Device-level failures: the partial transcript is unreliable and is reset
CRITICAL_CAPTURE_ERRORS = frozenset({"aborted", "audio-capture"})

# Silence timeouts; capture simply keeps going
IGNORABLE_CAPTURE_ERRORS = frozenset({"no-speech"})

TranscriptCallback = Callable[[str], None]
CaptureErrorCallback = Callable[[str], None]


class PlaybackOutcome(str, Enum):
    """How a speak() call ended."""

    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


class SpeechCapture(Protocol):
    """
    Continuous speech-to-text.

    The transcript is the accumulated final segments plus the current
    interim segment. It never grows after stop() returns.
    """

    @property
    def transcript(self) -> str: ...

    @property
    def is_listening(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def reset(self) -> None: ...

    def subscribe(
        self,
        on_transcript: TranscriptCallback,
        on_error: Optional[CaptureErrorCallback] = None,
    ) -> None: ...


class SpeechOutput(Protocol):
    """
    Text-to-speech playback.

    speak() resolves COMPLETED on natural end, INTERRUPTED when stopped or
    superseded by a newer speak() call, and raises SpeechPlaybackError on a
    genuine engine failure.
    """

    @property
    def is_speaking(self) -> bool: ...

    async def speak(self, text: str) -> PlaybackOutcome: ...

    def stop(self) -> None: ...
