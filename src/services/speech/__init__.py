"""Speech capture and playback adapters."""

from src.services.speech.base import (
    CRITICAL_CAPTURE_ERRORS,
    IGNORABLE_CAPTURE_ERRORS,
    PlaybackOutcome,
    SpeechCapture,
    SpeechOutput,
)
from src.services.speech.capture import StreamingSpeechCapture
from src.services.speech.output import ConsoleSpeechOutput
from src.services.speech.remote import RemoteSpeechCapture, RemoteSpeechOutput

__all__ = [
    "CRITICAL_CAPTURE_ERRORS",
    "IGNORABLE_CAPTURE_ERRORS",
    "PlaybackOutcome",
    "SpeechCapture",
    "SpeechOutput",
    "StreamingSpeechCapture",
    "ConsoleSpeechOutput",
    "RemoteSpeechCapture",
    "RemoteSpeechOutput",
]
