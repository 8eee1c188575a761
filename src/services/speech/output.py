"""Speech playback adapters."""

import asyncio
from typing import Callable, Optional

import structlog

from src.core.exceptions import SpeechPlaybackError
from src.services.speech.base import PlaybackOutcome

log = structlog.get_logger(__name__)


class PlaybackTracker:
    """
    Single-utterance playback bookkeeping shared by output adapters.

    Only one utterance is current. Starting a new one resolves the previous
    call INTERRUPTED; stop() does the same for the current one.
    """

    def __init__(self) -> None:
        self._current: Optional[asyncio.Future] = None

    @property
    def is_speaking(self) -> bool:
        return self._current is not None and not self._current.done()

    def _begin(self) -> asyncio.Future:
        if self.is_speaking:
            log.debug("speech_superseded")
            self._resolve(self._current, PlaybackOutcome.INTERRUPTED)
        future = asyncio.get_running_loop().create_future()
        self._current = future
        return future

    @staticmethod
    def _resolve(future: Optional[asyncio.Future], outcome: PlaybackOutcome) -> None:
        if future is not None and not future.done():
            future.set_result(outcome)

    @staticmethod
    def _fail(future: Optional[asyncio.Future], error: Exception) -> None:
        if future is not None and not future.done():
            future.set_exception(error)

    async def _wait(self, future: asyncio.Future) -> PlaybackOutcome:
        try:
            return await future
        finally:
            if self._current is future:
                self._current = None

    def stop(self) -> None:
        if self.is_speaking:
            log.debug("speech_stopped")
            self._resolve(self._current, PlaybackOutcome.INTERRUPTED)


class ConsoleSpeechOutput(PlaybackTracker):
    """Prints replies and simulates playback time from the word count."""

    def __init__(
        self,
        writer: Callable[[str], None] = print,
        words_per_second: float = 3.0,
        prefix: str = "Interviewer: ",
    ):
        super().__init__()
        self.writer = writer
        self.words_per_second = words_per_second
        self.prefix = prefix

    def duration_for(self, text: str) -> float:
        if self.words_per_second <= 0:
            return 0.0
        return len(text.split()) / self.words_per_second

    async def speak(self, text: str) -> PlaybackOutcome:
        future = self._begin()
        try:
            self.writer(f"{self.prefix}{text}")
        except OSError as e:
            self._fail(future, SpeechPlaybackError(f"Console output failed: {e}"))
        else:
            handle = asyncio.get_running_loop().call_later(
                self.duration_for(text), self._resolve, future, PlaybackOutcome.COMPLETED
            )
            future.add_done_callback(lambda _: handle.cancel())
        return await self._wait(future)
