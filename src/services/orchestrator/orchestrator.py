"""
Conversation turn orchestrator.

Runs one interview session: decides when to listen, submit, speak, call the
response generator, and advance the step machine or the job loop, and how to
recover from failures.

Turn lifecycle:
    capture -> (debounced) submit -> generate -> speak -> advance or repeat

Concurrency model (single asyncio event loop):
    - phase is the only synchronization primitive; every transition goes
      through next_phase() and illegal transitions are rejected
    - capture runs only in LISTENING; leaving LISTENING cancels the
      auto-submit timer and stops capture before anything is spoken
    - a boolean processing lock, set synchronously before the first await,
      keeps a second generation call from starting while a turn is running
    - turn and speech sequence numbers let late callbacks detect that they
      have been superseded (reset, newer utterance) and bail out
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import structlog

from src.core.config import OrchestratorConfig
from src.core.exceptions import (
    InterviewSystemError,
    LLMAuthenticationError,
    SessionCompletedError,
    SpeechPlaybackError,
)
from src.domain.models.candidate import CandidateProfile
from src.domain.models.step import StepDefinition
from src.domain.models.turn_state import (
    ConversationEntry,
    ErrorInfo,
    Event,
    Phase,
    Speaker,
    SubmissionSource,
    TurnState,
)
from src.persistence.repositories.profile_repo import ProfileSync
from src.services.job_loop import JobExperienceLoop
from src.services.orchestrator.pipeline import TurnContext, TurnPipeline, TurnResult
from src.services.orchestrator.timers import TimerRegistry
from src.services.orchestrator.transitions import next_phase
from src.services.speech.base import (
    CRITICAL_CAPTURE_ERRORS,
    PlaybackOutcome,
    SpeechCapture,
    SpeechOutput,
)
from src.services.step_machine import StepStateMachine
from src.services.validation import input_rejection

log = structlog.get_logger(__name__)

AUTO_SUBMIT_TIMER = "auto_submit"

TRANSIENT_ERROR_MESSAGE = (
    "I encountered an issue. Let me try again... (Attempt {attempt}/{max_retries})"
)
TERMINAL_ERROR_MESSAGE = (
    "I'm having trouble processing your request. Please try refreshing the page "
    "or check your internet connection."
)


class ConversationOrchestrator:
    """Root controller of one interview session."""

    def __init__(
        self,
        session_id: str,
        capture: SpeechCapture,
        output: SpeechOutput,
        pipeline: TurnPipeline,
        step_machine: StepStateMachine,
        job_loop: JobExperienceLoop,
        config: Optional[OrchestratorConfig] = None,
        history_limit: int = 4,
        profile: Optional[CandidateProfile] = None,
        sync: Optional[ProfileSync] = None,
        on_phase_change: Optional[Callable[[Phase, Phase], None]] = None,
    ):
        """
        Args:
            session_id: Session identifier (bound into log context)
            capture: Speech capture adapter
            output: Speech output adapter
            pipeline: Turn pipeline (loop context, generation, profile update)
            step_machine: Step traversal
            job_loop: Work experience loop controller
            config: Timings and retry ceiling
            history_limit: Conversation entries handed to the generator
            profile: Collected data (a fresh profile by default)
            sync: Best-effort persistence of step changes
            on_phase_change: Called with (old, new) after every phase change
        """
        self.session_id = session_id
        self.capture = capture
        self.output = output
        self.pipeline = pipeline
        self.step_machine = step_machine
        self.job_loop = job_loop
        self.config = config or OrchestratorConfig()
        self.history_limit = history_limit
        self.profile = profile or CandidateProfile()
        self.sync = sync
        self.on_phase_change = on_phase_change

        self.state = TurnState()
        self.log = log.bind(session_id=session_id)
        self._last_history: List[ConversationEntry] = []
        self.timers = TimerRegistry()
        self._processing = False
        self._turn_seq = 0
        self._speech_seq = 0
        self._started = False
        self._turn_task: Optional[asyncio.Task] = None
        self._start_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()

        self.capture.subscribe(self.on_transcript, self.on_capture_error)

    # ==================== properties ====================

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def current_step(self) -> StepDefinition:
        return self.step_machine.current()

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    # ==================== phase handling ====================

    def _transition(self, event: Event) -> bool:
        """Apply ``event`` to the current phase. Returns False if illegal."""
        current = self.state.phase
        new = next_phase(current, event)
        if new is None:
            self.log.debug(
                "phase_transition_rejected", phase=current.value, trigger=event.value
            )
            return False

        if current is Phase.LISTENING and new is not Phase.LISTENING:
            # Nothing spoken or processed may be transcribed
            self.timers.cancel(AUTO_SUBMIT_TIMER)
            self.capture.stop()

        self.state.phase = new
        self.log.debug(
            "phase_changed", from_phase=current.value, to_phase=new.value, trigger=event.value
        )
        if self.on_phase_change is not None:
            self.on_phase_change(current, new)
        return True

    def _voice_eligible(self) -> bool:
        return (
            self.state.is_active
            and self.state.voice_mode
            and self.current_step.allows_voice
            and self.state.phase is not Phase.CLOSING
        )

    def _settle(self) -> None:
        """Resume listening if voice-eligible, otherwise wait idle for input."""
        if self.state.phase in (Phase.CLOSING, Phase.LISTENING):
            return
        info = self.state.error_info
        if self.state.phase is Phase.ERROR and info is not None and info.is_terminal:
            # Held until an explicit retry
            return
        if self._voice_eligible():
            if self._transition(Event.LISTEN):
                self.state.transcript = ""
                self.capture.reset()
                self.capture.start()
        else:
            self._transition(Event.SETTLE)

    async def _speak(
        self, text: str, event: Optional[Event] = Event.SPEAK
    ) -> Optional[PlaybackOutcome]:
        """
        Speak ``text`` and log it as an assistant entry.

        With ``event=None`` the phase is left unchanged (error and closing
        messages). Returns None when the utterance was superseded by a newer
        one or the session was reset while speaking.

        Raises:
            SpeechPlaybackError: Genuine playback failure
        """
        if event is not None and not self._transition(event):
            return None

        self.capture.stop()
        self._speech_seq += 1
        seq = self._speech_seq
        self._append(Speaker.ASSISTANT, text)

        outcome = await self.output.speak(text)

        if seq != self._speech_seq:
            return None
        if outcome is PlaybackOutcome.INTERRUPTED:
            self.log.debug("speech_interrupted")
        return outcome

    def _append(self, speaker: Speaker, content: str) -> None:
        self.state.conversation_log.append(
            ConversationEntry(
                speaker=speaker, content=content, step_name=self.current_step.name
            )
        )

    # ==================== lifecycle ====================

    async def start(self) -> None:
        """Open the interview: speak the first step's greeting, then listen."""
        if self._started:
            return
        self._started = True
        self._closed.clear()

        step = self.current_step
        self.log.info("interview_started", step=step.name, voice_mode=self.state.voice_mode)
        self._enter_step(step)

        seq = self._turn_seq
        if step.initial_message:
            try:
                outcome = await self._speak(step.initial_message)
            except SpeechPlaybackError as e:
                self.log.warning("greeting_playback_failed", error=e.message)
                outcome = PlaybackOutcome.INTERRUPTED
            if outcome is None or seq != self._turn_seq:
                return

        if self.state.phase is Phase.SPEAKING or self.state.phase is Phase.IDLE:
            self._settle()

    def start_in_background(self) -> asyncio.Task:
        self._start_task = asyncio.create_task(self.start())
        return self._start_task

    async def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Wait until the closing message has been delivered."""
        try:
            await asyncio.wait_for(self._closed.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait_idle(self) -> None:
        """Wait for the running turn, if any (tests and shutdown)."""
        task = self._turn_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    def pause(self) -> None:
        """Stop listening and speaking; inputs are ignored until resume()."""
        if not self.state.is_active:
            return
        self.state.is_active = False
        self.timers.cancel(AUTO_SUBMIT_TIMER)
        self.output.stop()
        if self.state.phase is Phase.LISTENING:
            self._transition(Event.SETTLE)
        self.capture.stop()
        self.log.info("interview_paused", phase=self.state.phase.value)

    def resume(self) -> None:
        if self.state.is_active or self.state.phase is Phase.CLOSING:
            return
        self.state.is_active = True
        self.log.info("interview_resumed")
        if not self._processing:
            self._settle()

    def stop_speaking(self) -> None:
        """Cut the current utterance short; the turn continues as if it ended."""
        if self.output.is_speaking:
            self.output.stop()

    def set_voice_mode(self, enabled: bool) -> None:
        if self.state.voice_mode == enabled:
            return
        self.state.voice_mode = enabled
        self.log.info("voice_mode_changed", enabled=enabled)
        if not enabled and self.state.phase is Phase.LISTENING:
            self._transition(Event.SETTLE)
        elif enabled and self.state.phase is Phase.IDLE and not self._processing:
            self._settle()

    def set_text_input(self, text: str) -> None:
        self.state.text_input = text

    async def shutdown(self) -> None:
        """Stop all activity and flush pending saves (session deleted)."""
        self._turn_seq += 1
        self.pause()
        self.timers.cancel_all()
        for task in (self._turn_task, self._start_task):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._processing = False
        if self.sync is not None:
            await self.sync.drain()
        self.log.info("interview_shutdown")

    async def reset(self) -> None:
        """Discard the session state and return to the first step."""
        self._turn_seq += 1
        self._speech_seq += 1
        self.timers.cancel_all()
        self.output.stop()
        self.capture.stop()
        self.capture.reset()

        for task in (self._turn_task, self._start_task):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._turn_task = None
        self._start_task = None

        voice_mode = self.state.voice_mode
        self.state = TurnState(voice_mode=voice_mode)
        self.profile = CandidateProfile()
        self.step_machine.reset()
        self.job_loop.reset()
        self._processing = False
        self._started = False
        self._closed.clear()
        self.log.info("interview_reset")

    # ==================== capture callbacks ====================

    def on_transcript(self, transcript: str) -> None:
        """Live transcript changed. Arms or re-arms the auto-submit timer."""
        if self.state.phase is not Phase.LISTENING:
            self.log.debug("transcript_dropped", phase=self.state.phase.value)
            return
        if transcript == self.state.transcript:
            return

        self.state.transcript = transcript
        if not self._voice_eligible():
            return

        if len(transcript.strip()) > self.config.min_transcript_chars:
            self.timers.arm(
                AUTO_SUBMIT_TIMER, self.config.auto_submit_delay_s, self._auto_submit
            )
        else:
            self.timers.cancel(AUTO_SUBMIT_TIMER)

    def on_capture_error(self, code: str) -> None:
        """Capture stopped on an engine error; restart it if still listening."""
        if self.state.phase is not Phase.LISTENING:
            return
        self.log.info("capture_error", code=code)
        if code in CRITICAL_CAPTURE_ERRORS:
            self.timers.cancel(AUTO_SUBMIT_TIMER)
            self.state.transcript = ""
        if self._voice_eligible():
            self.capture.start()

    def _auto_submit(self) -> None:
        if self.state.phase is not Phase.LISTENING or not self._voice_eligible():
            return
        self.log.info("auto_submit_fired", transcript_length=len(self.state.transcript))
        self._submit(self.state.transcript, SubmissionSource.VOICE)

    # ==================== submissions ====================

    def submit_voice(self) -> bool:
        """Submit the live transcript now (manual trigger)."""
        if self.state.phase is not Phase.LISTENING:
            return False
        transcript = self.state.transcript or self.capture.transcript
        return self._submit(transcript, SubmissionSource.VOICE)

    def submit_text(self, text: Optional[str] = None) -> bool:
        """Submit typed input (``text`` or the pending text input)."""
        return self._submit(
            text if text is not None else self.state.text_input, SubmissionSource.TEXT
        )

    def retry(self) -> bool:
        """Re-submit the input of the last failed turn."""
        info = self.state.error_info
        if info is None or not info.last_input:
            return False
        self.log.info("retry_requested", retry_count=info.retry_count)
        return self._submit(info.last_input, SubmissionSource.RETRY)

    def _submit(self, text: str, source: SubmissionSource) -> bool:
        """
        Start a turn. Everything up to creating the turn task is synchronous,
        so a racing second submission always sees the lock.
        """
        text = (text or "").strip()
        if not text:
            return False
        if self.state.phase is Phase.CLOSING:
            raise SessionCompletedError("Interview is already closing")
        if self._processing:
            self.log.info("submission_rejected", reason="busy", source=source.value)
            return False
        if not self.state.is_active:
            self.log.info("submission_rejected", reason="paused", source=source.value)
            return False

        step = self.current_step
        if source is SubmissionSource.VOICE and not step.allows_voice:
            self.log.info("submission_rejected", reason="text_only_step", step=step.name)
            return False

        if self.state.phase is Phase.ERROR and source is not SubmissionSource.RETRY:
            self.log.info("submission_rejected", reason="error_pending")
            return False

        rejection = None
        if source is not SubmissionSource.RETRY:
            rejection = input_rejection(step, text)

        event = Event.RETRY if self.state.phase is Phase.ERROR else Event.SUBMIT
        if rejection is None and next_phase(self.state.phase, event) is None:
            self.log.info(
                "submission_rejected", reason="phase", phase=self.state.phase.value
            )
            return False

        self._processing = True
        self._turn_seq += 1
        turn_seq = self._turn_seq

        if self.output.is_speaking:
            self._speech_seq += 1
            self.output.stop()

        if source is SubmissionSource.RETRY:
            history = self._last_history
        else:
            history = self.state.recent_history(self.history_limit)
            self._last_history = history
            self._append(Speaker.USER, text)
        self.state.transcript = ""
        self.state.text_input = ""

        if rejection is not None:
            self._turn_task = asyncio.create_task(self._reject(rejection, turn_seq))
        else:
            self._transition(event)
            self.capture.reset()
            self.log.info(
                "turn_submitted", source=source.value, step=step.name, input_length=len(text)
            )
            self._turn_task = asyncio.create_task(
                self._run_turn(text, step, history, turn_seq)
            )
        return True

    # ==================== turn execution ====================

    async def _reject(self, message: str, turn_seq: int) -> None:
        """Re-prompt for typed input that failed local validation."""
        try:
            try:
                await self._speak(message)
            except SpeechPlaybackError as e:
                self.log.warning("validation_prompt_playback_failed", error=e.message)
            if turn_seq == self._turn_seq:
                self._settle()
        finally:
            if turn_seq == self._turn_seq:
                self._processing = False

    async def _run_turn(
        self,
        text: str,
        step: StepDefinition,
        history: List[ConversationEntry],
        turn_seq: int,
    ) -> None:
        try:
            try:
                result = await self.pipeline.execute(
                    TurnContext(
                        session_id=self.session_id,
                        user_input=text,
                        step=step,
                        history=history,
                        profile=self.profile,
                    )
                )
            except Exception as e:
                if turn_seq == self._turn_seq:
                    await self._handle_failure(e, text, turn_seq)
                return

            if turn_seq != self._turn_seq:
                return

            if self.state.error_info is not None:
                self.log.info("turn_recovered", retry_count=self.state.error_info.retry_count)
            self.state.error_info = None

            try:
                await self._deliver(result, step, turn_seq)
            except SpeechPlaybackError as e:
                if turn_seq == self._turn_seq:
                    await self._handle_failure(e, text, turn_seq)
        finally:
            if turn_seq == self._turn_seq:
                self._processing = False

    async def _deliver(self, result: TurnResult, step: StepDefinition, turn_seq: int) -> None:
        """Speak the reply, then advance or return to listening."""
        if result.message:
            outcome = await self._speak(result.message)
            if outcome is None or turn_seq != self._turn_seq:
                return

        if result.should_advance:
            await self._advance(step, turn_seq)
        else:
            self._settle()

    async def _advance(self, step: StepDefinition, turn_seq: int) -> None:
        self._transition(Event.ADVANCE)
        self.step_machine.mark_complete()

        if step.is_dynamic_loop and self.job_loop.is_active:
            more = await self.job_loop.advance_item()
            if turn_seq != self._turn_seq:
                return
            if more or not self.job_loop.is_loop_complete:
                self.log.info(
                    "job_loop_continues", progress=self.job_loop.progress_message()
                )
                self._settle()
                return

        if self.config.transition_delay_s > 0:
            await asyncio.sleep(self.config.transition_delay_s)
            if turn_seq != self._turn_seq:
                return

        new_step = self.step_machine.advance()
        if new_step is None:
            await self._close()
            return

        if step.is_dynamic_loop:
            self.job_loop.reset()
        self._enter_step(new_step)

        if self.step_machine.is_last_step():
            await self._close()
            return
        self._settle()

    def _enter_step(self, step: StepDefinition) -> None:
        if step.is_dynamic_loop:
            self.job_loop.initialize(self.profile.experience)
        if self.sync is not None:
            self.sync.schedule_step(step.name)

    async def _close(self) -> None:
        """Deliver the closing message; nothing is started afterwards."""
        if not self._transition(Event.CLOSE):
            return
        self.timers.cancel_all()
        self.capture.stop()
        step = self.current_step
        self.log.info("interview_closing", step=step.name)

        if step.initial_message:
            try:
                await self._speak(step.initial_message, event=None)
            except SpeechPlaybackError as e:
                self.log.warning("closing_playback_failed", error=e.message)

        if self.sync is not None:
            self.sync.schedule_step(step.name, status="completed")
        self._closed.set()
        self.log.info("interview_closed")

    # ==================== failures ====================

    async def _handle_failure(self, error: Exception, text: str, turn_seq: int) -> None:
        """
        Count the failure and tell the user.

        Below the ceiling the session stays retryable; at the ceiling the
        phase is held in ERROR until retry(). Authentication failures jump
        straight to the ceiling.
        """
        max_retries = self.config.max_retries
        previous = self.state.error_info.retry_count if self.state.error_info else 0
        fatal = isinstance(error, LLMAuthenticationError)
        retry_count = max_retries if fatal else min(previous + 1, max_retries)
        terminal = retry_count >= max_retries

        message = (
            TERMINAL_ERROR_MESSAGE
            if terminal
            else TRANSIENT_ERROR_MESSAGE.format(attempt=retry_count, max_retries=max_retries)
        )
        self.state.error_info = ErrorInfo(
            message=message,
            retry_count=retry_count,
            max_retries=max_retries,
            last_input=text,
            is_fatal=fatal,
        )
        self._transition(Event.FAIL)

        self.log.warning(
            "turn_failed",
            error_type=type(error).__name__,
            error=str(error),
            retry_count=retry_count,
            max_retries=max_retries,
            terminal=terminal,
            exc_info=not isinstance(error, InterviewSystemError),
        )

        try:
            await self._speak(self.current_step.error_message, event=None)
        except SpeechPlaybackError as e:
            self.log.warning("error_message_playback_failed", error=e.message)

        if turn_seq != self._turn_seq or terminal:
            return
        self._settle()

    # ==================== snapshot ====================

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the session for the API."""
        step = self.current_step
        loop_ctx = self.job_loop.context() if step.is_dynamic_loop else None
        error = self.state.error_info
        return {
            "session_id": self.session_id,
            "phase": self.state.phase.value,
            "is_active": self.state.is_active,
            "is_processing": self._processing,
            "voice_mode": self.state.voice_mode,
            "transcript": self.state.transcript,
            "step": {
                "id": step.id,
                "name": step.name,
                "title": step.title,
                "requires_text_input": step.requires_text_input,
                "index": self.step_machine.index,
                "total": self.step_machine.total,
            },
            "progress": self.step_machine.progress_percentage(),
            "loop": (
                {
                    "current": loop_ctx.current_item.label,
                    "index": loop_ctx.index,
                    "total": loop_ctx.total,
                    "has_more_items": loop_ctx.has_more_items,
                    "progress": self.job_loop.progress_message(),
                }
                if loop_ctx
                else None
            ),
            "error": (
                {
                    "message": error.message,
                    "retry_count": error.retry_count,
                    "max_retries": error.max_retries,
                    "is_fatal": error.is_fatal,
                    "can_retry": bool(error.last_input),
                }
                if error
                else None
            ),
            "conversation": [
                {
                    "speaker": entry.speaker.value,
                    "content": entry.content,
                    "step": entry.step_name,
                }
                for entry in self.state.conversation_log
            ],
            "profile": self.profile.model_dump(mode="json", by_alias=True),
            "closed": self.is_closed,
        }
