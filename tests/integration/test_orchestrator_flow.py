"""
End-to-end orchestrator flows with scripted LLM replies.

Speech runs through the in-process adapters: the test feeds recognition
results into StreamingSpeechCapture and reads spoken lines from the console
output's writer.
"""

import asyncio
import logging
from typing import List

import pytest
import structlog
from structlog.testing import CapturingLogger

from src.core.exceptions import (
    LLMAuthenticationError,
    LLMServerError,
    SessionCompletedError,
)
from src.domain.models.candidate import CandidateProfile, LinkedInData, LinkedInExperience
from src.domain.models.turn_state import Phase, Speaker
from src.services.orchestrator import (
    TERMINAL_ERROR_MESSAGE,
    TRANSIENT_ERROR_MESSAGE,
    build_orchestrator,
)
from src.services.orchestrator.orchestrator import AUTO_SUBMIT_TIMER
from src.services.speech.capture import StreamingSpeechCapture
from src.services.speech.output import ConsoleSpeechOutput
from tests.helpers import ScriptedLLMClient, reply, wait_until

NAME_REPLY = reply(
    "Nice to meet you, John! Please type your email address.",
    True,
    {"fullName": "John Smith"},
)


class GatedLLMClient(ScriptedLLMClient):
    """Scripted client that blocks until the gate is opened."""

    def __init__(self, responses):
        super().__init__(responses)
        self.gate = asyncio.Event()

    async def complete(self, prompt, **kwargs):
        await self.gate.wait()
        return await super().complete(prompt, **kwargs)


def _users(orchestrator) -> List[str]:
    return [
        e.content
        for e in orchestrator.state.conversation_log
        if e.speaker is Speaker.USER
    ]


def _with_orchestrator(config, **overrides):
    return config.model_copy(
        update={"orchestrator": config.orchestrator.model_copy(update=overrides)}
    )


class TestStartAndListen:
    """Opening the interview."""

    @pytest.mark.asyncio
    async def test_greeting_then_listening(self, make_orchestrator):
        """The first step's greeting is spoken, then capture starts."""
        orchestrator, capture, spoken = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))

        await orchestrator.start()

        assert spoken[0].startswith("Hey there")
        assert orchestrator.phase is Phase.LISTENING
        assert capture.is_listening

    @pytest.mark.asyncio
    async def test_phase_changes_are_logged(self, make_orchestrator):
        """Every phase change is logged with the event that caused it."""
        orchestrator, _, _ = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))
        captured = CapturingLogger()
        orchestrator.log = structlog.wrap_logger(
            captured,
            processors=[],
            wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        )

        await orchestrator.start()

        changes = [
            (c.kwargs["from_phase"], c.kwargs["to_phase"], c.kwargs["trigger"])
            for c in captured.calls
            if c.kwargs.get("event") == "phase_changed"
        ]
        assert changes == [
            ("idle", "speaking", "speak"),
            ("speaking", "listening", "listen"),
        ]

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, make_orchestrator):
        """A second start() does not repeat the greeting."""
        orchestrator, _, spoken = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))

        await orchestrator.start()
        await orchestrator.start()

        assert len(spoken) == 1


class TestAutoSubmit:
    """Debounced voice submission."""

    @pytest.mark.asyncio
    async def test_welcome_to_email(self, make_orchestrator):
        """A spoken name auto-submits and advances to the email step."""
        client = ScriptedLLMClient([NAME_REPLY])
        orchestrator, capture, spoken = make_orchestrator(client)
        await orchestrator.start()

        capture.handle_result(final="My name is John Smith")
        assert orchestrator.timers.is_armed(AUTO_SUBMIT_TIMER)

        await wait_until(lambda: orchestrator.current_step.name == "email")
        await orchestrator.wait_idle()

        assert len(client.calls) == 1
        assert client.calls[0]["prompt"] == "My name is John Smith"
        assert orchestrator.step_machine.index == 1
        assert orchestrator.profile.personal_info.name == "John Smith"
        assert spoken[-1] == "Nice to meet you, John! Please type your email address."
        # Email is typed, so capture stays off
        assert orchestrator.phase is Phase.IDLE
        assert not capture.is_listening

    @pytest.mark.asyncio
    async def test_history_sent_on_next_turn(self, make_orchestrator):
        """The next request carries the recent conversation."""
        client = ScriptedLLMClient([NAME_REPLY, reply("Got it", True, {"email": "j@x.io"})])
        orchestrator, capture, _ = make_orchestrator(client)
        await orchestrator.start()
        capture.handle_result(final="My name is John Smith")
        await wait_until(lambda: orchestrator.current_step.name == "email")
        await orchestrator.wait_idle()

        assert orchestrator.submit_text("j@x.io")
        await orchestrator.wait_idle()

        history = client.calls[1]["history"]
        assert history[0]["content"].startswith("Hey there")
        assert history[1] == {"role": "user", "content": "My name is John Smith"}
        assert orchestrator.current_step.name == "linkedin"
        assert orchestrator.profile.personal_info.email == "j@x.io"

    @pytest.mark.asyncio
    async def test_short_transcript_does_not_arm(self, make_orchestrator):
        """Transcripts at or below the minimum length never auto-submit."""
        client = ScriptedLLMClient([NAME_REPLY])
        orchestrator, capture, _ = make_orchestrator(client)
        await orchestrator.start()

        capture.handle_result(interim="Hi there")
        await asyncio.sleep(0.1)

        assert not orchestrator.timers.is_armed(AUTO_SUBMIT_TIMER)
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_shrinking_transcript_cancels_timer(self, make_orchestrator):
        """A transcript that drops below the minimum cancels the pending submit."""
        orchestrator, capture, _ = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))
        await orchestrator.start()

        capture.handle_result(interim="Hello there friend")
        assert orchestrator.timers.is_armed(AUTO_SUBMIT_TIMER)
        capture.handle_result(interim="Hello")

        assert not orchestrator.timers.is_armed(AUTO_SUBMIT_TIMER)

    @pytest.mark.asyncio
    async def test_each_change_restarts_the_window(self, make_orchestrator, fast_config):
        """Submission happens one full window after the last change."""
        client = ScriptedLLMClient([NAME_REPLY])
        config = _with_orchestrator(fast_config, auto_submit_delay_s=0.2)
        orchestrator, capture, _ = make_orchestrator(client, config=config)
        await orchestrator.start()

        capture.handle_result(interim="My name is John")
        await asyncio.sleep(0.12)
        capture.handle_result(interim="My name is John Smith")
        await asyncio.sleep(0.12)

        assert client.calls == []

        await wait_until(lambda: len(client.calls) == 1)
        assert client.calls[0]["prompt"] == "My name is John Smith"

    @pytest.mark.asyncio
    async def test_manual_submit(self, make_orchestrator):
        """submit_voice() sends the live transcript immediately."""
        client = ScriptedLLMClient([reply("Could you repeat that?", False)])
        orchestrator, capture, _ = make_orchestrator(client)
        await orchestrator.start()

        capture.handle_result(interim="John")
        assert orchestrator.submit_voice()
        await orchestrator.wait_idle()

        assert client.calls[0]["prompt"] == "John"
        assert orchestrator.phase is Phase.LISTENING
        assert orchestrator.current_step.name == "welcome"


class TestExclusivity:
    """Listening, speaking and processing never overlap."""

    @pytest.mark.asyncio
    async def test_capture_off_while_processing(self, make_orchestrator):
        """Nothing is transcribed while a reply is being generated."""
        client = GatedLLMClient([reply("Could you repeat that?", False)])
        orchestrator, capture, _ = make_orchestrator(client)
        await orchestrator.start()

        assert orchestrator.submit_text("John Smith")
        await asyncio.sleep(0)

        assert orchestrator.phase is Phase.PROCESSING
        assert not capture.is_listening
        capture.handle_result(final="stray words while thinking")
        assert orchestrator.state.transcript == ""

        client.gate.set()
        await orchestrator.wait_idle()
        assert orchestrator.phase is Phase.LISTENING

    @pytest.mark.asyncio
    async def test_phase_changes_never_overlap_capture(self, make_orchestrator):
        """Capture is stopped whenever the system speaks or processes."""
        client = ScriptedLLMClient([NAME_REPLY])
        orchestrator, capture, _ = make_orchestrator(client)
        violations = []

        def check(old, new):
            if new in (Phase.SPEAKING, Phase.PROCESSING) and capture.is_listening:
                violations.append((old, new))

        orchestrator.on_phase_change = check
        await orchestrator.start()
        capture.handle_result(final="My name is John Smith")
        await wait_until(lambda: orchestrator.current_step.name == "email")
        await orchestrator.wait_idle()

        assert violations == []

    @pytest.mark.asyncio
    async def test_double_submit_is_rejected(self, make_orchestrator):
        """A second submission during a turn starts nothing."""
        client = ScriptedLLMClient([reply("Could you repeat that?", False)])
        orchestrator, _, _ = make_orchestrator(client)
        await orchestrator.start()

        assert orchestrator.submit_text("John Smith")
        assert not orchestrator.submit_text("John Smith")
        assert not orchestrator.submit_voice()
        await orchestrator.wait_idle()

        assert len(client.calls) == 1
        assert _users(orchestrator) == ["John Smith"]

    @pytest.mark.asyncio
    async def test_manual_submit_races_auto_submit(self, make_orchestrator):
        """A manual submit and the silence timer firing together start one turn."""
        client = GatedLLMClient([NAME_REPLY])
        orchestrator, capture, _ = make_orchestrator(client)
        await orchestrator.start()
        entered = []
        orchestrator.on_phase_change = lambda old, new: entered.append(new)

        capture.handle_result(final="My name is John Smith")
        assert orchestrator.timers.is_armed(AUTO_SUBMIT_TIMER)

        assert orchestrator.submit_voice()
        # Timer callback running in the same tick as the manual submit
        orchestrator._auto_submit()
        assert not orchestrator.submit_text("My name is John Smith")
        assert not orchestrator.timers.is_armed(AUTO_SUBMIT_TIMER)

        client.gate.set()
        await orchestrator.wait_idle()

        assert entered.count(Phase.PROCESSING) == 1
        assert len(client.calls) == 1
        assert _users(orchestrator) == ["My name is John Smith"]
        assert orchestrator.current_step.name == "email"

    @pytest.mark.asyncio
    async def test_auto_submit_then_manual_submit(self, make_orchestrator):
        """Once the timer has submitted, manual submissions are rejected."""
        client = GatedLLMClient([NAME_REPLY])
        orchestrator, capture, _ = make_orchestrator(client)
        await orchestrator.start()
        entered = []
        orchestrator.on_phase_change = lambda old, new: entered.append(new)

        capture.handle_result(final="My name is John Smith")
        await wait_until(lambda: orchestrator.phase is Phase.PROCESSING)

        assert not orchestrator.submit_voice()
        assert not orchestrator.submit_text("My name is John Smith")

        client.gate.set()
        await orchestrator.wait_idle()

        assert entered.count(Phase.PROCESSING) == 1
        assert len(client.calls) == 1
        assert _users(orchestrator) == ["My name is John Smith"]

    @pytest.mark.asyncio
    async def test_empty_input_ignored(self, make_orchestrator):
        orchestrator, _, _ = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))
        await orchestrator.start()
        assert not orchestrator.submit_text("   ")


class TestFailures:
    """Retry ceiling and recovery."""

    @pytest.mark.asyncio
    async def test_retry_ceiling(self, make_orchestrator, steps):
        """Failures count up to the ceiling, then hold in the error phase."""
        client = ScriptedLLMClient([LLMServerError("down")])
        orchestrator, _, spoken = make_orchestrator(client)
        await orchestrator.start()
        welcome = steps[0]

        for attempt in (1, 2):
            assert orchestrator.submit_text("John Smith")
            await orchestrator.wait_idle()
            info = orchestrator.state.error_info
            assert info.retry_count == attempt
            assert info.message == TRANSIENT_ERROR_MESSAGE.format(
                attempt=attempt, max_retries=3
            )
            assert orchestrator.phase is Phase.LISTENING

        assert orchestrator.submit_text("John Smith")
        await orchestrator.wait_idle()

        info = orchestrator.state.error_info
        assert info.retry_count == 3
        assert info.message == TERMINAL_ERROR_MESSAGE
        assert orchestrator.phase is Phase.ERROR
        assert spoken[-1] == welcome.error_message
        assert not orchestrator.submit_text("John Smith")

    @pytest.mark.asyncio
    async def test_retry_recovers(self, make_orchestrator):
        """An explicit retry re-sends the failed input and clears the error."""
        client = ScriptedLLMClient([LLMServerError("down")])
        orchestrator, _, _ = make_orchestrator(client)
        await orchestrator.start()
        for _ in range(3):
            orchestrator.submit_text("John Smith")
            await orchestrator.wait_idle()
        assert orchestrator.phase is Phase.ERROR

        client.responses = [NAME_REPLY]
        assert orchestrator.retry()
        await orchestrator.wait_idle()

        assert orchestrator.state.error_info is None
        assert orchestrator.current_step.name == "email"
        assert client.calls[-1]["prompt"] == "John Smith"
        # Retries do not log the input again
        assert _users(orchestrator) == ["John Smith"] * 3

    @pytest.mark.asyncio
    async def test_auth_failure_is_terminal(self, make_orchestrator):
        """A rejected credential jumps straight to the ceiling."""
        client = ScriptedLLMClient([LLMAuthenticationError("Invalid API key")])
        orchestrator, _, _ = make_orchestrator(client)
        await orchestrator.start()

        orchestrator.submit_text("John Smith")
        await orchestrator.wait_idle()

        info = orchestrator.state.error_info
        assert info.retry_count == info.max_retries
        assert info.is_fatal
        assert info.message == TERMINAL_ERROR_MESSAGE
        assert orchestrator.phase is Phase.ERROR
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_resume_keeps_terminal_error(self, make_orchestrator):
        """Pausing and resuming at the ceiling does not leave the error phase."""
        client = ScriptedLLMClient([LLMServerError("down")])
        orchestrator, capture, _ = make_orchestrator(client)
        await orchestrator.start()
        for _ in range(3):
            orchestrator.submit_text("John Smith")
            await orchestrator.wait_idle()
        assert orchestrator.phase is Phase.ERROR

        orchestrator.pause()
        orchestrator.resume()

        assert orchestrator.phase is Phase.ERROR
        assert not capture.is_listening
        assert not orchestrator.submit_text("John Smith")
        assert not orchestrator.submit_voice()

        client.responses = [NAME_REPLY]
        assert orchestrator.retry()
        await orchestrator.wait_idle()
        assert orchestrator.state.error_info is None
        assert orchestrator.current_step.name == "email"

    @pytest.mark.asyncio
    async def test_malformed_reply_data_is_not_a_failure(self, make_orchestrator):
        """Reply data of the wrong type is ignored; the turn still completes."""
        client = ScriptedLLMClient(
            [reply("Nice to meet you!", True, {"fullName": ["John", "Smith"]})]
        )
        orchestrator, _, spoken = make_orchestrator(client)
        await orchestrator.start()

        assert orchestrator.submit_text("John Smith")
        await orchestrator.wait_idle()

        assert orchestrator.state.error_info is None
        assert orchestrator.current_step.name == "email"
        assert orchestrator.profile.personal_info.name == ""
        assert "Nice to meet you!" in spoken

    @pytest.mark.asyncio
    async def test_retry_without_error_is_noop(self, make_orchestrator):
        orchestrator, _, _ = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))
        await orchestrator.start()
        assert not orchestrator.retry()

    @pytest.mark.asyncio
    async def test_playback_failure_counts_as_failure(self, steps, fast_config):
        """A reply that cannot be played goes through the failure path."""
        client = ScriptedLLMClient([reply("unspeakable", False)])
        capture = StreamingSpeechCapture()
        spoken = []

        def writer(line):
            if "unspeakable" in line:
                raise OSError("audio device gone")
            spoken.append(line)

        orchestrator = build_orchestrator(
            session_id="s1",
            capture=capture,
            output=ConsoleSpeechOutput(writer=writer, words_per_second=0),
            llm_client=client,
            fallback_client=client,
            steps=steps,
            config=fast_config,
        )
        await orchestrator.start()

        orchestrator.submit_text("John Smith")
        await orchestrator.wait_idle()

        assert orchestrator.state.error_info.retry_count == 1
        assert spoken[-1].endswith(steps[0].error_message)


class TestTextSteps:
    """Typed-input steps."""

    @pytest.mark.asyncio
    async def test_invalid_email_rejected_locally(self, make_orchestrator, steps):
        """Malformed email is re-prompted without calling the model."""
        client = ScriptedLLMClient(
            [reply("Thanks!", False, {"email": "john@example.com"})]
        )
        orchestrator, capture, spoken = make_orchestrator(client, step_table=steps[1:])
        await orchestrator.start()
        assert orchestrator.phase is Phase.IDLE

        assert orchestrator.submit_text("not-an-email")
        await orchestrator.wait_idle()

        assert client.calls == []
        assert spoken[-1] == "Please enter a valid email address."
        assert orchestrator.current_step.name == "email"
        assert orchestrator.phase is Phase.IDLE
        assert not capture.is_listening

        assert orchestrator.submit_text("john@example.com")
        await orchestrator.wait_idle()

        assert len(client.calls) == 1
        assert orchestrator.current_step.name == "linkedin"
        assert orchestrator.profile.personal_info.email == "john@example.com"

    @pytest.mark.asyncio
    async def test_voice_submission_rejected_on_text_step(self, make_orchestrator, steps):
        orchestrator, _, _ = make_orchestrator(
            ScriptedLLMClient([NAME_REPLY]), step_table=steps[1:]
        )
        await orchestrator.start()
        assert not orchestrator.submit_voice()


class TestJobLoop:
    """Work experience loop inside the step sequence."""

    @pytest.fixture
    def loop_steps(self, steps):
        return [s for s in steps if s.name in ("job-experience-loop", "closing")]

    @pytest.fixture
    def profile(self):
        return CandidateProfile(
            linkedin_data=LinkedInData(
                name="John Smith",
                experience=[
                    LinkedInExperience(title="Lead Engineer", company="Acme"),
                    LinkedInExperience(title="Developer", company="Beta"),
                    LinkedInExperience(title="Intern", company="Gamma"),
                ],
            )
        )

    @pytest.mark.asyncio
    async def test_two_jobs_then_close(self, make_orchestrator, loop_steps, profile):
        """Only an explicit request moves on; the last job closes the interview."""
        client = ScriptedLLMClient([reply("Tell me more.", True)])
        orchestrator, _, spoken = make_orchestrator(client, step_table=loop_steps)
        orchestrator.profile = profile
        await orchestrator.start()

        assert orchestrator.job_loop.cursor == 0
        assert len(orchestrator.job_loop.state.items) == 2

        # The model wants to advance, but the user did not ask to
        orchestrator.submit_text("I led the platform team")
        await orchestrator.wait_idle()
        assert orchestrator.job_loop.cursor == 0
        assert orchestrator.current_step.name == "job-experience-loop"
        assert "Acme" in client.calls[0]["system"]

        orchestrator.submit_text("Let's move on")
        await orchestrator.wait_idle()
        assert orchestrator.job_loop.cursor == 1
        assert orchestrator.snapshot()["loop"]["current"] == "Developer at Beta"

        orchestrator.submit_text("I wrote a lot of code")
        await orchestrator.wait_idle()
        assert "Developer" in client.calls[2]["system"]

        orchestrator.submit_text("I think that's all")
        await orchestrator.wait_idle()

        assert await orchestrator.wait_closed(timeout=1)
        assert orchestrator.phase is Phase.CLOSING
        assert orchestrator.current_step.name == "closing"
        assert spoken[-1].startswith("Perfect!")
        assert len(client.calls) == 4
        with pytest.raises(SessionCompletedError):
            orchestrator.submit_text("hello?")

    @pytest.mark.asyncio
    async def test_no_jobs_advances_step(self, make_orchestrator, loop_steps):
        """Without any jobs the loop step advances like any other step."""
        client = ScriptedLLMClient([reply("Let's wrap up.", True)])
        orchestrator, _, _ = make_orchestrator(client, step_table=loop_steps)
        await orchestrator.start()

        orchestrator.submit_text("I'm done")
        await orchestrator.wait_idle()

        assert await orchestrator.wait_closed(timeout=1)


class TestSessionControls:
    """Pause, voice mode, capture errors and reset."""

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, make_orchestrator):
        orchestrator, capture, _ = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))
        await orchestrator.start()

        orchestrator.pause()
        assert orchestrator.phase is Phase.IDLE
        assert not capture.is_listening
        assert not orchestrator.submit_text("John Smith")

        orchestrator.resume()
        assert orchestrator.phase is Phase.LISTENING
        assert capture.is_listening

    @pytest.mark.asyncio
    async def test_voice_mode_off_stops_listening(self, make_orchestrator):
        orchestrator, capture, _ = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))
        await orchestrator.start()

        orchestrator.set_voice_mode(False)
        assert orchestrator.phase is Phase.IDLE
        assert not capture.is_listening

        orchestrator.set_voice_mode(True)
        assert orchestrator.phase is Phase.LISTENING

    @pytest.mark.asyncio
    async def test_critical_capture_error_restarts_clean(self, make_orchestrator):
        """Device errors drop the partial transcript and restart capture."""
        orchestrator, capture, _ = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))
        await orchestrator.start()
        capture.handle_result(final="My name is John Smith")

        capture.handle_error("audio-capture")

        assert capture.is_listening
        assert orchestrator.state.transcript == ""
        assert not orchestrator.timers.is_armed(AUTO_SUBMIT_TIMER)

    @pytest.mark.asyncio
    async def test_reset_returns_to_first_step(self, make_orchestrator):
        client = ScriptedLLMClient([NAME_REPLY])
        orchestrator, capture, _ = make_orchestrator(client)
        await orchestrator.start()
        capture.handle_result(final="My name is John Smith")
        await wait_until(lambda: orchestrator.current_step.name == "email")
        await orchestrator.wait_idle()

        await orchestrator.reset()

        assert orchestrator.current_step.name == "welcome"
        assert orchestrator.phase is Phase.IDLE
        assert orchestrator.state.conversation_log == []
        assert orchestrator.profile.personal_info.name == ""

    @pytest.mark.asyncio
    async def test_snapshot(self, make_orchestrator):
        orchestrator, _, _ = make_orchestrator(ScriptedLLMClient([NAME_REPLY]))
        await orchestrator.start()

        snapshot = orchestrator.snapshot()

        assert snapshot["phase"] == "listening"
        assert snapshot["step"]["name"] == "welcome"
        assert snapshot["step"]["index"] == 0
        assert snapshot["loop"] is None
        assert snapshot["error"] is None
        assert snapshot["conversation"][0]["speaker"] == "assistant"
        assert snapshot["profile"]["personalInfo"]["name"] == ""


class TestPersistence:
    """Best-effort mirroring of collected fields."""

    @pytest.mark.asyncio
    async def test_fields_and_step_are_saved(self, make_orchestrator, profile_repo):
        client = ScriptedLLMClient([NAME_REPLY])
        orchestrator, capture, _ = make_orchestrator(
            client, store=profile_repo, session_id="persisted"
        )
        await orchestrator.start()
        await orchestrator.sync.drain()

        capture.handle_result(final="My name is John Smith")
        await wait_until(lambda: orchestrator.current_step.name == "email")
        await orchestrator.wait_idle()
        await orchestrator.sync.drain()

        assert await profile_repo.get_fields("persisted") == {"name": "John Smith"}
        session = await profile_repo.get_session("persisted")
        assert session["current_step"] == "email"
