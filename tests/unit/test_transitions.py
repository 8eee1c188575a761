"""Tests for the phase transition table."""

import pytest

from src.domain.models.turn_state import Event, Phase
from src.services.orchestrator.transitions import TRANSITIONS, is_legal, next_phase


def test_every_phase_has_an_entry():
    """The table covers every phase."""
    assert set(TRANSITIONS) == set(Phase)


def test_closing_is_terminal():
    """Closing has no outgoing edges."""
    for event in Event:
        assert next_phase(Phase.CLOSING, event) is None


def test_submit_only_from_input_phases():
    """A new turn can start only while waiting for input or speaking."""
    allowed = {p for p in Phase if is_legal(p, Event.SUBMIT)}
    assert allowed == {Phase.IDLE, Phase.LISTENING, Phase.SPEAKING}


def test_second_submit_while_processing_is_illegal():
    """Processing cannot be re-entered by another submit."""
    assert next_phase(Phase.PROCESSING, Event.SUBMIT) is None


def test_retry_only_from_error():
    """Retry is the way out of a terminal error."""
    assert next_phase(Phase.ERROR, Event.RETRY) is Phase.PROCESSING
    assert {p for p in Phase if is_legal(p, Event.RETRY)} == {Phase.ERROR}


def test_error_does_not_accept_submit():
    """New input is not accepted while an error is pending."""
    assert not is_legal(Phase.ERROR, Event.SUBMIT)


@pytest.mark.parametrize(
    "phase,event,expected",
    [
        (Phase.IDLE, Event.LISTEN, Phase.LISTENING),
        (Phase.LISTENING, Event.SUBMIT, Phase.PROCESSING),
        (Phase.PROCESSING, Event.SPEAK, Phase.SPEAKING),
        (Phase.SPEAKING, Event.ADVANCE, Phase.TRANSITIONING),
        (Phase.TRANSITIONING, Event.CLOSE, Phase.CLOSING),
        (Phase.PROCESSING, Event.FAIL, Phase.ERROR),
        (Phase.LISTENING, Event.SETTLE, Phase.IDLE),
    ],
)
def test_turn_lifecycle_edges(phase, event, expected):
    """The main turn lifecycle edges exist."""
    assert next_phase(phase, event) is expected


def test_listening_and_speaking_are_exclusive():
    """Listening and speaking hand over directly; processing cannot close."""
    assert next_phase(Phase.LISTENING, Event.SPEAK) is Phase.SPEAKING
    assert next_phase(Phase.SPEAKING, Event.LISTEN) is Phase.LISTENING
    assert not is_legal(Phase.PROCESSING, Event.CLOSE)
