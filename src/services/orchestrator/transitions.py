"""
Phase transition table.

Every phase change made by the orchestrator goes through next_phase(). A
transition that is not in the table is illegal and returns None, so stale
callbacks ("playback finished" after a reset, a second submit while
processing) are rejected instead of corrupting the phase.

Closing is terminal and has no outgoing edges.
"""

from typing import Dict, Optional

from src.domain.models.turn_state import Event, Phase

TRANSITIONS: Dict[Phase, Dict[Event, Phase]] = {
    Phase.IDLE: {
        Event.LISTEN: Phase.LISTENING,
        Event.SPEAK: Phase.SPEAKING,
        Event.SUBMIT: Phase.PROCESSING,
        Event.FAIL: Phase.ERROR,
        Event.CLOSE: Phase.CLOSING,
    },
    Phase.LISTENING: {
        Event.SUBMIT: Phase.PROCESSING,
        Event.SPEAK: Phase.SPEAKING,
        Event.SETTLE: Phase.IDLE,
        Event.FAIL: Phase.ERROR,
        Event.CLOSE: Phase.CLOSING,
    },
    Phase.PROCESSING: {
        Event.SPEAK: Phase.SPEAKING,
        Event.ADVANCE: Phase.TRANSITIONING,
        Event.LISTEN: Phase.LISTENING,
        Event.SETTLE: Phase.IDLE,
        Event.FAIL: Phase.ERROR,
    },
    Phase.SPEAKING: {
        Event.LISTEN: Phase.LISTENING,
        Event.ADVANCE: Phase.TRANSITIONING,
        Event.SETTLE: Phase.IDLE,
        Event.FAIL: Phase.ERROR,
        Event.SPEAK: Phase.SPEAKING,
        Event.SUBMIT: Phase.PROCESSING,
        Event.CLOSE: Phase.CLOSING,
    },
    Phase.TRANSITIONING: {
        Event.LISTEN: Phase.LISTENING,
        Event.SETTLE: Phase.IDLE,
        Event.SPEAK: Phase.SPEAKING,
        Event.FAIL: Phase.ERROR,
        Event.CLOSE: Phase.CLOSING,
    },
    Phase.ERROR: {
        Event.RETRY: Phase.PROCESSING,
        Event.LISTEN: Phase.LISTENING,
        Event.SETTLE: Phase.IDLE,
        Event.CLOSE: Phase.CLOSING,
    },
    Phase.CLOSING: {},
}


def next_phase(phase: Phase, event: Event) -> Optional[Phase]:
    """Phase after ``event``, or None if the event is illegal in ``phase``."""
    return TRANSITIONS[phase].get(event)


def is_legal(phase: Phase, event: Event) -> bool:
    return next_phase(phase, event) is not None
