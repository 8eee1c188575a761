"""Conversation turn orchestration."""

from src.services.orchestrator.builder import build_orchestrator
from src.services.orchestrator.orchestrator import (
    TERMINAL_ERROR_MESSAGE,
    TRANSIENT_ERROR_MESSAGE,
    ConversationOrchestrator,
)
from src.services.orchestrator.pipeline import TurnContext, TurnPipeline, TurnResult
from src.services.orchestrator.timers import TimerRegistry
from src.services.orchestrator.transitions import TRANSITIONS, next_phase

__all__ = [
    "build_orchestrator",
    "ConversationOrchestrator",
    "TERMINAL_ERROR_MESSAGE",
    "TRANSIENT_ERROR_MESSAGE",
    "TurnContext",
    "TurnPipeline",
    "TurnResult",
    "TimerRegistry",
    "TRANSITIONS",
    "next_phase",
]
