"""Wiring for one interview session."""

from typing import Callable, Optional, Sequence

import structlog

from src.core.config import InterviewConfig, interview_config
from src.core.exceptions import ConfigurationError
from src.core.step_loader import load_steps
from src.domain.models.step import StepDefinition
from src.domain.models.turn_state import Phase
from src.llm.client import LLMClient, get_fallback_llm_client, get_generation_llm_client
from src.persistence.repositories.profile_repo import ProfileRepository, ProfileSync
from src.services.job_loop import JobExperienceLoop
from src.services.orchestrator.orchestrator import ConversationOrchestrator
from src.services.orchestrator.pipeline import (
    GenerationStage,
    LoopContextStage,
    ProfileUpdateStage,
    TurnPipeline,
)
from src.services.profile_service import ProfileService
from src.services.response_generator import ResponseGenerator
from src.services.speech.base import SpeechCapture, SpeechOutput
from src.services.step_machine import StepStateMachine

log = structlog.get_logger(__name__)


def build_orchestrator(
    session_id: str,
    capture: SpeechCapture,
    output: SpeechOutput,
    api_key: Optional[str] = None,
    store: Optional[ProfileRepository] = None,
    llm_client: Optional[LLMClient] = None,
    fallback_client: Optional[LLMClient] = None,
    steps: Optional[Sequence[StepDefinition]] = None,
    config: Optional[InterviewConfig] = None,
    on_phase_change: Optional[Callable[[Phase, Phase], None]] = None,
) -> ConversationOrchestrator:
    """
    Build a fully wired orchestrator.

    Args:
        session_id: Session identifier
        capture: Speech capture adapter
        output: Speech output adapter
        api_key: Per-session credential (defaults to the provider key in settings)
        store: Repository for best-effort profile persistence (None disables it)
        llm_client: Generation client override (tests)
        fallback_client: Degraded-path client override (tests)
        steps: Step table override (defaults to the active steps from YAML)
        config: Interview configuration override
        on_phase_change: Phase change listener (state push to clients)

    Raises:
        ConfigurationError: No API key available or empty step table
    """
    config = config or interview_config
    steps = list(steps) if steps is not None else load_steps()

    try:
        llm_client = llm_client or get_generation_llm_client(api_key)
        fallback_client = fallback_client or get_fallback_llm_client(api_key)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    step_machine = StepStateMachine(steps)
    job_loop = JobExperienceLoop(
        max_items=config.job_loop.max_items,
        settle_delay_s=config.job_loop.settle_delay_s,
    )
    profile_service = ProfileService(
        confidence_threshold=config.generation.confidence_threshold
    )
    generator = ResponseGenerator(
        llm_client=llm_client,
        steps=step_machine.steps,
        fallback_client=fallback_client,
        config=config.generation,
        profile_service=profile_service,
    )

    sync = None
    if store is not None:
        sync = ProfileSync(store, session_id)

    pipeline = TurnPipeline(
        [
            LoopContextStage(job_loop),
            GenerationStage(generator),
            ProfileUpdateStage(profile_service, sync),
        ]
    )

    log.info(
        "orchestrator_built",
        session_id=session_id,
        steps=len(step_machine.steps),
        persistence=sync is not None,
    )

    return ConversationOrchestrator(
        session_id=session_id,
        capture=capture,
        output=output,
        pipeline=pipeline,
        step_machine=step_machine,
        job_loop=job_loop,
        config=config.orchestrator,
        history_limit=config.generation.history_limit,
        sync=sync,
        on_phase_change=on_phase_change,
    )
