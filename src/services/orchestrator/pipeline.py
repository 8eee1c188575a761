"""
Turn processing pipeline.

One submitted input flows through three stages:

    LoopContextStage -> GenerationStage -> ProfileUpdateStage

Stages share a TurnContext and the pipeline records per-stage timings.
Errors propagate unchanged to the orchestrator, which owns retry policy.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from src.domain.models.candidate import CandidateProfile
from src.domain.models.generation import GenerationResult
from src.domain.models.loop_state import LoopContext
from src.domain.models.step import StepDefinition
from src.domain.models.turn_state import ConversationEntry
from src.persistence.repositories.profile_repo import ProfileSync
from src.services.job_loop import JobExperienceLoop
from src.services.profile_service import ProfileService
from src.services.response_generator import ResponseGenerator

log = structlog.get_logger(__name__)


@dataclass
class TurnContext:
    """State accumulated while processing one turn."""

    session_id: str
    user_input: str
    step: StepDefinition
    history: List[ConversationEntry]
    profile: CandidateProfile
    loop_context: Optional[LoopContext] = None
    generation: Optional[GenerationResult] = None
    changed_fields: List[str] = field(default_factory=list)
    stage_timings: Dict[str, float] = field(default_factory=dict)


@dataclass
class TurnResult:
    """Outcome of one processed turn."""

    generation: GenerationResult
    changed_fields: List[str]
    loop_index: Optional[int]
    latency_ms: int = 0
    stage_timings: Dict[str, float] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return self.generation.message

    @property
    def should_advance(self) -> bool:
        return self.generation.should_advance


class TurnStage(ABC):
    """
    Abstract base class for pipeline stages.

    Each stage takes the TurnContext, performs its operation, updates the
    context and returns it.
    """

    @abstractmethod
    async def process(self, context: TurnContext) -> TurnContext:
        pass

    @property
    def stage_name(self) -> str:
        return self.__class__.__name__


class LoopContextStage(TurnStage):
    """Attach the current job context on the work experience step."""

    def __init__(self, job_loop: JobExperienceLoop):
        self.job_loop = job_loop

    async def process(self, context: TurnContext) -> TurnContext:
        if context.step.is_dynamic_loop:
            context.loop_context = self.job_loop.context()
        return context


class GenerationStage(TurnStage):
    """Generate the reply and the advance decision."""

    def __init__(self, generator: ResponseGenerator):
        self.generator = generator

    async def process(self, context: TurnContext) -> TurnContext:
        context.generation = await self.generator.generate(
            user_message=context.user_input,
            history=context.history,
            step=context.step,
            profile=context.profile,
            loop_context=context.loop_context,
        )
        return context


class ProfileUpdateStage(TurnStage):
    """
    Apply extracted data to the profile and mirror changed fields.

    Persistence is fire-and-forget; a failing store never affects the turn.
    """

    def __init__(
        self, profile_service: ProfileService, sync: Optional[ProfileSync] = None
    ):
        self.profile_service = profile_service
        self.sync = sync

    async def process(self, context: TurnContext) -> TurnContext:
        generation = context.generation
        if generation is None:
            return context

        loop_index = context.loop_context.index if context.loop_context else None
        context.changed_fields = self.profile_service.apply_extracted_data(
            context.profile,
            context.step,
            generation.extracted_data,
            generation.confidence,
            loop_index=loop_index,
        )

        if self.sync is not None:
            for field_name in context.changed_fields:
                self.sync.schedule(
                    field_name,
                    self.profile_service.field_value(context.profile, field_name),
                )
        return context


class TurnPipeline:
    """Executes stages sequentially, tracking timing."""

    def __init__(self, stages: List[TurnStage]):
        self.stages = stages

    async def execute(self, context: TurnContext) -> TurnResult:
        """
        Execute all stages sequentially.

        Raises:
            Exception: If any stage fails
        """
        start_time = time.perf_counter()

        log.debug(
            "pipeline_started",
            step=context.step.name,
            num_stages=len(self.stages),
        )

        for stage in self.stages:
            stage_start = time.perf_counter()
            try:
                context = await stage.process(context)
            except Exception as e:
                log.warning(
                    "stage_failed",
                    stage_name=stage.stage_name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise
            context.stage_timings[stage.stage_name] = (
                time.perf_counter() - stage_start
            ) * 1000

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        if context.generation is None:
            raise RuntimeError("Pipeline finished without a generation result")

        log.info(
            "pipeline_completed",
            step=context.step.name,
            latency_ms=latency_ms,
            stage_timings=context.stage_timings,
        )

        return TurnResult(
            generation=context.generation,
            changed_fields=context.changed_fields,
            loop_index=context.loop_context.index if context.loop_context else None,
            latency_ms=latency_ms,
            stage_timings=context.stage_timings,
        )
