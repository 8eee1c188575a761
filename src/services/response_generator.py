"""
Response generator.

Turns one user input into a GenerationResult: reply text, extracted data,
advance decision and confidence.

Failure handling per attempt:
- auth failure: raised immediately (fatal for the session)
- rate limit: exponential backoff, then retry
- server error / timeout / invalid body: linear backoff, then retry
- malformed request (400): switch to the degraded plain-text path
- unparseable reply: low-confidence result that never advances

When every attempt fails the last error is raised to the orchestrator, which
owns the user-visible retry ceiling.
"""

import asyncio
from typing import List, Optional, Sequence

import structlog

from src.core.config import GenerationConfig
from src.core.exceptions import (
    LLMAuthenticationError,
    LLMBadRequestError,
    LLMError,
    LLMRateLimitError,
    is_retryable,
)
from src.domain.models.candidate import CandidateProfile
from src.domain.models.generation import GenerationResult, parse_generation_payload
from src.domain.models.loop_state import LoopContext
from src.domain.models.step import StepDefinition
from src.domain.models.turn_state import ConversationEntry
from src.llm.client import LLMClient
from src.llm.prompts.interview import get_fallback_prompt, get_interview_system_prompt
from src.services.profile_service import HEURISTIC_CONFIDENCE, ProfileService
from src.services.validation import resolve_should_advance

log = structlog.get_logger(__name__)


class ResponseGenerator:
    """Generates interview replies with retry/backoff and a degraded path."""

    def __init__(
        self,
        llm_client: LLMClient,
        steps: Sequence[StepDefinition],
        fallback_client: Optional[LLMClient] = None,
        config: Optional[GenerationConfig] = None,
        profile_service: Optional[ProfileService] = None,
    ):
        """
        Args:
            llm_client: Client for structured JSON replies
            steps: Active steps, used to name the next step in the prompt
            fallback_client: Client for the degraded path (defaults to llm_client)
            config: Retry and history settings
            profile_service: Heuristic extraction for the degraded path
        """
        self.llm_client = llm_client
        self.fallback_client = fallback_client or llm_client
        self.config = config or GenerationConfig()
        self.steps = list(steps)
        self.profile_service = profile_service or ProfileService(
            confidence_threshold=self.config.confidence_threshold
        )

    def _next_step(self, step: StepDefinition) -> Optional[StepDefinition]:
        ids = [s.id for s in self.steps]
        if step.id not in ids:
            return None
        index = ids.index(step.id)
        return self.steps[index + 1] if index + 1 < len(self.steps) else None

    def _history_messages(self, history: Sequence[ConversationEntry]) -> List[dict]:
        limit = self.config.history_limit
        if limit <= 0:
            return []
        return [entry.as_chat_message() for entry in list(history)[-limit:]]

    def _backoff_delay(self, error: LLMError, attempt: int) -> float:
        base = self.config.base_delay_s
        if isinstance(error, LLMRateLimitError):
            return base * (2**attempt)
        return base * (attempt + 1)

    async def generate(
        self,
        user_message: str,
        history: Sequence[ConversationEntry],
        step: StepDefinition,
        profile: CandidateProfile,
        loop_context: Optional[LoopContext] = None,
    ) -> GenerationResult:
        """
        Generate the reply for one turn.

        Args:
            user_message: Submitted user input
            history: Conversation so far, excluding user_message
            step: Current step
            profile: Data collected so far (read-only here)
            loop_context: Current job context (loop step only)

        Returns:
            GenerationResult with the final advance decision applied

        Raises:
            LLMAuthenticationError: Credential rejected
            LLMError: All attempts failed
        """
        system = get_interview_system_prompt(
            step, self._next_step(step), profile, loop_context
        )
        messages = self._history_messages(history)
        max_attempts = self.config.max_attempts

        for attempt in range(max_attempts):
            log.debug(
                "generation_attempt",
                step=step.name,
                attempt=attempt + 1,
                max_attempts=max_attempts,
            )
            try:
                response = await self.llm_client.complete(
                    prompt=user_message,
                    system=system,
                    history=messages,
                    json_mode=True,
                )
            except LLMAuthenticationError:
                log.error("generation_auth_failed", step=step.name)
                raise
            except LLMBadRequestError as e:
                log.warning("generation_bad_request", step=step.name, error=e.message)
                return await self._generate_degraded(
                    user_message, step, profile, loop_context
                )
            except LLMError as e:
                if not is_retryable(e) or attempt + 1 >= max_attempts:
                    log.error(
                        "generation_failed",
                        step=step.name,
                        attempts=attempt + 1,
                        error_type=type(e).__name__,
                        error=e.message,
                    )
                    raise
                delay = self._backoff_delay(e, attempt)
                log.warning(
                    "generation_retry",
                    step=step.name,
                    error_type=type(e).__name__,
                    delay_seconds=delay,
                    next_attempt=attempt + 2,
                )
                await asyncio.sleep(delay)
                continue

            result = self._parse(response.content, step)
            return self._finalize(result, step, user_message)

        raise RuntimeError(f"No generation attempt made (max_attempts={max_attempts})")

    def _parse(self, content: str, step: StepDefinition) -> GenerationResult:
        try:
            return parse_generation_payload(content)
        except ValueError as e:
            log.warning(
                "generation_parse_failed",
                step=step.name,
                error=str(e),
                content_length=len(content or ""),
            )
            return GenerationResult(
                message=(content or "").strip() or step.fallback_message,
                should_advance=False,
                confidence=0,
            )

    def _finalize(
        self,
        result: GenerationResult,
        step: StepDefinition,
        user_message: str,
        degraded: bool = False,
    ) -> GenerationResult:
        decision = resolve_should_advance(
            step, user_message, result.should_advance, degraded=degraded
        )
        if not result.message:
            result = result.model_copy(update={"message": step.fallback_message})
        final = result.model_copy(
            update={"should_advance": decision.should_advance, "degraded": degraded}
        )
        log.info(
            "generation_complete",
            step=step.name,
            should_advance=final.should_advance,
            decided_by=decision.decided_by,
            confidence=final.confidence,
            degraded=degraded,
        )
        return final

    async def _generate_degraded(
        self,
        user_message: str,
        step: StepDefinition,
        profile: CandidateProfile,
        loop_context: Optional[LoopContext],
    ) -> GenerationResult:
        """Simplified plain-text reply after a malformed-request error."""
        response = await self.fallback_client.complete(
            prompt=user_message,
            system=get_fallback_prompt(step, loop_context),
        )
        data = self.profile_service.extract_heuristically(step, user_message, profile)
        result = GenerationResult(
            message=response.content.strip() or step.fallback_message,
            data=data,
            should_advance=False,
            confidence=HEURISTIC_CONFIDENCE,
        )
        return self._finalize(result, step, user_message, degraded=True)
