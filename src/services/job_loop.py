"""
Work experience loop controller.

Runs the bounded sub-loop over the user's most recent jobs while the
dynamic-loop step is current. The selection is frozen when the loop is
initialized; the current job and the context handed to the response
generator are always derived from (items, cursor).

Advancement contract:
    - advance_item() returns True exactly len(items) - 1 times, then False
    - an advance requested while another is settling is rejected and returns
      the current "more items" answer unchanged
    - once complete, every call is a no-op returning False
"""

import asyncio
from typing import Optional, Sequence

import structlog

from src.domain.models.candidate import LinkedInExperience
from src.domain.models.loop_state import LoopContext, LoopState

log = structlog.get_logger(__name__)


class JobExperienceLoop:
    """Nested loop over the selected jobs of the work experience step."""

    def __init__(self, max_items: int = 2, settle_delay_s: float = 0.1):
        self.max_items = max_items
        self.settle_delay_s = settle_delay_s
        self._state = LoopState()
        self._initialized = False

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_active(self) -> bool:
        return self._state.is_active

    @property
    def is_loop_complete(self) -> bool:
        return self._state.is_complete

    @property
    def is_transitioning(self) -> bool:
        return self._state.is_transitioning

    @property
    def cursor(self) -> int:
        return self._state.cursor

    @property
    def current_item(self) -> Optional[LinkedInExperience]:
        return self._state.current_item

    def initialize(self, source: Sequence[LinkedInExperience]) -> bool:
        """Select and freeze the first max_items jobs.

        Idempotent per step entry: later calls are ignored until reset().
        Source order is assumed to be most recent first.

        Returns:
            True if this call initialized the loop
        """
        if self._initialized:
            return False

        items = tuple(source[: self.max_items])
        self._state = LoopState(items=items, cursor=0, is_active=bool(items))
        self._initialized = True

        log.info(
            "job_loop_initialized",
            source_count=len(source),
            selected=len(items),
            jobs=[item.label for item in items],
        )
        return True

    async def advance_item(self) -> bool:
        """Move to the next job.

        Returns:
            True if another job remains to be discussed, False when the loop
            is exhausted (or was never active)
        """
        state = self._state

        if state.is_complete or not state.is_active:
            return False

        if state.is_transitioning:
            log.warning("job_loop_advance_rejected", cursor=state.cursor)
            return state.has_more_items

        if state.has_more_items:
            state.is_transitioning = True
            try:
                if self.settle_delay_s > 0:
                    await asyncio.sleep(self.settle_delay_s)
                state.cursor += 1
            finally:
                state.is_transitioning = False
            log.info(
                "job_loop_advanced",
                cursor=state.cursor,
                total=len(state.items),
                job=self.current_item.label if self.current_item else None,
            )
            return True

        state.is_complete = True
        state.is_active = False
        log.info("job_loop_completed", total=len(state.items))
        return False

    def context(self) -> Optional[LoopContext]:
        """Context for the current job, or None when the loop is not active."""
        state = self._state
        current = state.current_item
        if current is None:
            return None
        next_item = state.items[state.cursor + 1] if state.has_more_items else None
        return LoopContext(
            current_item=current,
            index=state.cursor,
            total=len(state.items),
            has_more_items=state.has_more_items,
            next_item=next_item,
        )

    def progress_message(self) -> str:
        ctx = self.context()
        if ctx is None:
            return ""
        return f"{ctx.current_item.label} ({ctx.index + 1} of {ctx.total})"

    def reset(self) -> None:
        """Discard the loop (the outer step was left or the session restarted)."""
        self._state = LoopState()
        self._initialized = False
