"""
Step state machine.

Owns the linear traversal of the active interview steps. It only reports
outcomes (new step, no next step); the orchestrator decides what phase
follows.
"""

from typing import List, Optional, Set

import structlog

from src.core.exceptions import ConfigurationError
from src.domain.models.step import StepDefinition

log = structlog.get_logger(__name__)


class StepStateMachine:
    """Cursor over the ordered active steps."""

    def __init__(self, steps: List[StepDefinition]):
        active = sorted((s for s in steps if s.active), key=lambda s: s.id)
        if not active:
            raise ConfigurationError("Step table has no active steps")
        self._steps = tuple(active)
        self._index = 0
        self._completed: Set[int] = set()

    @property
    def steps(self) -> List[StepDefinition]:
        return list(self._steps)

    @property
    def index(self) -> int:
        return self._index

    @property
    def total(self) -> int:
        return len(self._steps)

    @property
    def completed_step_ids(self) -> Set[int]:
        return set(self._completed)

    def current(self) -> StepDefinition:
        return self._steps[self._index]

    def next_step(self) -> Optional[StepDefinition]:
        if self.is_last_step():
            return None
        return self._steps[self._index + 1]

    def is_last_step(self) -> bool:
        return self._index >= len(self._steps) - 1

    def advance(self) -> Optional[StepDefinition]:
        """Move to the next active step.

        Returns:
            The new current step, or None when already at the last step
            (the cursor does not move)
        """
        if self.is_last_step():
            log.warning("step_advance_past_end_ignored", step=self.current().name)
            return None

        previous = self.current()
        self._index += 1
        current = self.current()
        log.info(
            "step_advanced",
            from_step=previous.name,
            to_step=current.name,
            progress=self.progress_percentage(),
        )
        return current

    def mark_complete(self) -> None:
        """Record that the current step's criteria were met. Does not advance."""
        step = self.current()
        if step.id not in self._completed:
            self._completed.add(step.id)
            log.debug("step_marked_complete", step=step.name)

    def is_complete(self, step_id: int) -> bool:
        return step_id in self._completed

    def progress_percentage(self) -> int:
        return round(100 * (self._index + 1) / len(self._steps))

    def reset(self) -> None:
        self._index = 0
        self._completed.clear()
