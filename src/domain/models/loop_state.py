"""Work experience loop state.

LoopState is valid only while the current step is the dynamic-loop step.
The selected items are frozen at initialization; the current item is always
derived from (items, cursor) and never stored separately.
"""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from src.domain.models.candidate import LinkedInExperience


class LoopState(BaseModel):
    """Cursor over the frozen selection of jobs.

    Invariants:
        - 0 <= cursor < len(items) while is_active
        - is_complete implies not is_active
    """

    items: Tuple[LinkedInExperience, ...] = Field(default_factory=tuple)
    cursor: int = Field(default=0, ge=0)
    is_active: bool = False
    is_complete: bool = False
    is_transitioning: bool = False

    @property
    def current_item(self) -> Optional[LinkedInExperience]:
        if not self.is_active or self.cursor >= len(self.items):
            return None
        return self.items[self.cursor]

    @property
    def has_more_items(self) -> bool:
        return self.cursor + 1 < len(self.items)


class LoopContext(BaseModel):
    """Per-item context handed to the response generator."""

    model_config = ConfigDict(frozen=True)

    current_item: LinkedInExperience
    index: int = Field(..., ge=0, description="Position within the selection")
    total: int = Field(..., ge=1, description="Number of selected items")
    has_more_items: bool
    next_item: Optional[LinkedInExperience] = None

    @property
    def position_label(self) -> str:
        if self.index == 0:
            return "most recent"
        if self.index == self.total - 1:
            return "oldest"
        return "previous"
