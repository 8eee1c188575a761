"""Step table models.

A StepDefinition is one topical stage of the interview (name, email,
LinkedIn, career objectives, work experience loop, closing). Definitions are
loaded once from config/interview_steps.yaml and are immutable afterwards.

Advancement is declarative: besides the model's own judgement, a step can
carry up to three ValidationRules:

    - override_rule: forces advancement when the model declined
      (steps whose input is objectively checkable, e.g. email syntax)
    - fallback_rule: decides advancement when the degraded path is used
    - explicit_advance_rule: sole authority for the step (loop steps that
      must only move when the user asks to)
"""

import re
from typing import List, Optional, Pattern

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _phrase_pattern(phrase: str) -> Pattern[str]:
    return re.compile(rf"(?<![\w']){re.escape(phrase.lower())}(?![\w'])")


class ValidationRule(BaseModel):
    """Local heuristic over the raw user input.

    Every criterion that is set must hold for ``matches`` to return True.
    """

    model_config = ConfigDict(frozen=True)

    patterns: List[str] = Field(
        default_factory=list, description="Any regex must match the trimmed input"
    )
    min_length: Optional[int] = Field(
        default=None, ge=0, description="Inclusive lower bound on trimmed length"
    )
    keywords: List[str] = Field(
        default_factory=list,
        description="Any whole-word phrase must occur (case-insensitive)",
    )
    forbidden: List[str] = Field(
        default_factory=list, description="None of these phrases may occur"
    )

    @field_validator("patterns")
    @classmethod
    def patterns_compile(cls, v: List[str]) -> List[str]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e
        return v

    def matches(self, text: str) -> bool:
        candidate = (text or "").strip()
        if self.min_length is not None and len(candidate) < self.min_length:
            return False
        if self.patterns and not any(re.search(p, candidate) for p in self.patterns):
            return False
        lowered = candidate.lower()
        if self.keywords and not any(
            _phrase_pattern(k).search(lowered) for k in self.keywords
        ):
            return False
        if any(_phrase_pattern(f).search(lowered) for f in self.forbidden):
            return False
        return True


class StepDefinition(BaseModel):
    """One entry of the interview step table."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, description="Ordinal; steps are traversed by id")
    name: str = Field(..., description="Stable step key, e.g. 'email'")
    title: str = Field(..., description="Human-readable title")
    active: bool = Field(default=True, description="Inactive steps are skipped")
    initial_message: Optional[str] = Field(
        default=None, description="Spoken when the interview opens or closes on this step"
    )
    system_prompt: str = Field(default="", description="Step-specific model instructions")
    completion_criteria: List[str] = Field(default_factory=list)
    requires_text_input: bool = Field(
        default=False, description="Voice capture is disabled; input is typed"
    )
    is_dynamic_loop: bool = Field(
        default=False, description="Step iterates over the selected past jobs"
    )
    advancement_rule: str = Field(
        default="", description="Description of how this step decides to advance"
    )
    override_rule: Optional[ValidationRule] = None
    fallback_rule: Optional[ValidationRule] = None
    explicit_advance_rule: Optional[ValidationRule] = None
    validation_message: str = Field(
        default="That doesn't look right. Could you check it and try again?",
        description="Re-prompt when typed input fails the override rule",
    )
    error_message: str = Field(
        default="I'm sorry, I encountered an error. Could you please repeat that?",
        description="Spoken when generating a reply for this step fails",
    )
    fallback_message: str = Field(
        default="Thank you for that information. Let's continue with the next step.",
        description="Reply used when the degraded path returns no text",
    )

    @property
    def allows_voice(self) -> bool:
        return not self.requires_text_input
