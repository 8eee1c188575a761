"""
Advancement decision rules.

Combines the model's judgement with the step's declarative validation rules.
Precedence, applied in order:

1. A step with an explicit-advance rule (the work experience loop) is decided
   by that rule alone; the model's judgement is ignored.
2. Otherwise the model's judgement, or the step's fallback rule when the
   reply came from the degraded path.
3. If the decision is still negative and the step has an override rule that
   matches the input, advancement is forced.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from src.domain.models.step import StepDefinition

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AdvanceDecision:
    """Outcome of resolve_should_advance with the rule that decided it."""

    should_advance: bool
    decided_by: str  # "explicit_rule", "model", "fallback_rule", "override_rule"


def resolve_should_advance(
    step: StepDefinition,
    user_input: str,
    model_decision: Optional[bool],
    degraded: bool = False,
) -> AdvanceDecision:
    """Decide whether the current step (or loop item) should advance.

    Args:
        step: Current step definition
        user_input: Raw user input of this turn
        model_decision: shouldAdvance from the model, None when unavailable
        degraded: Reply came from the simplified fallback path

    Returns:
        AdvanceDecision
    """
    if step.explicit_advance_rule is not None:
        decision = AdvanceDecision(
            step.explicit_advance_rule.matches(user_input), "explicit_rule"
        )
        if model_decision and not decision.should_advance:
            log.info("model_advance_rejected", step=step.name)
        return decision

    if degraded:
        rule = step.fallback_rule
        decision = AdvanceDecision(
            bool(rule and rule.matches(user_input)), "fallback_rule"
        )
    else:
        decision = AdvanceDecision(bool(model_decision), "model")

    if not decision.should_advance and step.override_rule is not None:
        if step.override_rule.matches(user_input):
            log.info("advance_forced_by_override", step=step.name)
            return AdvanceDecision(True, "override_rule")

    return decision


def input_rejection(step: StepDefinition, user_input: str) -> Optional[str]:
    """Check typed input for a text step before any network call.

    Only text-input steps with an override rule are checked; their input is
    objectively verifiable (email syntax, profile URL, paste length).

    Returns:
        The step's validation message if the input is rejected, else None
    """
    if not step.requires_text_input or step.override_rule is None:
        return None
    if step.override_rule.matches(user_input):
        return None
    log.info("step_input_rejected", step=step.name, input_length=len(user_input))
    return step.validation_message
