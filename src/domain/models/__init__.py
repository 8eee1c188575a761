"""Domain models package."""

from .candidate import (
    CandidateProfile,
    CareerObjectivesReport,
    JobExperienceDetail,
    JobExperienceReport,
    LinkedInData,
    LinkedInEducation,
    LinkedInExperience,
    PersonalInfo,
)
from .generation import GenerationResult
from .loop_state import LoopContext, LoopState
from .step import StepDefinition, ValidationRule
from .turn_state import (
    ConversationEntry,
    ErrorInfo,
    Event,
    Phase,
    Speaker,
    SubmissionSource,
    TurnState,
)

__all__ = [
    "CandidateProfile",
    "CareerObjectivesReport",
    "JobExperienceDetail",
    "JobExperienceReport",
    "LinkedInData",
    "LinkedInEducation",
    "LinkedInExperience",
    "PersonalInfo",
    "GenerationResult",
    "LoopContext",
    "LoopState",
    "StepDefinition",
    "ValidationRule",
    "ConversationEntry",
    "ErrorInfo",
    "Event",
    "Phase",
    "Speaker",
    "SubmissionSource",
    "TurnState",
]
