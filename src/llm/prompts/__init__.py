# noqa
from src.llm.prompts.interview import (
    get_fallback_prompt,
    get_interview_system_prompt,
)

__all__ = [
    "get_fallback_prompt",
    "get_interview_system_prompt",
]
