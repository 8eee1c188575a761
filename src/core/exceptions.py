"""
Custom exception hierarchy for the interview system.

All application exceptions inherit from InterviewSystemError.
"""


class InterviewSystemError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(InterviewSystemError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(InterviewSystemError):
    """Base for LLM-related errors."""

    pass


class LLMAuthenticationError(LLMError):
    """Credential rejected by the provider. Fatal for the session."""

    pass


class LLMTimeoutError(LLMError):
    """LLM call timed out."""

    pass


class LLMRateLimitError(LLMError):
    """LLM rate limit exceeded."""

    pass


class LLMBadRequestError(LLMError):
    """Provider rejected the request payload (HTTP 400)."""

    pass


class LLMServerError(LLMError):
    """Provider-side failure (HTTP 5xx)."""

    def __init__(self, message: str, status_code: int = 500):
        self.status_code = status_code
        super().__init__(message)


class LLMInvalidResponseError(LLMError):
    """LLM returned invalid or unexpected response."""

    pass


_NON_RETRYABLE = (LLMAuthenticationError, LLMBadRequestError)


def is_retryable(exc: BaseException) -> bool:
    """Whether a generation failure may succeed on another attempt."""
    return isinstance(exc, LLMError) and not isinstance(exc, _NON_RETRYABLE)


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(InterviewSystemError):
    """Session-related error."""

    pass


class SessionNotFoundError(SessionError):
    """Session does not exist."""

    pass


class SessionCompletedError(SessionError):
    """Attempted operation on completed session."""

    pass


# =============================================================================
# Speech Errors
# =============================================================================


class SpeechError(InterviewSystemError):
    """Base for speech capture/playback errors."""

    pass


class SpeechPlaybackError(SpeechError):
    """Speech synthesis failed for a reason other than interruption."""

    pass


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(InterviewSystemError):
    """Candidate field could not be stored."""

    pass
