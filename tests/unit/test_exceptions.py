"""Tests for exception hierarchy."""

import pytest

from src.core.exceptions import (
    ConfigurationError,
    InterviewSystemError,
    LLMAuthenticationError,
    LLMBadRequestError,
    LLMError,
    LLMInvalidResponseError,
    LLMRateLimitError,
    LLMServerError,
    LLMTimeoutError,
    PersistenceError,
    SessionCompletedError,
    SessionError,
    SessionNotFoundError,
    SpeechError,
    SpeechPlaybackError,
    is_retryable,
)


def test_exception_hierarchy():
    """All exceptions inherit from InterviewSystemError."""
    assert issubclass(ConfigurationError, InterviewSystemError)
    assert issubclass(LLMError, InterviewSystemError)
    assert issubclass(LLMTimeoutError, LLMError)
    assert issubclass(LLMAuthenticationError, LLMError)
    assert issubclass(SessionError, InterviewSystemError)
    assert issubclass(SessionNotFoundError, SessionError)
    assert issubclass(SessionCompletedError, SessionError)
    assert issubclass(SpeechPlaybackError, SpeechError)
    assert issubclass(PersistenceError, InterviewSystemError)


def test_exceptions_can_be_raised():
    """Exceptions can be raised and caught."""
    with pytest.raises(SessionNotFoundError):
        raise SessionNotFoundError("Session test-123 not found")


def test_message_attribute():
    """The message is kept on the exception."""
    error = LLMServerError("upstream down", status_code=502)
    assert error.message == "upstream down"
    assert error.status_code == 502
    assert str(error) == "upstream down"


class TestIsRetryable:
    """Tests for is_retryable classification."""

    @pytest.mark.parametrize(
        "error",
        [
            LLMRateLimitError("slow down"),
            LLMServerError("boom"),
            LLMTimeoutError("timeout"),
            LLMInvalidResponseError("no choices"),
        ],
    )
    def test_transient_errors_are_retryable(self, error):
        """Transient provider failures may succeed on another attempt."""
        assert is_retryable(error)

    @pytest.mark.parametrize(
        "error", [LLMAuthenticationError("bad key"), LLMBadRequestError("bad payload")]
    )
    def test_auth_and_bad_request_are_not_retryable(self, error):
        """Credential and payload errors never succeed on retry."""
        assert not is_retryable(error)

    def test_non_llm_errors_are_not_retryable(self):
        """Only LLM errors are classified as retryable."""
        assert not is_retryable(ValueError("nope"))
        assert not is_retryable(SessionNotFoundError("missing"))
