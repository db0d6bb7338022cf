"""Tests for exception hierarchy."""

import pytest


def test_exception_hierarchy():
    """All exceptions inherit from ResearchSystemError."""
    from src.core.exceptions import (
        ChannelError,
        ConfigurationError,
        InterviewError,
        InvalidTransitionError,
        LLMError,
        LLMRateLimitError,
        LLMTimeoutError,
        ResearchSystemError,
        SessionNotFoundError,
        TurnConflictError,
        ValidationError,
        WorkflowError,
    )

    assert issubclass(ConfigurationError, ResearchSystemError)
    assert issubclass(LLMError, ResearchSystemError)
    assert issubclass(LLMTimeoutError, LLMError)
    assert issubclass(LLMRateLimitError, LLMError)
    assert issubclass(SessionNotFoundError, WorkflowError)
    assert issubclass(InvalidTransitionError, WorkflowError)
    assert issubclass(ValidationError, ResearchSystemError)
    assert issubclass(TurnConflictError, InterviewError)
    assert issubclass(ChannelError, InterviewError)


def test_exceptions_can_be_raised():
    """Exceptions can be raised and caught."""
    from src.core.exceptions import SessionNotFoundError

    with pytest.raises(SessionNotFoundError):
        raise SessionNotFoundError("Research session abc not found")


def test_invalid_transition_carries_stage():
    from src.core.exceptions import InvalidTransitionError

    error = InvalidTransitionError("ConfirmGuide not allowed", stage="setup")

    assert error.stage == "setup"
    assert error.message == "ConfirmGuide not allowed"


def test_rate_limit_error_has_429_status():
    from src.core.exceptions import LLMRateLimitError

    assert LLMRateLimitError("quota").status_code == 429
