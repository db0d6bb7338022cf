"""
Custom exception hierarchy for the research interview system.

All application exceptions inherit from ResearchSystemError.
"""


class ResearchSystemError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ResearchSystemError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(ResearchSystemError):
    """Base for LLM-related errors."""

    pass


class LLMTimeoutError(LLMError):
    """LLM call timed out."""

    pass


class LLMRateLimitError(LLMError):
    """LLM rate limit exceeded (HTTP 429 or quota exhausted)."""

    status_code = 429


class LLMResponseParseError(LLMError):
    """Failed to parse LLM response."""

    pass


class LLMInvalidResponseError(LLMError):
    """LLM returned invalid or unexpected response."""

    pass


# =============================================================================
# Workflow Errors
# =============================================================================


class WorkflowError(ResearchSystemError):
    """Research workflow error."""

    pass


class SessionNotFoundError(WorkflowError):
    """Research session does not exist."""

    pass


class InvalidTransitionError(WorkflowError):
    """Operation is not valid from the session's current stage."""

    def __init__(self, message: str, stage: str = ""):
        self.stage = stage
        super().__init__(message)


class ValidationError(ResearchSystemError):
    """Input validation failed."""

    pass


# =============================================================================
# Interview Errors
# =============================================================================


class InterviewError(ResearchSystemError):
    """Interview turn loop error."""

    pass


class TurnConflictError(InterviewError):
    """A turn was requested while another one is still outstanding."""

    pass


class ChannelError(InterviewError):
    """The delivery channel to the respondent could not be created."""

    pass
