"""Domain models package."""

from .session import (
    InterviewMode,
    InterviewSummary,
    MaterialKind,
    PendingTask,
    PendingTaskKind,
    ReferenceMaterial,
    ResearchConfig,
    ResearchSession,
    Stage,
)
from .persona import (
    ClarifyingQuestion,
    GroundingSource,
    PersonaDimensionScores,
    PersonaProfile,
)
from .message import ChatMessage, Speaker, Transcript

__all__ = [
    "InterviewMode",
    "InterviewSummary",
    "MaterialKind",
    "PendingTask",
    "PendingTaskKind",
    "ReferenceMaterial",
    "ResearchConfig",
    "ResearchSession",
    "Stage",
    "ClarifyingQuestion",
    "GroundingSource",
    "PersonaDimensionScores",
    "PersonaProfile",
    "ChatMessage",
    "Speaker",
    "Transcript",
]
