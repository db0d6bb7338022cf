"""
API request/response schemas.

Pydantic models for API validation and serialization.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from src.domain.models.message import ChatMessage
from src.domain.models.session import (
    InterviewMode,
    MaterialKind,
    ReferenceMaterial,
    ResearchConfig,
    ResearchSession,
    Stage,
)


# ============ SESSION SCHEMAS ============


class InterviewStatusSchema(BaseModel):
    """Live interview loop state."""

    mode: InterviewMode
    turn_state: str
    moderator_status: str
    message_count: int


class ResearchSessionResponse(BaseModel):
    """Research session snapshot."""

    session: ResearchSession
    stage_history: List[Stage] = Field(default_factory=list)
    interview: Optional[InterviewStatusSchema] = None


class ResearchSessionListResponse(BaseModel):
    """List of research sessions."""

    sessions: List[ResearchSessionResponse]
    total: int


# ============ WORKFLOW SCHEMAS ============


class ReferenceMaterialSchema(BaseModel):
    """Reference material; file content must already be base64-encoded."""

    kind: MaterialKind = MaterialKind.TEXT
    name: str = Field(..., min_length=1)
    content: str
    mime_type: Optional[str] = None


class InitialConfigRequest(BaseModel):
    """Research brief submitted from setup."""

    industry: str = Field(..., min_length=1, max_length=200)
    target_audience: str = Field(..., min_length=1, max_length=2000)
    reference_materials: List[ReferenceMaterialSchema] = Field(default_factory=list)

    def to_config(self) -> ResearchConfig:
        return ResearchConfig(
            industry=self.industry.strip(),
            target_audience=self.target_audience.strip(),
            reference_materials=[
                ReferenceMaterial(**m.model_dump()) for m in self.reference_materials
            ],
        )


class ClarificationsRequest(BaseModel):
    """One answer per clarifying question, in order."""

    answers: List[str]


class GuideRequest(BaseModel):
    """Inputs for guide generation."""

    objectives: Optional[str] = Field(default=None, max_length=5000)
    user_questions: Optional[str] = Field(
        default=None, max_length=5000, description="Questions that must be asked"
    )


class GuideQuestionRequest(BaseModel):
    """Guide question text for add/edit."""

    text: str = Field(default="", max_length=2000)


class ConfirmGuideRequest(BaseModel):
    """Final guide; omit to confirm the guide as currently edited."""

    guide: Optional[List[str]] = None


class StartInterviewRequest(BaseModel):
    """Interview mode chosen at mode selection."""

    mode: InterviewMode = InterviewMode.MANUAL


# ============ INTERVIEW SCHEMAS ============


class MessageRequest(BaseModel):
    """Manual interviewer message."""

    text: str = Field(..., max_length=5000)


class MessageResponse(BaseModel):
    """Respondent reply plus the updated session."""

    reply: Optional[ChatMessage] = None
    session: ResearchSessionResponse


class EndInterviewRequest(BaseModel):
    """Transcript to summarize; omit to use the live transcript."""

    transcript: Optional[List[ChatMessage]] = None
