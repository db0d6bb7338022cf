"""Research session domain models.

This module defines the root aggregate of one research run and the
values it accumulates while the workflow advances.

Core Models:
    - ResearchConfig: what the user wants to research (industry, audience,
      clarifications, objectives, reference materials)
    - InterviewSummary: the report produced after the interview
    - PendingTask: the collaborator request the Researching stage waits on
    - ResearchSession: the whole session state

Stage Lifecycle:
    SETUP -> RESEARCHING -> [CLARIFYING -> RESEARCHING] -> PREVIEW
    -> GUIDE_INPUT -> RESEARCHING -> GUIDE_REVIEW -> MODE_SELECTION
    -> INTERVIEW -> RESEARCHING -> SUMMARY

    Failures roll back to SETUP (analysis/persona), GUIDE_INPUT (guide),
    MODE_SELECTION (channel) or INTERVIEW (summary). Reset returns to SETUP
    from anywhere.

Sessions are immutable values: transitions in
src/services/workflow/state_machine.py return updated copies.
"""

from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from src.domain.models.message import ChatMessage
from src.domain.models.persona import (
    ClarifyingQuestion,
    GroundingSource,
    PersonaProfile,
)


class Stage(str, Enum):
    """Workflow stage; exactly one is active at a time."""

    SETUP = "setup"
    CLARIFYING = "clarifying"
    RESEARCHING = "researching"
    PREVIEW = "preview"
    GUIDE_INPUT = "guide_input"
    GUIDE_REVIEW = "guide_review"
    MODE_SELECTION = "mode_selection"
    INTERVIEW = "interview"
    SUMMARY = "summary"


class InterviewMode(str, Enum):
    """Who asks the questions during the interview."""

    MANUAL = "manual"
    """The user interviews the persona."""

    AUTO = "auto"
    """The automated moderator interviews; the user observes."""


class MaterialKind(str, Enum):
    """Reference material kind."""

    TEXT = "text"
    FILE = "file"


class ReferenceMaterial(BaseModel):
    """User-supplied context for persona generation.

    Text materials carry their content verbatim; file materials carry
    base64-encoded bytes plus a MIME type.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    kind: MaterialKind = MaterialKind.TEXT
    name: str
    content: str
    mime_type: Optional[str] = None


class ResearchConfig(BaseModel):
    """What the user wants to research."""

    industry: str = Field(..., min_length=1)
    target_audience: str = Field(..., min_length=1)
    clarifications: List[str] = Field(default_factory=list)
    objectives: Optional[str] = None
    user_questions: Optional[str] = Field(
        default=None, description="Questions the user wants asked no matter what"
    )
    reference_materials: List[ReferenceMaterial] = Field(default_factory=list)


class InterviewSummary(BaseModel):
    """Report extracted from a finished interview."""

    key_insights: str
    pain_points: str
    wants_needs: str
    verdict: str


class PendingTaskKind(str, Enum):
    """Collaborator request a RESEARCHING stage is waiting on."""

    ANALYSIS = "analysis"
    PERSONA = "persona"
    GUIDE = "guide"
    SUMMARY = "summary"
    CHANNEL = "channel"


class PendingTask(BaseModel):
    """Outstanding collaborator request.

    Results are only applied when their token matches, so a response that
    arrives after a reset or another transition is dropped.
    """

    kind: PendingTaskKind
    token: str = Field(default_factory=lambda: uuid4().hex)

    model_config = {"frozen": True}


class ResearchSession(BaseModel):
    """Root aggregate for one research run.

    Attributes:
        id: Stable identifier; survives reset
        stage: Active workflow stage
        config: Research brief (None until submitted)
        clarifying_questions: Questions from requirement analysis
        persona: Generated persona
        grounding_sources: Citations from persona research
        discussion_guide: Ordered interview questions
        interview_mode: MANUAL or AUTO; only ever downgrades to MANUAL
        transcript: Interview messages (append-only while interviewing)
        summary: Final report
        error: Single active user-visible error
        pending_task: Collaborator request in flight, if any
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    stage: Stage = Stage.SETUP
    config: Optional[ResearchConfig] = None
    clarifying_questions: List[ClarifyingQuestion] = Field(default_factory=list)
    persona: Optional[PersonaProfile] = None
    grounding_sources: List[GroundingSource] = Field(default_factory=list)
    discussion_guide: List[str] = Field(default_factory=list)
    interview_mode: InterviewMode = InterviewMode.MANUAL
    transcript: List[ChatMessage] = Field(default_factory=list)
    summary: Optional[InterviewSummary] = None
    error: Optional[str] = None
    pending_task: Optional[PendingTask] = None

    model_config = {"frozen": True}
