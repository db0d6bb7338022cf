"""
Research workflow state machine.

``transition(session, event)`` is a pure function returning the next
session plus the collaborator requests (effects) to run. It performs no
I/O; WorkflowService executes the effects and feeds their outcomes back
in as result events.

Stage flow:
    SETUP --SubmitInitialConfig--> RESEARCHING(analysis)
    RESEARCHING(analysis) --RequirementsAnalyzed(questions)--> CLARIFYING
    RESEARCHING(analysis) --RequirementsAnalyzed([])--> RESEARCHING(persona)
    CLARIFYING --SubmitClarifications--> RESEARCHING(persona)
    RESEARCHING(persona) --PersonaGenerated--> PREVIEW | --PersonaFailed--> SETUP
    PREVIEW --ConfirmProfile--> GUIDE_INPUT
    GUIDE_INPUT --RequestGuide--> RESEARCHING(guide)
    RESEARCHING(guide) --GuideGenerated--> GUIDE_REVIEW | --GuideFailed--> GUIDE_INPUT
    GUIDE_REVIEW --ConfirmGuide--> MODE_SELECTION
    MODE_SELECTION --StartInterview--> MODE_SELECTION(channel)
    MODE_SELECTION(channel) --ChannelOpened--> INTERVIEW | --ChannelFailed--> MODE_SELECTION
    INTERVIEW --EndInterview--> RESEARCHING(summary)
    RESEARCHING(summary) --SummaryGenerated--> SUMMARY | --SummaryFailed--> INTERVIEW
    any --Reset--> SETUP

Result events carry the token of the PendingTask they answer; a result
whose token does not match the session's pending task is stale and is
ignored (the session is returned unchanged).
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type, Union

from src.core.exceptions import InvalidTransitionError, ValidationError
from src.domain.models.message import ChatMessage
from src.domain.models.persona import (
    ClarifyingQuestion,
    GroundingSource,
    PersonaProfile,
)
from src.domain.models.session import (
    InterviewMode,
    InterviewSummary,
    PendingTask,
    PendingTaskKind,
    ReferenceMaterial,
    ResearchConfig,
    ResearchSession,
    Stage,
)

# User-visible error messages
ERROR_PERSONA = "生成画像失败，请重试。"
ERROR_GUIDE = "生成提纲失败"
ERROR_CHANNEL = "无法初始化访谈会话。"
ERROR_SUMMARY = "生成总结报告失败。"


# =============================================================================
# Events: user actions
# =============================================================================


@dataclass(frozen=True)
class SubmitInitialConfig:
    config: ResearchConfig


@dataclass(frozen=True)
class SubmitClarifications:
    answers: Sequence[str]


@dataclass(frozen=True)
class ConfirmProfile:
    pass


@dataclass(frozen=True)
class RequestGuide:
    objectives: Optional[str] = None
    user_questions: Optional[str] = None


@dataclass(frozen=True)
class AddGuideQuestion:
    text: str = ""


@dataclass(frozen=True)
class EditGuideQuestion:
    index: int
    text: str


@dataclass(frozen=True)
class DeleteGuideQuestion:
    index: int


@dataclass(frozen=True)
class ConfirmGuide:
    guide: Optional[Sequence[str]] = None
    """Final guide; None confirms the guide as currently edited."""


@dataclass(frozen=True)
class StartInterview:
    mode: InterviewMode = InterviewMode.MANUAL


@dataclass(frozen=True)
class SwitchToManual:
    pass


@dataclass(frozen=True)
class EndInterview:
    transcript: Sequence[ChatMessage]


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class DismissError:
    pass


# =============================================================================
# Events: collaborator results
# =============================================================================


@dataclass(frozen=True)
class RequirementsAnalyzed:
    token: str
    questions: Sequence[ClarifyingQuestion] = ()


@dataclass(frozen=True)
class PersonaGenerated:
    token: str
    persona: PersonaProfile
    sources: Sequence[GroundingSource] = ()


@dataclass(frozen=True)
class PersonaFailed:
    token: str
    error: str = ""


@dataclass(frozen=True)
class GuideGenerated:
    token: str
    questions: Sequence[str]


@dataclass(frozen=True)
class GuideFailed:
    token: str
    error: str = ""


@dataclass(frozen=True)
class ChannelOpened:
    token: str
    mode: InterviewMode


@dataclass(frozen=True)
class ChannelFailed:
    token: str
    error: str = ""


@dataclass(frozen=True)
class SummaryGenerated:
    token: str
    summary: InterviewSummary


@dataclass(frozen=True)
class SummaryFailed:
    token: str
    error: str = ""


Event = Union[
    SubmitInitialConfig,
    SubmitClarifications,
    ConfirmProfile,
    RequestGuide,
    AddGuideQuestion,
    EditGuideQuestion,
    DeleteGuideQuestion,
    ConfirmGuide,
    StartInterview,
    SwitchToManual,
    EndInterview,
    Reset,
    DismissError,
    RequirementsAnalyzed,
    PersonaGenerated,
    PersonaFailed,
    GuideGenerated,
    GuideFailed,
    ChannelOpened,
    ChannelFailed,
    SummaryGenerated,
    SummaryFailed,
]


# =============================================================================
# Effects: collaborator requests
# =============================================================================


@dataclass(frozen=True)
class AnalyzeRequirements:
    token: str
    industry: str
    target_audience: str


@dataclass(frozen=True)
class GeneratePersona:
    token: str
    industry: str
    target_audience: str
    clarifications: Sequence[str] = ()
    reference_materials: Sequence[ReferenceMaterial] = ()


@dataclass(frozen=True)
class GenerateGuide:
    token: str
    industry: str
    persona: PersonaProfile
    objectives: Optional[str] = None
    user_questions: Optional[str] = None


@dataclass(frozen=True)
class OpenChannel:
    token: str
    persona: PersonaProfile
    industry: str
    mode: InterviewMode


@dataclass(frozen=True)
class GenerateSummary:
    token: str
    persona: PersonaProfile
    industry: str
    transcript: Sequence[ChatMessage] = field(default_factory=tuple)


Effect = Union[AnalyzeRequirements, GeneratePersona, GenerateGuide, OpenChannel, GenerateSummary]

Result = Tuple[ResearchSession, List[Effect]]


# =============================================================================
# Helpers
# =============================================================================


def _require_stage(session: ResearchSession, event: object, *stages: Stage) -> None:
    if session.stage not in stages:
        raise InvalidTransitionError(
            f"{type(event).__name__} is not allowed in stage '{session.stage.value}'",
            stage=session.stage.value,
        )


def _require_idle(session: ResearchSession, event: object) -> None:
    if session.pending_task is not None:
        raise InvalidTransitionError(
            f"{type(event).__name__} is not allowed while "
            f"{session.pending_task.kind.value} is in progress",
            stage=session.stage.value,
        )


def _is_current(session: ResearchSession, kind: PendingTaskKind, token: str) -> bool:
    pending = session.pending_task
    return pending is not None and pending.kind == kind and pending.token == token


def _persona_request(session: ResearchSession, config: ResearchConfig) -> Result:
    task = PendingTask(kind=PendingTaskKind.PERSONA)
    updated = session.model_copy(
        update={
            "config": config,
            "stage": Stage.RESEARCHING,
            "pending_task": task,
        }
    )
    effect = GeneratePersona(
        token=task.token,
        industry=config.industry,
        target_audience=config.target_audience,
        clarifications=tuple(config.clarifications),
        reference_materials=tuple(config.reference_materials),
    )
    return updated, [effect]


def _check_guide_index(session: ResearchSession, index: int) -> None:
    if not 0 <= index < len(session.discussion_guide):
        raise ValidationError(
            f"Guide question index {index} out of range "
            f"(guide has {len(session.discussion_guide)} questions)"
        )


# =============================================================================
# User action handlers
# =============================================================================


def _submit_initial_config(session: ResearchSession, event: SubmitInitialConfig) -> Result:
    _require_stage(session, event, Stage.SETUP)
    _require_idle(session, event)

    config = event.config.model_copy(update={"clarifications": []})
    task = PendingTask(kind=PendingTaskKind.ANALYSIS)
    updated = session.model_copy(
        update={
            "config": config,
            "clarifying_questions": [],
            "stage": Stage.RESEARCHING,
            "pending_task": task,
            "error": None,
        }
    )
    effect = AnalyzeRequirements(
        token=task.token,
        industry=config.industry,
        target_audience=config.target_audience,
    )
    return updated, [effect]


def _submit_clarifications(session: ResearchSession, event: SubmitClarifications) -> Result:
    _require_stage(session, event, Stage.CLARIFYING)

    answers = [str(a).strip() for a in event.answers]
    expected = len(session.clarifying_questions)
    if len(answers) != expected:
        raise ValidationError(f"Expected {expected} answers, got {len(answers)}")
    missing = [i for i, a in enumerate(answers) if not a]
    if missing:
        raise ValidationError(f"Answers missing for questions {missing}")

    config = session.config.model_copy(update={"clarifications": answers})
    updated, effects = _persona_request(session, config)
    return updated.model_copy(update={"error": None}), effects


def _confirm_profile(session: ResearchSession, event: ConfirmProfile) -> Result:
    _require_stage(session, event, Stage.PREVIEW)
    if session.persona is None:
        raise InvalidTransitionError("No persona to confirm", stage=session.stage.value)
    return session.model_copy(update={"stage": Stage.GUIDE_INPUT, "error": None}), []


def _request_guide(session: ResearchSession, event: RequestGuide) -> Result:
    _require_stage(session, event, Stage.GUIDE_INPUT)
    if session.persona is None or session.config is None:
        raise InvalidTransitionError(
            "Guide generation needs a persona and a research config",
            stage=session.stage.value,
        )

    config = session.config.model_copy(
        update={
            "objectives": event.objectives,
            "user_questions": event.user_questions,
        }
    )
    task = PendingTask(kind=PendingTaskKind.GUIDE)
    updated = session.model_copy(
        update={
            "config": config,
            "stage": Stage.RESEARCHING,
            "pending_task": task,
            "error": None,
        }
    )
    effect = GenerateGuide(
        token=task.token,
        industry=config.industry,
        persona=session.persona,
        objectives=event.objectives,
        user_questions=event.user_questions,
    )
    return updated, [effect]


def _add_guide_question(session: ResearchSession, event: AddGuideQuestion) -> Result:
    _require_stage(session, event, Stage.GUIDE_REVIEW)
    guide = list(session.discussion_guide) + [event.text]
    return session.model_copy(update={"discussion_guide": guide, "error": None}), []


def _edit_guide_question(session: ResearchSession, event: EditGuideQuestion) -> Result:
    _require_stage(session, event, Stage.GUIDE_REVIEW)
    _check_guide_index(session, event.index)
    guide = list(session.discussion_guide)
    guide[event.index] = event.text
    return session.model_copy(update={"discussion_guide": guide, "error": None}), []


def _delete_guide_question(session: ResearchSession, event: DeleteGuideQuestion) -> Result:
    _require_stage(session, event, Stage.GUIDE_REVIEW)
    _check_guide_index(session, event.index)
    guide = list(session.discussion_guide)
    del guide[event.index]
    return session.model_copy(update={"discussion_guide": guide, "error": None}), []


def _confirm_guide(session: ResearchSession, event: ConfirmGuide) -> Result:
    _require_stage(session, event, Stage.GUIDE_REVIEW)
    source = session.discussion_guide if event.guide is None else event.guide
    guide = [q for q in source if q and q.strip()]
    updated = session.model_copy(
        update={
            "discussion_guide": guide,
            "stage": Stage.MODE_SELECTION,
            "error": None,
        }
    )
    return updated, []


def _start_interview(session: ResearchSession, event: StartInterview) -> Result:
    _require_stage(session, event, Stage.MODE_SELECTION)
    _require_idle(session, event)
    if session.persona is None or session.config is None:
        raise InvalidTransitionError(
            "Interview needs a persona and a research config",
            stage=session.stage.value,
        )

    task = PendingTask(kind=PendingTaskKind.CHANNEL)
    updated = session.model_copy(update={"pending_task": task, "error": None})
    effect = OpenChannel(
        token=task.token,
        persona=session.persona,
        industry=session.config.industry,
        mode=event.mode,
    )
    return updated, [effect]


def _switch_to_manual(session: ResearchSession, event: SwitchToManual) -> Result:
    _require_stage(session, event, Stage.INTERVIEW)
    if session.interview_mode == InterviewMode.MANUAL:
        return session, []
    return session.model_copy(update={"interview_mode": InterviewMode.MANUAL}), []


def _end_interview(session: ResearchSession, event: EndInterview) -> Result:
    _require_stage(session, event, Stage.INTERVIEW)
    _require_idle(session, event)

    transcript = list(event.transcript)
    task = PendingTask(kind=PendingTaskKind.SUMMARY)
    updated = session.model_copy(
        update={
            "transcript": transcript,
            "stage": Stage.RESEARCHING,
            "pending_task": task,
            "error": None,
        }
    )
    effect = GenerateSummary(
        token=task.token,
        persona=session.persona,
        industry=session.config.industry,
        transcript=tuple(transcript),
    )
    return updated, [effect]


def _reset(session: ResearchSession, event: Reset) -> Result:
    return ResearchSession(id=session.id), []


def _dismiss_error(session: ResearchSession, event: DismissError) -> Result:
    if session.error is None:
        return session, []
    return session.model_copy(update={"error": None}), []


# =============================================================================
# Result handlers (stale results leave the session unchanged)
# =============================================================================


def _requirements_analyzed(session: ResearchSession, event: RequirementsAnalyzed) -> Result:
    if not _is_current(session, PendingTaskKind.ANALYSIS, event.token):
        return session, []

    questions = list(event.questions)
    if questions:
        updated = session.model_copy(
            update={
                "clarifying_questions": questions,
                "stage": Stage.CLARIFYING,
                "pending_task": None,
            }
        )
        return updated, []
    return _persona_request(session, session.config)


def _persona_generated(session: ResearchSession, event: PersonaGenerated) -> Result:
    if not _is_current(session, PendingTaskKind.PERSONA, event.token):
        return session, []
    updated = session.model_copy(
        update={
            "persona": event.persona,
            "grounding_sources": list(event.sources),
            "stage": Stage.PREVIEW,
            "pending_task": None,
        }
    )
    return updated, []


def _persona_failed(session: ResearchSession, event: PersonaFailed) -> Result:
    if not _is_current(session, PendingTaskKind.PERSONA, event.token):
        return session, []
    updated = session.model_copy(
        update={
            "clarifying_questions": [],
            "stage": Stage.SETUP,
            "pending_task": None,
            "error": ERROR_PERSONA,
        }
    )
    return updated, []


def _guide_generated(session: ResearchSession, event: GuideGenerated) -> Result:
    if not _is_current(session, PendingTaskKind.GUIDE, event.token):
        return session, []
    updated = session.model_copy(
        update={
            "discussion_guide": list(event.questions),
            "stage": Stage.GUIDE_REVIEW,
            "pending_task": None,
        }
    )
    return updated, []


def _guide_failed(session: ResearchSession, event: GuideFailed) -> Result:
    if not _is_current(session, PendingTaskKind.GUIDE, event.token):
        return session, []
    updated = session.model_copy(
        update={
            "stage": Stage.GUIDE_INPUT,
            "pending_task": None,
            "error": ERROR_GUIDE,
        }
    )
    return updated, []


def _channel_opened(session: ResearchSession, event: ChannelOpened) -> Result:
    if not _is_current(session, PendingTaskKind.CHANNEL, event.token):
        return session, []
    updated = session.model_copy(
        update={
            "interview_mode": event.mode,
            "transcript": [],
            "stage": Stage.INTERVIEW,
            "pending_task": None,
        }
    )
    return updated, []


def _channel_failed(session: ResearchSession, event: ChannelFailed) -> Result:
    if not _is_current(session, PendingTaskKind.CHANNEL, event.token):
        return session, []
    return session.model_copy(update={"pending_task": None, "error": ERROR_CHANNEL}), []


def _summary_generated(session: ResearchSession, event: SummaryGenerated) -> Result:
    if not _is_current(session, PendingTaskKind.SUMMARY, event.token):
        return session, []
    updated = session.model_copy(
        update={
            "summary": event.summary,
            "stage": Stage.SUMMARY,
            "pending_task": None,
        }
    )
    return updated, []


def _summary_failed(session: ResearchSession, event: SummaryFailed) -> Result:
    if not _is_current(session, PendingTaskKind.SUMMARY, event.token):
        return session, []
    updated = session.model_copy(
        update={
            "stage": Stage.INTERVIEW,
            "pending_task": None,
            "error": ERROR_SUMMARY,
        }
    )
    return updated, []


_HANDLERS: Dict[Type, Callable[[ResearchSession, object], Result]] = {
    SubmitInitialConfig: _submit_initial_config,
    SubmitClarifications: _submit_clarifications,
    ConfirmProfile: _confirm_profile,
    RequestGuide: _request_guide,
    AddGuideQuestion: _add_guide_question,
    EditGuideQuestion: _edit_guide_question,
    DeleteGuideQuestion: _delete_guide_question,
    ConfirmGuide: _confirm_guide,
    StartInterview: _start_interview,
    SwitchToManual: _switch_to_manual,
    EndInterview: _end_interview,
    Reset: _reset,
    DismissError: _dismiss_error,
    RequirementsAnalyzed: _requirements_analyzed,
    PersonaGenerated: _persona_generated,
    PersonaFailed: _persona_failed,
    GuideGenerated: _guide_generated,
    GuideFailed: _guide_failed,
    ChannelOpened: _channel_opened,
    ChannelFailed: _channel_failed,
    SummaryGenerated: _summary_generated,
    SummaryFailed: _summary_failed,
}


def transition(session: ResearchSession, event: Event) -> Result:
    """
    Apply one event to a session.

    Args:
        session: Current session (never mutated)
        event: User action or collaborator result

    Returns:
        Tuple of (next session, effects to run)

    Raises:
        InvalidTransitionError: If the event is not allowed in the current stage
        ValidationError: If the event's payload is rejected (no effects run)
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise InvalidTransitionError(f"Unknown event: {type(event).__name__}")
    return handler(session, event)


def is_stale(before: ResearchSession, after: ResearchSession, effects: List[Effect]) -> bool:
    """True when a transition left the session untouched."""
    return after is before and not effects
