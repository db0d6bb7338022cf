"""
Research session API routes.

One endpoint per workflow operation, plus the manual interview operations
and report export. Collaborator failures are reflected in the returned
session (stage and error), not as HTTP errors.
"""

from typing import Literal

from fastapi import APIRouter, Query, status
from fastapi.responses import Response
import structlog

from src.api.dependencies import ExportServiceDep, RegistryDep, WorkflowDep
from src.api.schemas import (
    ClarificationsRequest,
    ConfirmGuideRequest,
    EndInterviewRequest,
    GuideQuestionRequest,
    GuideRequest,
    InitialConfigRequest,
    InterviewStatusSchema,
    MessageRequest,
    MessageResponse,
    ResearchSessionListResponse,
    ResearchSessionResponse,
    StartInterviewRequest,
)
from src.core.logging import bind_context
from src.services.workflow.workflow_service import WorkflowService

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/research", tags=["research"])


def _to_response(workflow: WorkflowService) -> ResearchSessionResponse:
    status_data = workflow.interview_status()
    return ResearchSessionResponse(
        session=workflow.snapshot(),
        stage_history=list(workflow.stage_history),
        interview=InterviewStatusSchema(**status_data) if status_data else None,
    )


# ============ SESSION CRUD ============


@router.post(
    "",
    response_model=ResearchSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_research_session(registry: RegistryDep):
    """Create a new research session in the setup stage."""
    workflow = registry.create()
    return _to_response(workflow)


@router.get("", response_model=ResearchSessionListResponse)
async def list_research_sessions(registry: RegistryDep):
    """List all research sessions held by this process."""
    sessions = [_to_response(w) for w in registry.list()]
    return ResearchSessionListResponse(sessions=sessions, total=len(sessions))


@router.get("/{session_id}", response_model=ResearchSessionResponse)
async def get_research_session(workflow: WorkflowDep):
    """Get the current session snapshot (live transcript while interviewing)."""
    return _to_response(workflow)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_research_session(session_id: str, registry: RegistryDep):
    """Discard a research session and stop its interview."""
    await registry.delete(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============ WORKFLOW ============


@router.post("/{session_id}/config", response_model=ResearchSessionResponse)
async def submit_initial_config(request: InitialConfigRequest, workflow: WorkflowDep):
    """Submit industry and audience; runs requirement analysis and, when no
    clarification is needed, persona generation."""
    bind_context(research_id=workflow.id)
    await workflow.submit_initial_config(request.to_config())
    return _to_response(workflow)


@router.post("/{session_id}/clarifications", response_model=ResearchSessionResponse)
async def submit_clarifications(request: ClarificationsRequest, workflow: WorkflowDep):
    """Answer every clarifying question, then generate the persona."""
    bind_context(research_id=workflow.id)
    await workflow.submit_clarifications(request.answers)
    return _to_response(workflow)


@router.post("/{session_id}/profile/confirm", response_model=ResearchSessionResponse)
async def confirm_profile(workflow: WorkflowDep):
    await workflow.confirm_profile()
    return _to_response(workflow)


@router.post("/{session_id}/guide", response_model=ResearchSessionResponse)
async def generate_guide(request: GuideRequest, workflow: WorkflowDep):
    """Generate the discussion guide from objectives and mandatory questions."""
    bind_context(research_id=workflow.id)
    await workflow.generate_guide(request.objectives, request.user_questions)
    return _to_response(workflow)


@router.post("/{session_id}/guide/questions", response_model=ResearchSessionResponse)
async def add_guide_question(request: GuideQuestionRequest, workflow: WorkflowDep):
    await workflow.add_guide_question(request.text)
    return _to_response(workflow)


@router.put(
    "/{session_id}/guide/questions/{index}", response_model=ResearchSessionResponse
)
async def edit_guide_question(
    index: int, request: GuideQuestionRequest, workflow: WorkflowDep
):
    await workflow.edit_guide_question(index, request.text)
    return _to_response(workflow)


@router.delete(
    "/{session_id}/guide/questions/{index}", response_model=ResearchSessionResponse
)
async def delete_guide_question(index: int, workflow: WorkflowDep):
    await workflow.delete_guide_question(index)
    return _to_response(workflow)


@router.post("/{session_id}/guide/confirm", response_model=ResearchSessionResponse)
async def confirm_guide(request: ConfirmGuideRequest, workflow: WorkflowDep):
    """Confirm the guide; blank questions are dropped."""
    await workflow.confirm_guide(request.guide)
    return _to_response(workflow)


@router.post("/{session_id}/reset", response_model=ResearchSessionResponse)
async def reset_research_session(workflow: WorkflowDep):
    await workflow.reset()
    return _to_response(workflow)


@router.post("/{session_id}/error/dismiss", response_model=ResearchSessionResponse)
async def dismiss_error(workflow: WorkflowDep):
    await workflow.dismiss_error()
    return _to_response(workflow)


# ============ INTERVIEW ============


@router.post("/{session_id}/interview", response_model=ResearchSessionResponse)
async def start_interview(request: StartInterviewRequest, workflow: WorkflowDep):
    """Open the respondent channel and run the opening turn.

    In Auto mode the moderator keeps interviewing in the background; poll
    the session to follow the transcript.
    """
    bind_context(research_id=workflow.id)
    await workflow.start_interview(request.mode)
    return _to_response(workflow)


@router.post("/{session_id}/interview/messages", response_model=MessageResponse)
async def send_message(request: MessageRequest, workflow: WorkflowDep):
    """Send a manual interviewer message and wait for the reply."""
    bind_context(research_id=workflow.id)
    reply = await workflow.send_message(request.text)
    return MessageResponse(reply=reply, session=_to_response(workflow))


@router.post("/{session_id}/interview/manual", response_model=ResearchSessionResponse)
async def switch_to_manual(workflow: WorkflowDep):
    """Take over from the automated moderator."""
    workflow.switch_to_manual()
    return _to_response(workflow)


@router.post("/{session_id}/interview/end", response_model=ResearchSessionResponse)
async def end_interview(request: EndInterviewRequest, workflow: WorkflowDep):
    """End the interview and generate the summary report."""
    bind_context(research_id=workflow.id)
    await workflow.end_interview(request.transcript)
    return _to_response(workflow)


# ============ EXPORT ============


@router.get("/{session_id}/export")
async def export_research_session(
    workflow: WorkflowDep,
    export_service: ExportServiceDep,
    format: Literal["json", "markdown"] = Query(default="json"),
):
    """Export the research report as JSON or Markdown."""
    content = export_service.export_session(workflow.snapshot(), format)
    media_type = "application/json" if format == "json" else "text/markdown"
    extension = "json" if format == "json" else "md"
    return Response(
        content=content,
        media_type=f"{media_type}; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="research_{workflow.id}.{extension}"'
        },
    )
