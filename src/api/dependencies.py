"""Dependency injection for API routes."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from src.core.config import workflow_config
from src.services.export_service import ExportService
from src.services.session_registry import SessionRegistry
from src.services.workflow.workflow_service import Collaborators, WorkflowService


@lru_cache(maxsize=1)
def get_session_registry() -> SessionRegistry:
    """Process-wide registry of research sessions.

    LLM-backed collaborators are built lazily on the first session, so a
    missing API key surfaces as a ConfigurationError on that request.
    """
    return SessionRegistry(
        collaborators_factory=lambda: Collaborators.from_settings(workflow_config),
        config=workflow_config,
    )


def get_export_service() -> ExportService:
    """FastAPI dependency injection for ExportService."""
    return ExportService()


RegistryDep = Annotated[SessionRegistry, Depends(get_session_registry)]
ExportServiceDep = Annotated[ExportService, Depends(get_export_service)]


def get_workflow(session_id: str, registry: RegistryDep) -> WorkflowService:
    """Resolve the research session from the path.

    Raises:
        SessionNotFoundError: If the session does not exist (HTTP 404)
    """
    return registry.get(session_id)


WorkflowDep = Annotated[WorkflowService, Depends(get_workflow)]
