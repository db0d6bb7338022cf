# noqa
from src.services.export_service import ExportService
from src.services.session_registry import SessionRegistry
from src.services.workflow import Collaborators, WorkflowService

__all__ = ["Collaborators", "ExportService", "SessionRegistry", "WorkflowService"]
