from src.services.workflow.state_machine import transition
from src.services.workflow.workflow_service import Collaborators, WorkflowService

__all__ = ["Collaborators", "WorkflowService", "transition"]
