"""In-memory registry of research sessions.

Sessions live for the lifetime of the process; nothing is persisted.
"""

import asyncio
from typing import Callable, Dict, List, Optional

import structlog

from src.core.config import WorkflowConfig, workflow_config
from src.core.exceptions import SessionNotFoundError
from src.llm.retry import Sleep
from src.services.workflow.workflow_service import Collaborators, WorkflowService

log = structlog.get_logger(__name__)


class SessionRegistry:
    """Creates, looks up and discards WorkflowService instances by id."""

    def __init__(
        self,
        collaborators_factory: Callable[[], Collaborators],
        config: Optional[WorkflowConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Args:
            collaborators_factory: Builds the collaborators for a new session;
                called lazily so missing API keys only fail session creation
            config: Workflow configuration shared by all sessions
            sleep: Sleep handed to each workflow
        """
        self._collaborators_factory = collaborators_factory
        self._collaborators: Optional[Collaborators] = None
        self.config = config or workflow_config
        self.sleep = sleep
        self._sessions: Dict[str, WorkflowService] = {}

    def _get_collaborators(self) -> Collaborators:
        if self._collaborators is None:
            self._collaborators = self._collaborators_factory()
        return self._collaborators

    def create(self) -> WorkflowService:
        workflow = WorkflowService(
            collaborators=self._get_collaborators(),
            config=self.config,
            sleep=self.sleep,
        )
        self._sessions[workflow.id] = workflow
        log.info("research_session_created", research_id=workflow.id)
        return workflow

    def get(self, session_id: str) -> WorkflowService:
        """
        Raises:
            SessionNotFoundError: If no session has this id
        """
        workflow = self._sessions.get(session_id)
        if workflow is None:
            raise SessionNotFoundError(f"Research session {session_id} not found")
        return workflow

    def list(self) -> List[WorkflowService]:
        return list(self._sessions.values())

    async def delete(self, session_id: str) -> None:
        workflow = self.get(session_id)
        await workflow.reset()
        del self._sessions[session_id]
        log.info("research_session_deleted", research_id=session_id)

    async def close(self) -> None:
        """Stop every running interview (application shutdown)."""
        for workflow in list(self._sessions.values()):
            await workflow.reset()
        self._sessions.clear()
