"""Automated interview moderator.

Asks the backend for the next question given the transcript, the
discussion guide and the persona. A None result means the moderator
judged the interview complete.
"""

import asyncio
from typing import Optional, Sequence

import structlog

from src.core.config import WorkflowConfig, workflow_config
from src.domain.models.message import ChatMessage
from src.domain.models.persona import PersonaProfile
from src.llm.client import LLMClient, get_llm_client
from src.llm.prompts.moderator import get_moderator_prompt, parse_moderator_response
from src.llm.retry import Sleep, run_with_retry

log = structlog.get_logger(__name__)


class ModeratorService:
    """LLM-backed interviewer for Auto mode."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        config: Optional[WorkflowConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.llm_client = llm_client or get_llm_client("generation")
        self.config = config or workflow_config
        self.sleep = sleep

    async def next_question(
        self,
        transcript: Sequence[ChatMessage],
        guide: Sequence[str],
        persona: PersonaProfile,
    ) -> Optional[str]:
        """Decide the next question.

        Returns:
            The question text, or None when the interview is complete

        Raises:
            LLMRateLimitError: If still rate limited after retries
            LLMError: On other backend failures
        """
        prompt = get_moderator_prompt(transcript, guide, persona)

        response = await run_with_retry(
            lambda: self.llm_client.complete(prompt),
            self.config.retry.default,
            sleep=self.sleep,
            operation_name="moderator_decision",
        )

        question = parse_moderator_response(response.content)
        log.debug(
            "moderator_decided",
            transcript_length=len(transcript),
            complete=question is None,
        )
        return question
