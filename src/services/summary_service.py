"""Interview summary service."""

import asyncio
from typing import Optional, Sequence

import structlog

from src.core.config import WorkflowConfig, workflow_config
from src.core.exceptions import LLMResponseParseError
from src.domain.models.message import ChatMessage
from src.domain.models.persona import PersonaProfile
from src.domain.models.session import InterviewSummary
from src.llm.client import LLMClient, get_llm_client
from src.llm.prompts.summary import (
    SUMMARY_SCHEMA,
    get_summary_prompt,
    parse_summary_response,
)
from src.llm.retry import Sleep, run_with_retry

log = structlog.get_logger(__name__)


class SummaryService:
    """Turns a finished transcript into key insights, pain points, wants/needs and a verdict."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        config: Optional[WorkflowConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.llm_client = llm_client or get_llm_client("generation")
        self.config = config or workflow_config
        self.sleep = sleep

    async def summarize(
        self,
        persona: PersonaProfile,
        industry: str,
        transcript: Sequence[ChatMessage],
    ) -> InterviewSummary:
        """Generate the interview report.

        Raises:
            LLMError: If the backend call fails after retries
            LLMResponseParseError: If a summary field is missing or empty
        """
        prompt = get_summary_prompt(persona, industry, transcript)

        response = await run_with_retry(
            lambda: self.llm_client.complete(prompt, response_schema=SUMMARY_SCHEMA),
            self.config.retry.default,
            sleep=self.sleep,
            operation_name="summary_generation",
        )

        try:
            summary = parse_summary_response(response.content)
        except ValueError as e:
            raise LLMResponseParseError(f"Summary response unusable: {e}") from e

        log.info(
            "summary_generated",
            persona=persona.name,
            transcript_length=len(transcript),
        )
        return summary
