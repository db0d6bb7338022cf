"""Discussion guide generation service."""

import asyncio
from typing import List, Optional

import structlog

from src.core.config import WorkflowConfig, workflow_config
from src.core.exceptions import LLMResponseParseError
from src.domain.models.persona import PersonaProfile
from src.llm.client import LLMClient, get_llm_client
from src.llm.prompts.guide import GUIDE_SCHEMA, get_guide_prompt, parse_guide_response
from src.llm.retry import Sleep, run_with_retry

log = structlog.get_logger(__name__)


class GuideService:
    """Generates the ordered list of interview questions for a persona."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        config: Optional[WorkflowConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.llm_client = llm_client or get_llm_client("generation")
        self.config = config or workflow_config
        self.sleep = sleep

    async def generate_guide(
        self,
        industry: str,
        persona: PersonaProfile,
        objectives: Optional[str] = None,
        user_questions: Optional[str] = None,
    ) -> List[str]:
        """Generate the discussion guide.

        Returns:
            Ordered, non-empty list of questions

        Raises:
            LLMError: If the backend call fails after retries
            LLMResponseParseError: If no question can be parsed
        """
        prompt = get_guide_prompt(industry, persona, objectives, user_questions)

        response = await run_with_retry(
            lambda: self.llm_client.complete(prompt, response_schema=GUIDE_SCHEMA),
            self.config.retry.default,
            sleep=self.sleep,
            operation_name="guide_generation",
        )

        try:
            questions = parse_guide_response(response.content)
        except ValueError as e:
            raise LLMResponseParseError(f"Guide response unusable: {e}") from e

        log.info("guide_generated", persona=persona.name, question_count=len(questions))
        return questions
