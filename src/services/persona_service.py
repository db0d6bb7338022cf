"""Persona research service.

Implements two collaborator contracts:
- Requirement analysis: does the audience description cover demographics,
  psychographics, behaviors and needs? If not, returns 2-3
  multiple-choice clarifying questions.
- Persona generation: search-grounded markdown profile with completeness
  scores, grounding sources, and an optional pixel-art avatar.

All backend calls are wrapped in run_with_retry with the policies from
workflow_config.yaml. Avatar failures are tolerated; everything else
propagates to the workflow driver.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

import structlog

from src.core.config import WorkflowConfig, workflow_config
from src.core.exceptions import LLMResponseParseError
from src.domain.models.persona import (
    ClarifyingQuestion,
    GroundingSource,
    PersonaProfile,
)
from src.domain.models.session import ReferenceMaterial
from src.llm.client import LLMClient, get_llm_client
from src.llm.prompts.persona import (
    REQUIREMENT_ANALYSIS_SCHEMA,
    build_material_parts,
    get_avatar_prompt,
    get_persona_prompt,
    get_requirement_analysis_prompt,
    parse_persona_response,
    parse_requirement_analysis_response,
)
from src.llm.retry import Sleep, run_with_retry

log = structlog.get_logger(__name__)


class PersonaService:
    """Service for requirement analysis and persona generation."""

    def __init__(
        self,
        research_client: Optional[LLMClient] = None,
        generation_client: Optional[LLMClient] = None,
        image_client: Optional[LLMClient] = None,
        config: Optional[WorkflowConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize persona service.

        Args:
            research_client: Search-grounded client for persona research
                (creates default if None)
            generation_client: Client for requirement analysis (creates
                default if None)
            image_client: Client for avatar generation; avatars are skipped
                when None and generate_avatar is disabled
            config: Workflow configuration (defaults to workflow_config.yaml)
            sleep: Sleep used between rate-limit retries
        """
        self.config = config or workflow_config
        self.research_client = research_client or get_llm_client("research")
        self.generation_client = generation_client or get_llm_client("generation")
        if image_client is None and self.config.persona.generate_avatar:
            image_client = get_llm_client("image")
        self.image_client = image_client
        self.sleep = sleep

    async def analyze_requirements(
        self, industry: str, target_audience: str
    ) -> List[ClarifyingQuestion]:
        """Ask the backend whether the audience needs clarifying.

        Returns:
            Clarifying questions; empty when the description is specific enough

        Raises:
            LLMError: If the backend call fails after retries
            LLMResponseParseError: If the response is not valid JSON
        """
        prompt = get_requirement_analysis_prompt(industry, target_audience)

        response = await run_with_retry(
            lambda: self.generation_client.complete(
                prompt, response_schema=REQUIREMENT_ANALYSIS_SCHEMA
            ),
            self.config.retry.analysis,
            sleep=self.sleep,
            operation_name="requirement_analysis",
        )

        try:
            questions = parse_requirement_analysis_response(response.content)
        except ValueError as e:
            raise LLMResponseParseError(
                f"Requirement analysis returned invalid JSON: {e}"
            ) from e

        log.info(
            "requirements_analyzed",
            industry=industry,
            question_count=len(questions),
        )
        return questions

    async def generate_persona(
        self,
        industry: str,
        target_audience: str,
        clarifications: Sequence[str] = (),
        reference_materials: Sequence[ReferenceMaterial] = (),
    ) -> Tuple[PersonaProfile, List[GroundingSource]]:
        """Research and build the persona.

        Args:
            industry: Industry under research
            target_audience: Audience description
            clarifications: Answers to the clarifying questions
            reference_materials: User-supplied text or files

        Returns:
            Tuple of (persona, grounding sources)

        Raises:
            LLMError: If the backend call fails after retries
        """
        attachments = build_material_parts(reference_materials)
        prompt = get_persona_prompt(
            industry,
            target_audience,
            clarifications,
            has_materials=bool(attachments),
        )

        response = await run_with_retry(
            lambda: self.research_client.complete(
                prompt, attachments=attachments, use_search=True
            ),
            self.config.retry.persona,
            sleep=self.sleep,
            operation_name="persona_generation",
        )

        parsed = parse_persona_response(response.content, self.config.persona)
        sources = [
            GroundingSource(uri=s["uri"], title=s.get("title", ""))
            for s in response.grounding_sources
            if s.get("uri")
        ]

        image = None
        if self.image_client is not None and self.config.persona.generate_avatar:
            image = await self._generate_avatar(parsed["name"], industry)

        persona = PersonaProfile(
            raw_markdown=parsed["markdown"],
            name=parsed["name"],
            summary=parsed["summary"],
            scores=parsed["scores"],
            image_base64=image,
        )

        log.info(
            "persona_generated",
            name=persona.name,
            scores=persona.scores.model_dump() if persona.scores else None,
            source_count=len(sources),
            material_count=len(attachments),
            has_avatar=image is not None,
        )
        return persona, sources

    async def _generate_avatar(self, name: str, industry: str) -> Optional[str]:
        """Generate the avatar; a failure leaves the persona without one."""
        prompt = get_avatar_prompt(name, industry)
        try:
            return await run_with_retry(
                lambda: self.image_client.generate_image(prompt),
                self.config.retry.avatar,
                sleep=self.sleep,
                operation_name="avatar_generation",
            )
        except Exception as e:
            log.warning("avatar_generation_failed", name=name, error=str(e))
            return None
