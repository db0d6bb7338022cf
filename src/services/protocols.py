"""
Collaborator protocol definitions (interfaces).

The workflow and the interview turn loop only depend on these narrow
contracts: "given a request description, produce structured or free-text
content, or fail". The LLM-backed services in this package implement them;
tests substitute in-memory fakes.
"""

from typing import List, Optional, Protocol, Sequence, Tuple

from src.domain.models.message import ChatMessage
from src.domain.models.persona import (
    ClarifyingQuestion,
    GroundingSource,
    PersonaProfile,
)
from src.domain.models.session import InterviewSummary, ReferenceMaterial


class IRequirementAnalyzer(Protocol):
    """Decides whether the audience description needs clarifying questions."""

    async def analyze_requirements(
        self, industry: str, target_audience: str
    ) -> List[ClarifyingQuestion]:
        """
        Args:
            industry: Industry under research
            target_audience: Free-text audience description

        Returns:
            Clarifying questions, empty when none are needed
        """
        ...


class IPersonaGenerator(Protocol):
    """Builds the synthetic persona."""

    async def generate_persona(
        self,
        industry: str,
        target_audience: str,
        clarifications: Sequence[str] = (),
        reference_materials: Sequence[ReferenceMaterial] = (),
    ) -> Tuple[PersonaProfile, List[GroundingSource]]:
        """
        Returns:
            Tuple of (persona, grounding sources)
        """
        ...


class IGuideGenerator(Protocol):
    """Builds the discussion guide."""

    async def generate_guide(
        self,
        industry: str,
        persona: PersonaProfile,
        objectives: Optional[str] = None,
        user_questions: Optional[str] = None,
    ) -> List[str]:
        """
        Returns:
            Ordered, non-empty list of questions
        """
        ...


class IChatChannel(Protocol):
    """Delivery channel to the respondent; one reply per message."""

    async def send(self, text: str) -> str:
        ...


class IChannelFactory(Protocol):
    """Opens a delivery channel framed by persona and industry."""

    async def open_channel(self, persona: PersonaProfile, industry: str) -> IChatChannel:
        ...


class IModerator(Protocol):
    """Automated interviewer."""

    async def next_question(
        self,
        transcript: Sequence[ChatMessage],
        guide: Sequence[str],
        persona: PersonaProfile,
    ) -> Optional[str]:
        """
        Returns:
            Next question, or None when the interview is naturally complete
        """
        ...


class ISummarizer(Protocol):
    """Builds the interview report."""

    async def summarize(
        self,
        persona: PersonaProfile,
        industry: str,
        transcript: Sequence[ChatMessage],
    ) -> InterviewSummary:
        ...
