"""Persona domain models.

Core Models:
    - ClarifyingQuestion: multiple-choice question asked when the initial
      audience description is too vague to build a persona
    - PersonaDimensionScores: completeness score (0-5) per persona dimension
    - PersonaProfile: the generated synthetic respondent
    - GroundingSource: web citation returned with persona research (advisory)
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ClarifyingQuestion(BaseModel):
    """Multiple-choice question that narrows down the target audience."""

    question: str
    options: List[str] = Field(default_factory=list)


class PersonaDimensionScores(BaseModel):
    """Data completeness per persona dimension, each an integer 0-5."""

    demographics: int = Field(ge=0, le=5)
    psychographics: int = Field(ge=0, le=5)
    behaviors: int = Field(ge=0, le=5)
    needs: int = Field(ge=0, le=5)


class PersonaProfile(BaseModel):
    """Synthetic consumer persona.

    Attributes:
        raw_markdown: Full descriptive profile; its first level-1 heading is
            the persona's display name
        name: Display name derived from raw_markdown
        summary: Short excerpt used in downstream prompts
        scores: Optional completeness scores
        image_base64: Optional avatar image (base64-encoded PNG)
    """

    raw_markdown: str
    name: str
    summary: str
    scores: Optional[PersonaDimensionScores] = None
    image_base64: Optional[str] = None


class GroundingSource(BaseModel):
    """Web source cited by search-grounded persona research."""

    uri: str
    title: str = ""
