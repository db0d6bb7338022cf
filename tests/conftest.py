"""
Shared test fixtures.

In-memory collaborators stand in for the LLM-backed services so workflow
and interview tests run without network access or real delays.
"""

import asyncio
from typing import Any, List, Optional, Sequence

import pytest

from src.core.config import WorkflowConfig
from src.domain.models.message import ChatMessage
from src.domain.models.persona import (
    ClarifyingQuestion,
    GroundingSource,
    PersonaDimensionScores,
    PersonaProfile,
)
from src.domain.models.session import InterviewSummary, ResearchConfig
from src.services.workflow.workflow_service import Collaborators, WorkflowService


class RecordingSleep:
    """Sleep replacement that records delays and only yields to the loop."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await asyncio.sleep(0)


def _next_outcome(script: List[Any], default: Any) -> Any:
    outcome = script.pop(0) if script else default
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


class FakeAnalyzer:
    def __init__(self, questions: Optional[List[ClarifyingQuestion]] = None, error=None):
        self.questions = questions or []
        self.error = error
        self.calls: List[tuple] = []

    async def analyze_requirements(self, industry: str, target_audience: str):
        self.calls.append((industry, target_audience))
        if self.error:
            raise self.error
        return list(self.questions)


class FakePersonaGenerator:
    def __init__(self, persona: PersonaProfile, sources=None, error=None):
        self.persona = persona
        self.sources = sources or []
        self.error = error
        self.calls: List[dict] = []
        self.gate: Optional[asyncio.Event] = None

    async def generate_persona(
        self, industry, target_audience, clarifications=(), reference_materials=()
    ):
        self.calls.append(
            {
                "industry": industry,
                "target_audience": target_audience,
                "clarifications": list(clarifications),
                "reference_materials": list(reference_materials),
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return self.persona, list(self.sources)


class FakeGuideGenerator:
    def __init__(self, questions: Optional[List[str]] = None, error=None):
        self.questions = questions or ["您目前用什么咖啡机？", "最大的困扰是什么？"]
        self.error = error
        self.calls: List[tuple] = []

    async def generate_guide(self, industry, persona, objectives=None, user_questions=None):
        self.calls.append((industry, persona.name, objectives, user_questions))
        if self.error:
            raise self.error
        return list(self.questions)


class FakeChannel:
    """Replies from ``script`` (strings or exceptions), then numbered defaults."""

    def __init__(self, script: Optional[List[Any]] = None):
        self.script = list(script or [])
        self.sent: List[str] = []

    async def send(self, text: str) -> str:
        self.sent.append(text)
        await asyncio.sleep(0)
        return _next_outcome(self.script, f"回复{len(self.sent)}")


class GatedChannel(FakeChannel):
    """Channel whose replies wait until ``release()`` after the opening."""

    def __init__(self, script=None):
        super().__init__(script)
        self.gate = asyncio.Event()

    def release(self):
        self.gate.set()

    async def send(self, text):
        if self.sent:
            await self.gate.wait()
        return await super().send(text)


class FakeChannelFactory:
    def __init__(self, channel: Optional[FakeChannel] = None, error=None):
        self.channel = channel or FakeChannel()
        self.error = error
        self.calls: List[tuple] = []

    async def open_channel(self, persona, industry):
        self.calls.append((persona.name, industry))
        if self.error:
            raise self.error
        return self.channel


class FakeModerator:
    """Answers from ``script`` (question, None for complete, or exceptions)."""

    def __init__(self, script: Optional[List[Any]] = None):
        self.script = list(script or [])
        self.calls: List[dict] = []

    async def next_question(self, transcript: Sequence[ChatMessage], guide, persona):
        self.calls.append(
            {"transcript": list(transcript), "guide": list(guide), "persona": persona}
        )
        await asyncio.sleep(0)
        return _next_outcome(self.script, None)


class FakeSummarizer:
    def __init__(self, summary: Optional[InterviewSummary] = None, error=None):
        self.summary = summary or InterviewSummary(
            key_insights="价格是首要考虑因素",
            pain_points="清洗麻烦，噪音大",
            wants_needs="小巧、便宜、易清洁",
            verdict="对现有产品总体满意但觉得偏贵",
        )
        self.error = error
        self.calls: List[dict] = []

    async def summarize(self, persona, industry, transcript):
        self.calls.append(
            {"persona": persona, "industry": industry, "transcript": list(transcript)}
        )
        if self.error:
            raise self.error
        return self.summary


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def workflow_config():
    return WorkflowConfig()


@pytest.fixture
def persona():
    return PersonaProfile(
        raw_markdown="# 省钱学霸小陈\n\n## 人口统计学特征\n21岁，大三学生，月生活费1500元。",
        name="省钱学霸小陈",
        summary="# 省钱学霸小陈 ...",
        scores=PersonaDimensionScores(
            demographics=4, psychographics=3, behaviors=3, needs=4
        ),
    )


@pytest.fixture
def research_config():
    return ResearchConfig(industry="咖啡机", target_audience="预算敏感型大学生")


@pytest.fixture
def fakes(persona):
    """Collaborator fakes, addressable by role."""

    class Fakes:
        pass

    f = Fakes()
    f.analyzer = FakeAnalyzer()
    f.persona_generator = FakePersonaGenerator(
        persona, sources=[GroundingSource(uri="https://example.com/coffee", title="报告")]
    )
    f.guide_generator = FakeGuideGenerator()
    f.channel = FakeChannel()
    f.channel_factory = FakeChannelFactory(f.channel)
    f.moderator = FakeModerator()
    f.summarizer = FakeSummarizer()
    return f


@pytest.fixture
def collaborators(fakes):
    return Collaborators(
        analyzer=fakes.analyzer,
        persona_generator=fakes.persona_generator,
        guide_generator=fakes.guide_generator,
        channel_factory=fakes.channel_factory,
        moderator=fakes.moderator,
        summarizer=fakes.summarizer,
    )


@pytest.fixture
def workflow(collaborators, workflow_config, sleep):
    return WorkflowService(collaborators, config=workflow_config, sleep=sleep)
