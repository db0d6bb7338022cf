"""Tests for SummaryService."""

import json

import pytest
from unittest.mock import AsyncMock

from src.core.exceptions import LLMResponseParseError
from src.domain.models.message import ChatMessage, Speaker
from src.llm.client import LLMResponse
from src.services.summary_service import SummaryService

TRANSCRIPT = [
    ChatMessage(speaker=Speaker.INTERVIEWER, text="最大的困扰？"),
    ChatMessage(speaker=Speaker.RESPONDENT, text="清洗太麻烦"),
]


@pytest.fixture
def llm_client():
    return AsyncMock()


@pytest.mark.asyncio
async def test_summarize(llm_client, persona, sleep):
    llm_client.complete.return_value = LLMResponse(
        content=json.dumps(
            {
                "keyInsights": ["价格敏感", "重视清洁"],
                "painPoints": "清洗麻烦",
                "wantsNeeds": "易清洁",
                "verdict": "偏贵",
            },
            ensure_ascii=False,
        ),
        model="test",
    )
    service = SummaryService(llm_client=llm_client, sleep=sleep)

    summary = await service.summarize(persona, "咖啡机", TRANSCRIPT)

    assert summary.key_insights == "价格敏感\n重视清洁"
    assert summary.pain_points == "清洗麻烦"
    prompt = llm_client.complete.call_args.args[0]
    assert "清洗太麻烦" in prompt
    assert "咖啡机" in prompt


@pytest.mark.asyncio
async def test_incomplete_summary_raises_parse_error(llm_client, persona, sleep):
    llm_client.complete.return_value = LLMResponse(content='{"keyInsights": "a"}', model="test")
    service = SummaryService(llm_client=llm_client, sleep=sleep)

    with pytest.raises(LLMResponseParseError):
        await service.summarize(persona, "咖啡机", TRANSCRIPT)
