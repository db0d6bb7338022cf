"""
Prompts for the interview summary report.
"""

from typing import Any, Dict, Sequence

from src.domain.models.message import ChatMessage, Speaker
from src.domain.models.persona import PersonaProfile
from src.domain.models.session import InterviewSummary
from src.llm.prompts.json_utils import loads_lenient

INTERVIEWER_LABEL = "采访者"

SUMMARY_FIELDS = {
    "keyInsights": "key_insights",
    "painPoints": "pain_points",
    "wantsNeeds": "wants_needs",
    "verdict": "verdict",
}

SUMMARY_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {key: {"type": "STRING"} for key in SUMMARY_FIELDS},
    "required": list(SUMMARY_FIELDS),
}


def format_summary_transcript(messages: Sequence[ChatMessage], persona_name: str) -> str:
    return "\n".join(
        f"{persona_name if m.speaker == Speaker.RESPONDENT else INTERVIEWER_LABEL}: {m.text}"
        for m in messages
    )


def get_summary_prompt(
    persona: PersonaProfile,
    industry: str,
    messages: Sequence[ChatMessage],
) -> str:
    """Prompt for the four-part interview report."""
    transcript = format_summary_transcript(messages, persona.name)
    return f"""请根据以下关于 "{industry}" 行业的访谈记录，生成一份总结报告。

受访者资料: {persona.raw_markdown}

访谈记录:
{transcript}

请提取以下关键信息并以 JSON 格式返回：
1. keyInsights (关键洞察 - 3点)
2. painPoints (主要痛点)
3. wantsNeeds (核心需求)
4. verdict (受访者对当前市场产品的总体态度/评价)

请确保使用中文回答。"""


def _as_text(value: Any) -> str:
    if isinstance(value, list):
        return "\n".join(str(v).strip() for v in value if str(v).strip())
    return str(value or "").strip()


def parse_summary_response(response_text: str) -> InterviewSummary:
    """
    Parse the summary response.

    List values (e.g. insights as an array) are joined line by line.

    Raises:
        ValueError: If the JSON is invalid or a field is missing or empty
    """
    data = loads_lenient(response_text or "{}")
    if not isinstance(data, dict):
        raise ValueError("Summary response must be a JSON object")

    values = {}
    for key, field_name in SUMMARY_FIELDS.items():
        text = _as_text(data.get(key, data.get(field_name)))
        if not text:
            raise ValueError(f"Summary response is missing '{key}'")
        values[field_name] = text
    return InterviewSummary(**values)
