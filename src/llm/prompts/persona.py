"""
Prompts for requirement analysis and persona generation.

Requirement analysis decides whether the audience description covers the
four persona dimensions (demographics, psychographics, behaviors, needs)
and, if not, returns 2-3 multiple-choice clarifying questions.

Persona generation builds a markdown profile with search grounding and
optional reference materials, plus a 0-5 completeness score per dimension.
The profile's first level-1 heading is the persona's display name.

Used by:
- PersonaService.analyze_requirements
- PersonaService.generate_persona
"""

import re
from typing import Any, Dict, List, Optional, Sequence

from src.core.config import PersonaConfig
from src.domain.models.persona import ClarifyingQuestion, PersonaDimensionScores
from src.domain.models.session import MaterialKind, ReferenceMaterial
from src.llm.client import ContentPart
from src.llm.prompts.json_utils import loads_lenient

SCORE_DIMENSIONS = ("demographics", "psychographics", "behaviors", "needs")

_NAME_HEADING = re.compile(r"^#\s+(.+)$", re.MULTILINE)


# =============================================================================
# Requirement analysis
# =============================================================================

REQUIREMENT_ANALYSIS_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "needsClarification": {"type": "BOOLEAN"},
        "questions": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "question": {"type": "STRING"},
                    "options": {"type": "ARRAY", "items": {"type": "STRING"}},
                },
                "required": ["question", "options"],
            },
        },
    },
    "required": ["needsClarification", "questions"],
}


def get_requirement_analysis_prompt(industry: str, target_audience: str) -> str:
    """Prompt asking whether the audience description needs clarification."""
    return f"""你是一位专业的市场研究员。用户想要建立一个虚拟消费者画像。

行业: "{industry}"
目标受众: "{target_audience}"

画像必须包含四个核心维度：
1. 人口统计学特征 (Demographics)
2. 心理特征 (Psychographics)
3. 行为特征 (Behavioral)
4. 需求与痛点 (Needs & Pain Points)

任务：评估用户描述是否足以支撑这四个维度的构建。
如果描述过于宽泛或缺失某个关键维度，请生成 2-3 个选择题来完善它。

例如：
- 如果缺少人口统计学，问年龄、收入或居住地。
- 如果缺少心理特征，问价值观或生活态度。

如果描述已经足够具体，请返回空列表。
请严格遵循 JSON 格式返回。"""


def parse_requirement_analysis_response(response_text: str) -> List[ClarifyingQuestion]:
    """
    Parse the requirement analysis response.

    Questions are only returned when the model flags ``needsClarification``
    and supplies at least one question with a non-blank text.

    Raises:
        ValueError: If the response is not valid JSON
    """
    data = loads_lenient(response_text or "{}")
    if not isinstance(data, dict) or not data.get("needsClarification"):
        return []

    questions: List[ClarifyingQuestion] = []
    for item in data.get("questions") or []:
        if not isinstance(item, dict):
            continue
        question = str(item.get("question", "")).strip()
        if not question:
            continue
        options = [str(o).strip() for o in item.get("options") or [] if str(o).strip()]
        questions.append(ClarifyingQuestion(question=question, options=options))
    return questions


# =============================================================================
# Persona generation
# =============================================================================


def build_audience_context(target_audience: str, clarifications: Sequence[str]) -> str:
    """Fold clarification answers into the audience description."""
    answers = [c for c in clarifications if c and c.strip()]
    if not answers:
        return target_audience
    return f"{target_audience} (补充细节: {', '.join(answers)})"


def get_persona_prompt(
    industry: str,
    target_audience: str,
    clarifications: Sequence[str] = (),
    has_materials: bool = False,
) -> str:
    """Prompt for the markdown persona profile and its completeness scores."""
    audience_context = build_audience_context(target_audience, clarifications)

    prompt = f"""你是一位定性市场研究专家。
行业: "{industry}"。
目标受众: "{audience_context}"。

请使用 Google 搜索查找该受众在该行业中的当前趋势。

任务 1：构建虚拟人物画像
请生成一个详细的 Markdown 格式画像。

**请给这位消费者起一个生动、具体、有代表性的名字** (例如："极客小王"、"精致妈妈Sarah"、"养生达人老李")。
**Markdown 的一级标题必须是这个名字** (例如 '# 极客小王')。

必须包含以下四个章节：
1. 人口统计学特征 (姓名, 年龄, 职业, 收入, 居住地)
2. 心理特征 (价值观, 生活态度, 个性)
3. 行为特征 (购买习惯, 品牌偏好, 技术使用)
4. 需求与痛点 (未满足的需求, 挫折感, 动机)
还包括：
5. 访谈风格 (说话方式)

任务 2：完成度评分
请对以上四个维度的数据完整性进行打分（满分 5 分）。
- 结合了公开数据搜索，分数应该至少达到 3 分。
- 如果用户提供了详细资料，分数可以更高。

重要：请严格按照以下 JSON 格式输出结果。如果包含 Markdown 代码块，请使用 ```json 包裹。
{{
  "markdownProfile": "这里是完整的 markdown 格式画像内容",
  "scores": {{
    "demographics": 3,
    "psychographics": 3,
    "behaviors": 3,
    "needs": 3
  }}
}}"""

    if has_materials:
        prompt += "\n\n请优先结合以下参考资料构建。"
    return prompt


def build_material_parts(materials: Sequence[ReferenceMaterial]) -> List[ContentPart]:
    """Turn reference materials into request parts.

    Files are passed through as inline data; text materials become labelled
    text parts. Empty materials are skipped.
    """
    parts: List[ContentPart] = []
    for material in materials:
        if not material.content:
            continue
        if material.kind == MaterialKind.FILE:
            parts.append(
                ContentPart.inline(
                    data=material.content,
                    mime_type=material.mime_type or "application/pdf",
                )
            )
        else:
            parts.append(
                ContentPart.from_text(
                    f"[参考资料 - {material.name}]:\n{material.content}\n"
                )
            )
    return parts


def _coerce_score(value: Any, default: int) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    return max(0, min(5, score))


def parse_scores(raw: Any, default: int = 3) -> PersonaDimensionScores:
    """Clamp raw scores into 0-5 integers, defaulting missing dimensions."""
    raw = raw if isinstance(raw, dict) else {}
    return PersonaDimensionScores(
        **{dim: _coerce_score(raw.get(dim), default) for dim in SCORE_DIMENSIONS}
    )


def extract_persona_name(markdown: str, fallback: str) -> str:
    """Display name is the first level-1 heading of the profile."""
    match = _NAME_HEADING.search(markdown)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return fallback


def summarize_markdown(markdown: str, length: int) -> str:
    return markdown[:length] + "..."


def parse_persona_response(
    response_text: str,
    defaults: Optional[PersonaConfig] = None,
) -> Dict[str, Any]:
    """
    Parse the persona generation response.

    Falls back to treating the whole response as the markdown profile with
    default scores when it carries no parseable JSON.

    Returns:
        Dict with keys: markdown, name, summary, scores
    """
    defaults = defaults or PersonaConfig()

    try:
        data = loads_lenient(response_text or "")
    except ValueError:
        data = None

    if isinstance(data, dict):
        markdown = data.get("markdownProfile") or defaults.fallback_markdown
        scores = parse_scores(data.get("scores"), defaults.default_score)
    else:
        markdown = (response_text or "").strip() or defaults.fallback_markdown
        scores = parse_scores(None, defaults.default_score)

    return {
        "markdown": markdown,
        "name": extract_persona_name(markdown, defaults.fallback_name),
        "summary": summarize_markdown(markdown, defaults.summary_length),
        "scores": scores,
    }


def get_avatar_prompt(name: str, industry: str) -> str:
    """Prompt for the pixel-art avatar image."""
    return (
        f"Cute pixel art avatar of {name}, {industry} consumer.\n"
        "Simple headshot, minimal details, white background.\n"
        "Style: 8-bit, colorful, clean, distinct features matching personality."
    )
