"""
Prompts for discussion guide generation.

The guide covers six areas (current situation, usage context, feature
evaluation, pain points, improvements and expectations, emotion and
loyalty) with 1-2 conversational questions each, plus whatever the user
asked for explicitly.
"""

from typing import Any, Dict, List, Optional

from src.domain.models.persona import PersonaProfile
from src.llm.prompts.json_utils import loads_lenient

GUIDE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "questions": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": ["questions"],
}


def get_guide_prompt(
    industry: str,
    persona: PersonaProfile,
    objectives: Optional[str] = None,
    user_questions: Optional[str] = None,
) -> str:
    """Prompt for a structured interview guide as a flat list of questions."""
    return f"""你是一位资深的用户研究员。

背景：
我们正在对一位名为 {persona.name} 的虚拟消费者进行访谈。
行业: {industry}
消费者画像摘要: {persona.summary}

我的额外研究目标: {objectives or "无"}
我预想的特定问题: {user_questions or "无"}

任务：
生成一份深度、结构化的访谈提纲。
**必须包含**以下六个维度的逻辑，每个维度请设计 1-2 个具体、循序渐进的问题，不要生硬地罗列标题，要像真实的访谈对话：

1. **现状与背景**：询问目前使用的品牌/产品、使用时长、频率及具体环境（工作/娱乐/学习等）。
2. **情境与习惯**：挖掘每日使用时刻、常规操作路径（如购买、搜索信息）、以及遇到的任何干扰或障碍。
3. **功能评价**：询问对主要功能的评价（优/良/差及原因），以及具体的技术问题或性能瓶颈。
4. **痛点与挑战**：深入挖掘最常见的使用问题、困难点。
5. **改进与期望**：询问对现有功能的改进建议、新增功能需求、以及对未来的期望。
6. **情感与忠诚度**：询问总体情感体验（满意/失望）、期望值达成情况、以及持续使用或推荐的意愿。

如果我提供了特定问题，请把它们自然地融入提纲。

输出要求：
只返回 JSON 格式的字符串数组，不包含任何 Markdown 标记或章节标题。直接列出具体的问题句子。
Example: ["您目前主要使用什么品牌的咖啡机？用了多久了？", "在每天的什么时间段您使用得最频繁？"]"""


def parse_guide_response(response_text: str) -> List[str]:
    """
    Parse the guide response into an ordered list of questions.

    Accepts either ``{"questions": [...]}`` or a bare JSON array.
    Blank entries are dropped.

    Raises:
        ValueError: If no JSON can be recovered or no question remains
    """
    data = loads_lenient((response_text or "").strip() or "{}")
    if isinstance(data, list):
        raw = data
    else:
        raw = data.get("questions") if isinstance(data, dict) else None
    questions = [str(q).strip() for q in raw or [] if str(q).strip()]
    if not questions:
        raise ValueError("Guide response contains no questions")
    return questions
