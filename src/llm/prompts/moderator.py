"""
Prompts for the automated interview moderator.

Each turn the moderator reads the full transcript and either
- deep-dives on a high-value signal in the respondent's last answer
  (improvement ideas, situational pain points, expectations about the
  future, details useful to R&D), or
- moves on to the next guide topic not yet covered.

When every guide topic is covered and nothing is left to probe, the model
answers with INTERVIEW_COMPLETE_SENTINEL.
"""

import json
from typing import Optional, Sequence

from src.domain.models.message import ChatMessage, Speaker
from src.domain.models.persona import PersonaProfile

INTERVIEW_COMPLETE_SENTINEL = "[INTERVIEW_COMPLETE]"

MODERATOR_LABEL = "主持人"
OBSERVER_LABEL = "观察员"


def format_moderator_transcript(
    messages: Sequence[ChatMessage], persona_name: str
) -> str:
    """Render the transcript with moderator / observer / respondent labels."""
    lines = []
    for message in messages:
        if message.speaker == Speaker.RESPONDENT:
            label = persona_name
        elif message.automated:
            label = MODERATOR_LABEL
        else:
            label = OBSERVER_LABEL
        lines.append(f"{label}: {message.text}")
    return "\n".join(lines)


def get_moderator_prompt(
    messages: Sequence[ChatMessage],
    guide: Sequence[str],
    persona: PersonaProfile,
) -> str:
    """Prompt asking for the single next interview question."""
    transcript = format_moderator_transcript(messages, persona.name)
    guide_json = json.dumps(list(guide), ensure_ascii=False)

    return f"""你是一位专业的深度访谈主持人 (Moderator)。正在采访 {persona.name}。

访谈提纲 (这是我们的核心逻辑线索, 但不要被它死板限制):
{guide_json}

当前对话记录:
{transcript}

任务：
根据对话记录，生成【下一个】要问的问题。

**核心追问策略**：
请仔细分析受访者的上一句回答。如果包含以下【高价值信息】，请**立即暂停**提纲推进，进行深挖追问：
1. **潜在的产品改进点** (例如："如果这个功能再方便一点就好了...")
2. **特定场景的痛点或障碍** (例如："有时候我在路上用会断连...")
3. **对未来概念的想象或期望** (例如："我希望能有一个自动化的功能...")
4. **能够启发产品研发(R&D)的具体细节**

追问模板参考：
- "您刚才提到[具体点]，能具体描述一下当时的场景吗？"
- "关于这个改进想法，您心目中理想的解决方案是怎样的？"
- "为什么这对您来说特别重要？"

如果上一句回答比较常规，或者当前话题已充分讨论，请根据【访谈提纲】自然过渡到下一个未讨论的话题。

约束：
- 保持语气专业、亲切、像真人在对话。
- 每次只问一个问题。
- 如果提纲中的问题都已经涵盖了，且没有新的挖掘点，请仅返回字符串: "{INTERVIEW_COMPLETE_SENTINEL}"。

请直接返回问题文本。"""


def parse_moderator_response(response_text: Optional[str]) -> Optional[str]:
    """
    Parse the moderator's answer.

    Returns:
        The next question, or None when the interview is complete (sentinel
        present or empty answer)
    """
    text = (response_text or "").strip()
    if not text or "INTERVIEW_COMPLETE" in text:
        return None
    return text
