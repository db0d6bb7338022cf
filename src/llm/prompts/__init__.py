# noqa
from src.llm.prompts.guide import get_guide_prompt, parse_guide_response
from src.llm.prompts.moderator import (
    INTERVIEW_COMPLETE_SENTINEL,
    get_moderator_prompt,
    parse_moderator_response,
)
from src.llm.prompts.persona import (
    get_persona_prompt,
    get_requirement_analysis_prompt,
    parse_persona_response,
    parse_requirement_analysis_response,
)
from src.llm.prompts.respondent import get_respondent_system_prompt
from src.llm.prompts.summary import get_summary_prompt, parse_summary_response

__all__ = [
    "INTERVIEW_COMPLETE_SENTINEL",
    "get_guide_prompt",
    "parse_guide_response",
    "get_moderator_prompt",
    "parse_moderator_response",
    "get_persona_prompt",
    "get_requirement_analysis_prompt",
    "parse_persona_response",
    "parse_requirement_analysis_response",
    "get_respondent_system_prompt",
    "get_summary_prompt",
    "parse_summary_response",
]
