"""
Application settings management.

Settings are loaded from environment variables with .env file support.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    #
    # Four-client architecture for task-optimized model selection:
    # - research: persona research with search grounding and reference files
    # - generation: requirement analysis, guides, moderator, summaries
    # - chat: the simulated respondent conversation
    # - image: persona avatar generation
    #
    # Defaults are defined in src/llm/client.py. Set environment variables
    # below only to override defaults (e.g., LLM_CHAT_PROVIDER=deepseek)

    llm_research_provider: Optional[str] = Field(
        default=None, description="Override research LLM provider (default: gemini)"
    )
    llm_generation_provider: Optional[str] = Field(
        default=None,
        description="Override generation LLM provider (default: gemini)",
    )
    llm_chat_provider: Optional[str] = Field(
        default=None, description="Override chat LLM provider (default: gemini)"
    )
    llm_image_provider: Optional[str] = Field(
        default=None, description="Override image LLM provider (default: gemini)"
    )

    # API Keys (required for providers you use)
    gemini_api_key: Optional[str] = Field(
        default=None, description="Google Gemini API key"
    )
    openai_api_key: Optional[str] = Field(
        default=None, description="OpenAI API key (optional)"
    )
    deepseek_api_key: Optional[str] = Field(
        default=None, description="DeepSeek API key (optional)"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


# ============================================================================
# Workflow Configuration (from YAML)
# ============================================================================


class RetryPolicy(BaseModel):
    """Bounded exponential backoff for rate-limited collaborator calls."""

    max_retries: int = Field(default=5, ge=0, le=10)
    base_delay: float = Field(
        default=4.0, ge=0.0, description="Delay before the first retry (seconds)"
    )


class RetryConfig(BaseModel):
    """Retry policies per collaborator call kind."""

    default: RetryPolicy = Field(default_factory=RetryPolicy)
    analysis: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_retries=5, base_delay=5.0)
    )
    persona: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_retries=5, base_delay=5.0)
    )
    avatar: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_retries=2, base_delay=5.0)
    )


class ModeratorConfig(BaseModel):
    """Pacing of the automated moderator loop."""

    pacing_delay: float = Field(
        default=3.0, ge=0.0, description="Delay before each moderator decision"
    )
    rate_limit_cooldown: float = Field(
        default=5.0, ge=0.0, description="Cooldown after a rate-limited decision"
    )
    max_rate_limit_retries: int = Field(
        default=3, ge=0, le=20, description="Retries of one moderator turn"
    )


class ChatConfig(BaseModel):
    """Respondent channel behavior."""

    opening_prompt: str = "请做一个简短的自我介绍，像我们刚见面一样。"
    placeholder_reply: str = "(网络波动，请重试)"
    empty_reply: str = "..."
    opening_fallback: str = "你好。"


class PersonaConfig(BaseModel):
    """Persona parsing defaults."""

    fallback_name: str = "消费者"
    fallback_markdown: str = "# 生成失败"
    default_score: int = Field(default=3, ge=0, le=5)
    summary_length: int = Field(default=200, ge=20)
    generate_avatar: bool = True


class GuideConfig(BaseModel):
    """Discussion guide defaults."""

    fallback_on_error: bool = Field(
        default=True,
        description="Substitute fallback_questions when guide generation fails",
    )
    fallback_questions: List[str] = Field(
        default_factory=lambda: [
            "请介绍一下您自己。",
            "您目前使用什么产品？",
            "您最大的痛点是什么？",
        ]
    )

    @field_validator("fallback_questions")
    @classmethod
    def non_empty_fallback(cls, v: List[str]) -> List[str]:
        """Fallback guide must contain at least one non-blank question."""
        cleaned = [q for q in v if q.strip()]
        if not cleaned:
            raise ValueError("fallback_questions must not be empty")
        return cleaned


class WorkflowConfig(BaseModel):
    """
    Complete workflow configuration loaded from workflow_config.yaml.

    Holds the workflow and turn-loop parameters that would otherwise be
    hardcoded across services.
    """

    retry: RetryConfig = Field(default_factory=RetryConfig)
    moderator: ModeratorConfig = Field(default_factory=ModeratorConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    persona: PersonaConfig = Field(default_factory=PersonaConfig)
    guide: GuideConfig = Field(default_factory=GuideConfig)


def load_workflow_config(config_path: Optional[Path] = None) -> WorkflowConfig:
    """
    Load workflow configuration from YAML file.

    Args:
        config_path: Path to workflow_config.yaml. If None, uses default path.

    Returns:
        WorkflowConfig with validated settings (defaults if file is absent)

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        # Default path: config/workflow_config.yaml relative to project root
        project_config = (
            Path(__file__).resolve().parent.parent.parent
            / "config"
            / "workflow_config.yaml"
        )
        cwd_config = Path.cwd() / "config" / "workflow_config.yaml"
        if project_config.exists():
            config_path = project_config
        elif cwd_config.exists():
            config_path = cwd_config
        else:
            return WorkflowConfig()

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return WorkflowConfig()

    with open(str(config_path), encoding="utf-8") as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return WorkflowConfig()

    return WorkflowConfig(**config_data)


# Global settings instance
settings = Settings()

# Global workflow config instance
workflow_config = load_workflow_config()
