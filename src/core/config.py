"""
Application settings management.

Settings are loaded from environment variables with .env file support.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
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
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/interview.db"), description="Path to SQLite database file"
    )
    enable_persistence: bool = Field(
        default=True,
        description="Mirror collected candidate fields to the SQLite store",
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    #
    # Two-client architecture:
    # - generation: structured JSON replies for every interview turn
    # - fallback: short plain-text replies after a malformed-request error
    #
    # Defaults are defined in src/llm/client.py. Set environment variables
    # below only to override defaults (e.g., LLM_GENERATION_PROVIDER=deepseek)

    llm_generation_provider: Optional[str] = Field(
        default=None,
        description="Override generation LLM provider (default: openai)",
    )
    llm_fallback_provider: Optional[str] = Field(
        default=None, description="Override fallback LLM provider (default: openai)"
    )

    # API Keys (required for providers you use)
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    deepseek_api_key: Optional[str] = Field(
        default=None, description="DeepSeek API key"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


# ============================================================================
# Interview Configuration (from YAML)
# ============================================================================


class OrchestratorConfig(BaseModel):
    """Turn orchestration timings and retry ceiling."""

    auto_submit_delay_s: float = Field(
        default=4.0,
        gt=0,
        description="Silence window after the last transcript change before auto-submit",
    )
    min_transcript_chars: int = Field(
        default=10,
        ge=0,
        description="Trimmed transcript must be longer than this to arm auto-submit",
    )
    max_retries: int = Field(
        default=3, ge=1, le=10, description="Consecutive failures before terminal error"
    )
    transition_delay_s: float = Field(
        default=0.5,
        ge=0,
        description="Pause between finishing a reply and entering the next step",
    )


class GenerationConfig(BaseModel):
    """Response generator retry and context settings."""

    max_attempts: int = Field(
        default=3, ge=1, le=10, description="Backend attempts per generated reply"
    )
    base_delay_s: float = Field(
        default=1.0, ge=0, description="Base delay for retry backoff"
    )
    history_limit: int = Field(
        default=4, ge=0, le=50, description="Recent conversation entries sent as context"
    )
    confidence_threshold: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Extracted data below this confidence is not applied",
    )


class JobLoopConfig(BaseModel):
    """Work experience loop settings."""

    max_items: int = Field(
        default=2, ge=1, le=10, description="Most recent jobs discussed in the loop"
    )
    settle_delay_s: float = Field(
        default=0.1, ge=0, description="Transition window while moving to the next job"
    )


class InterviewConfig(BaseModel):
    """
    Complete interview configuration loaded from interview_config.yaml.

    Holds the timing, retry and loop parameters shared by the orchestrator,
    the response generator and the job loop controller.
    """

    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    job_loop: JobLoopConfig = Field(default_factory=JobLoopConfig)


def load_interview_config(config_path: Optional[Path] = None) -> InterviewConfig:
    """
    Load interview configuration from YAML file.

    Args:
        config_path: Path to interview_config.yaml. If None, uses default path.

    Returns:
        InterviewConfig with validated settings

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        # Default path: config/interview_config.yaml relative to project root
        current = Path(__file__).resolve().parent.parent.parent
        check_path = current / "config" / "interview_config.yaml"
        if check_path.exists():
            config_path = check_path
        else:
            # Fallback to current working directory
            cwd_config = Path.cwd() / "config" / "interview_config.yaml"
            if not cwd_config.exists():
                return InterviewConfig()
            config_path = cwd_config

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return InterviewConfig()

    with open(str(config_path)) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return InterviewConfig()

    return InterviewConfig(**config_data)


# Global settings instance
settings = Settings()

# Global interview config instance
interview_config = load_interview_config()
