from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent and API settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        populate_by_name=True,
        env_ignore_empty=True,
        extra="ignore",
    )

    anthropic_api_key: Optional[str] = Field(default=None, validation_alias="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(default="claude-sonnet-4-5-20250929", validation_alias="ANTHROPIC_MODEL")
    max_tokens: int = Field(default=2048, gt=0, validation_alias="AGENT_MAX_TOKENS")
    max_iterations: int = Field(default=12, gt=0, validation_alias="AGENT_MAX_ITERATIONS")
    provider_timeout_seconds: float = Field(default=60.0, gt=0, validation_alias="ANTHROPIC_TIMEOUT_SECONDS")
    tool_timeout_seconds: float = Field(default=30.0, gt=0, validation_alias="AGENT_TOOL_TIMEOUT_SECONDS")
    parallel_tools: bool = Field(default=False, validation_alias="AGENT_PARALLEL_TOOLS")
    history_limit: int = Field(default=20, ge=0, validation_alias="AGENT_HISTORY_LIMIT")

    # Per-user admission window
    rate_limit_max_requests: int = Field(default=5, gt=0, validation_alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_window_seconds: int = Field(default=60, gt=0, validation_alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_sweep_seconds: int = Field(default=300, gt=0, validation_alias="RATE_LIMIT_SWEEP_SECONDS")

    google_places_api_key: Optional[str] = Field(default=None, validation_alias="GOOGLE_PLACES_API_KEY")
