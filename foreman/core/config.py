"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider credentials
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key for Claude proposers",
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key for GPT proposers",
    )

    # Foreman Configuration
    foreman_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    foreman_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    foreman_log_dir: str = Field(
        default="logs",
        description="Directory for rotating log files",
    )

    # Decomposition
    foreman_architect_model: str = Field(
        default="claude-sonnet-4-5",
        description="Proposer name used for estimation and decomposition calls",
    )
    foreman_architect_max_tokens: int = Field(
        default=8000,
        ge=256,
        description="Maximum output tokens for decomposition calls",
    )

    # Execution
    foreman_worktree_capacity: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Number of work orders that may execute concurrently",
    )
    foreman_generation_max_tokens: int = Field(
        default=4000,
        ge=256,
        description="Maximum output tokens for code generation calls",
    )
    foreman_proposers_file: str | None = Field(
        default=None,
        description="JSON file with proposer profiles (defaults used when unset)",
    )
    foreman_hard_stop_proposer: str = Field(
        default="claude-sonnet-4-5",
        description="Proposer forced for security/architecture sensitive work",
    )

    # Refinement
    foreman_max_refinement_cycles: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum self-refinement cycles per work order",
    )
    foreman_diagnostic_command: str = Field(
        default="npx tsc --noEmit",
        description="Static checker invoked on each artifact (file path appended)",
    )
    foreman_diagnostic_suffix: str = Field(
        default=".ts",
        description="File suffix used for the transient artifact file",
    )
    foreman_diagnostic_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Hard timeout in seconds for one diagnostic check",
    )

    # Budget
    foreman_daily_soft_cap: float = Field(
        default=20.0,
        ge=0,
        description="Daily spend that triggers budget warnings (USD)",
    )
    foreman_daily_hard_cap: float = Field(
        default=50.0,
        ge=0,
        description="Daily spend that forces the cheapest proposer (USD)",
    )
    foreman_emergency_kill: float = Field(
        default=100.0,
        ge=0,
        description="Daily spend at which routing is refused (USD)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.foreman_worktree_capacity
        4
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
