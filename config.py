"""
Configuration settings for quizflow.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is prefixed with QUIZFLOW_ (e.g. QUIZFLOW_TICK_INTERVAL_SECONDS).
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="QUIZFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Session Timing
    # ========================================
    delay_between_attempts_ms: int = Field(
        default=1000,
        ge=0,
        description="Pause after grading before the next question appears (ms)",
    )
    tick_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Cadence of timer progress events (seconds)",
    )

    # ========================================
    # CLI Defaults
    # ========================================
    default_max_attempts: int = Field(
        default=2,
        ge=1,
        description="Attempts allowed per question when --max-attempts is omitted",
    )
    default_attempt_duration: float = Field(
        default=300.0,
        gt=0,
        description="Answering phase length in seconds",
    )
    default_review_duration: float = Field(
        default=60.0,
        gt=0,
        description="Review phase length in seconds",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="WARNING",
        description="Log level for the CLI (DEBUG, INFO, WARNING, ERROR)",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
