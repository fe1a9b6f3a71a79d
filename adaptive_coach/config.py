"""
Runtime configuration for the adaptive training engine.

Values are read from environment variables prefixed with ``ADAPTIVE_COACH_``
(or a local ``.env`` file). Every threshold has a safe default so the engine
runs without any configuration at all.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings with conservative defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ADAPTIVE_COACH_",
        extra="ignore",
    )

    # Infrastructure
    database_url: str = Field(
        default="sqlite:///data/adaptive_coach.db",
        description="SQLAlchemy URL for the reference storage implementation",
    )
    log_level: str = Field(default="INFO", description="Loguru level for the stderr sink")
    log_file: Optional[str] = Field(default=None, description="Optional rotating log file path")
    storage_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Caller-imposed timeout for storage reads before falling back to defaults",
    )
    cors_origins: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ],
        description="Browser origins allowed to call the API",
    )

    # Schedule conflicts
    min_recovery_days: int = Field(
        default=2, ge=1, description="Minimum days between leg-dominant sessions"
    )

    # Load tracking
    spike_threshold: float = Field(
        default=1.5, gt=1.0, description="Acute/average ratio above which load is a spike"
    )
    ewma_span_days: int = Field(default=28, ge=2, description="Span of the EWMA load baseline")

    # Deload cadence
    deload_frequency_weeks: int = Field(default=4, ge=2)
    deload_volume_multiplier: float = Field(default=0.80, gt=0, le=1.0)

    # Guardrail thresholds
    soreness_threshold: int = Field(default=7, ge=1, le=10)
    pain_threshold: int = Field(default=4, ge=1, le=10)
    max_daily_load: float = Field(default=120.0, gt=0)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and validate the log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
