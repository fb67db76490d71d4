"""
BeliefCast Configuration.

Pydantic Settings v2: loads from .env and environment variables.

Only caller-facing defaults live here. The numerical constants of the
fitting and search routines are module constants in ``beliefcast.engine``
and are not configurable.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "BeliefCast"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")  # "json" | "console"

    # ── Ranking defaults ─────────────────────────────────────────────────
    gamma_tolerance: float = Field(default=0.0, ge=0.0, le=0.1, alias="BELIEF_GAMMA_TOLERANCE")
    omega_tolerance: float = Field(default=0.0, ge=0.0, le=0.1, alias="BELIEF_OMEGA_TOLERANCE")

    # ── Dominance defaults ───────────────────────────────────────────────
    dominance_threshold: float = Field(
        default=0.0, ge=0.0, le=0.1, alias="BELIEF_DOMINANCE_THRESHOLD"
    )

    # ── Presentation defaults ────────────────────────────────────────────
    daisy_radius: float = Field(default=0.1, ge=0.0, le=0.5, alias="BELIEF_DAISY_RADIUS")


settings = Settings()
