"""
app/config.py — Central configuration loaded from environment variables.
All modules import settings from here; never read os.environ directly elsewhere.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────────────────────
    database_url: str = Field(..., description="PostgreSQL connection URI")
    db_statement_timeout_ms: int = Field(
        default=5000,
        gt=0,
        description="Per-statement timeout applied to PostgreSQL connections",
    )

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Root log level")

    # ── Lead scoring ──────────────────────────────────────────────────────────
    hot_threshold: int = Field(
        default=70,
        ge=0,
        description="Minimum lead_score for a lead to be classified as hot",
    )
    warm_threshold: int = Field(
        default=40,
        ge=0,
        description="Minimum lead_score for a lead to be classified as warm",
    )
    target_countries: list[str] = Field(
        default=["US", "CA", "GB", "AU", "NZ"],
        description="ISO country codes that earn the full geography score",
    )
    nearby_countries: list[str] = Field(
        default=["MX", "PR", "VI"],
        description="ISO country codes that earn the nearby geography score",
    )
    relevant_keywords: Optional[list[str]] = Field(
        default=None,
        description="Title/industry keywords marking relevant experience; unset keeps the built-in list",
    )
    leadership_keywords: Optional[list[str]] = Field(
        default=None,
        description="Title keywords marking a leadership role; unset keeps the built-in list",
    )

    # ── Lead capture ──────────────────────────────────────────────────────────
    auto_score_leads: bool = Field(
        default=True,
        description="Score new leads right after they are captured",
    )
    auto_assign_leads: bool = Field(
        default=True,
        description="Route new leads to a counselor right after they are captured",
    )


# Singleton — import this everywhere
settings = Settings()
