"""Application configuration management."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PACKAGE_DIR = Path(__file__).resolve().parent
LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """Centralised application settings derived from environment variables."""

    anthropic_api_key: str
    anthropic_model: str = Field(default="claude-sonnet-4-5-20250929")
    model_display_name: str = Field(default="Claude Sonnet 4.5")
    generation_max_tokens: int = Field(default=4096, ge=1)
    generation_temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    generation_timeout_seconds: float = Field(default=120.0, gt=0)

    # Provider limits advertised by /api/model
    model_limit_rpm: int = Field(default=5, ge=1)
    model_limit_tpm: int = Field(default=250_000, ge=1)
    model_limit_rpd: int = Field(default=20, ge=1)

    database_url: str = Field(
        default="sqlite:///./data/workout_insight.db",
        description="SQLAlchemy-compatible database URL.",
    )
    sqlite_busy_timeout_ms: int = Field(
        default=5000,
        ge=0,
        description="How long SQLite writers wait for the database lock before failing.",
    )
    app_host: str = Field(default="0.0.0.0")
    app_port: int = Field(default=8000, ge=1, le=65535)

    debug: bool = Field(default=False)
    identity_header: str = Field(
        default="X-User-Id",
        description="Header carrying the caller identity resolved by the auth gateway.",
    )
    admin_user_ids: list[str] = Field(
        default_factory=list,
        description="Identities allowed to overwrite the shared usage counter (JSON list).",
    )

    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))
    log_levels: dict[str, str] = Field(
        default_factory=dict,
        description="Per-logger level overrides, e.g. {\"workout_insight.services.usage_tracker\": \"DEBUG\"}.",
    )

    prompt_config_path: Path = Field(default=PACKAGE_DIR / "prompts" / "prompts.yaml")
    prompt_version: str | None = Field(
        default=None,
        description="Template version to use (defaults to active_version in the prompt config).",
    )
    sample_max_points: int = Field(default=200, ge=1)

    analysis_cooldown_seconds: int = Field(default=60, ge=0)
    daily_generation_limit: int = Field(default=20, ge=0)
    usage_scope: str = Field(default="global")
    quota_timezone: str = Field(default="America/Los_Angeles")
    error_message_max_length: int = Field(default=200, ge=20)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=("settings_",),
    )

    @field_validator("anthropic_api_key")
    @classmethod
    def validate_api_key(cls, value: str) -> str:
        """Ensure the API key is not left as a placeholder."""

        if value.strip().lower() in {"", "change-me", "changeme"}:
            raise ValueError(
                "ANTHROPIC_API_KEY is required. Update your .env file before running the app."
            )
        return value

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(sorted(LOG_LEVELS))}")
        return upper

    @field_validator("log_levels")
    @classmethod
    def normalize_log_levels(cls, value: dict[str, str]) -> dict[str, str]:
        normalized = {}
        for name, level in value.items():
            upper = level.upper()
            if upper not in LOG_LEVELS:
                raise ValueError(f"LOG_LEVELS entry for '{name}' has unknown level '{level}'")
            normalized[name] = upper
        return normalized

    @field_validator("usage_scope")
    @classmethod
    def normalize_usage_scope(cls, value: str) -> str:
        lower = value.strip().lower()
        if lower not in {"global", "user"}:
            raise ValueError("USAGE_SCOPE must be either 'global' or 'user'")
        return lower

    @field_validator("quota_timezone")
    @classmethod
    def validate_quota_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as err:
            raise ValueError(f"QUOTA_TIMEZONE '{value}' is not a known IANA timezone") from err
        return value


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance so it can be reused across the app."""

    settings = Settings()
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    return settings
