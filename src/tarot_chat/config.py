"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from tarot_chat.domain.sessions import DEFAULT_SESSION_DURATION_SECONDS

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    supabase_url: str
    supabase_service_key: str
    session_duration_seconds: int = DEFAULT_SESSION_DURATION_SECONDS
    expiry_sweep_interval_seconds: float = 0
    init_data_max_age_seconds: int = 86400
    cors_allowed_origins: str | None = None
    environment: str = _ENVIRONMENT
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_allowed_origins(raw: str | None) -> list[str]:
    """Parse the CORS origin allow-list from env."""
    if raw is None:
        return ["*"]
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return ["*"]
    origins = [chunk.strip() for chunk in cleaned.split(",") if chunk.strip()]
    return origins or ["*"]
