"""Application configuration using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.constants import (
    FACEBOOK_GRAPH_BASE_URL,
    INSTAGRAM_GRAPH_BASE_URL,
    MESSAGE_PACING_SECONDS,
    META_LOOKUP_TIMEOUT_SECONDS,
    META_SEND_TIMEOUT_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Load .env first, then .env.local (for local/test overrides)
        # Later files override earlier ones, so .env.local takes precedence
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Meta Configuration
    meta_verify_token: str = Field(..., description="Webhook verification token")
    meta_access_token: str | None = Field(
        default=None,
        description=(
            "Page access token used by the HTTP convenience endpoints and CLI. "
            "The delivery client itself always takes the token per call."
        ),
    )
    meta_graph_base_url: str = Field(
        default=FACEBOOK_GRAPH_BASE_URL,
        description="Facebook Graph API base URL (Messenger sends, page lookups)",
    )
    meta_instagram_base_url: str = Field(
        default=INSTAGRAM_GRAPH_BASE_URL,
        description="Instagram Graph API base URL (Instagram Direct sends)",
    )

    # Environment
    env: Literal["local", "railway", "prod"] = Field(
        default="local", description="Current environment"
    )
    log_level: str = Field(default="INFO", description="Python logging level")

    # Sentry Configuration
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN for error tracking (optional)"
    )
    sentry_traces_sample_rate: float = Field(
        default=1.0, description="Sentry traces sample rate (0.0 to 1.0)"
    )

    # Logfire Configuration
    logfire_token: str | None = Field(
        default=None, description="Pydantic Logfire token for observability"
    )

    # ==========================================================================
    # Timeout Configuration
    # ==========================================================================
    # Defaults are sourced from src/constants.py.

    meta_send_timeout_seconds: float = Field(
        default=META_SEND_TIMEOUT_SECONDS,
        description="Timeout for outbound message sends (seconds)",
    )
    meta_lookup_timeout_seconds: float = Field(
        default=META_LOOKUP_TIMEOUT_SECONDS,
        description="Timeout for page/account metadata lookups (seconds)",
    )

    # ==========================================================================
    # Delivery Queue
    # ==========================================================================

    message_pacing_seconds: float = Field(
        default=MESSAGE_PACING_SECONDS,
        ge=0.0,
        description="Minimum wait between consecutive queued sends (seconds)",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
