"""Application settings and configuration.

This module defines all configuration options for the chat relay service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Chat Relay", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Local store
    database_url: str = Field(default="sqlite:///./chat_relay.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Backend relay
    api_url: str = Field(
        default="https://account-android-app-backend.vercel.app/api",
        alias="CHAT_RELAY_API_URL",
    )
    auth_token: str | None = Field(default=None, alias="CHAT_RELAY_AUTH_TOKEN")
    http_timeout_seconds: float = Field(default=10.0, alias="CHAT_RELAY_HTTP_TIMEOUT_SECONDS")
    push_token: str | None = Field(default=None, alias="CHAT_RELAY_PUSH_TOKEN")

    # Retry queue
    retry_max_attempts: int = Field(default=3, alias="CHAT_RELAY_RETRY_MAX_ATTEMPTS")
    retry_sweep_enabled: bool = Field(default=True, alias="CHAT_RELAY_RETRY_SWEEP_ENABLED")
    retry_sweep_interval_seconds: float = Field(
        default=60.0,
        alias="CHAT_RELAY_RETRY_SWEEP_INTERVAL_SECONDS",
    )

    # Local caches
    user_cache_ttl_seconds: int = Field(default=3600, alias="CHAT_RELAY_USER_CACHE_TTL_SECONDS")
    notification_history: int = Field(default=100, alias="CHAT_RELAY_NOTIFICATION_HISTORY")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )


settings = Settings()
