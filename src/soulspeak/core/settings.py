"""Application settings and configuration.

This module defines all configuration options for the SoulSpeak feed core.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Every option can be overridden via environment variables or a `.env`
    file at the working directory.
    """

    # Application metadata
    app_name: str = Field(default="SoulSpeak", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Which persistence backend the session talks to
    persistence_backend: Literal["rest", "sql"] = Field(
        default="rest",
        alias="SOULSPEAK_PERSISTENCE_BACKEND",
    )

    # Remote table/storage service (PostgREST-style)
    store_url: str | None = Field(default=None, alias="SOULSPEAK_STORE_URL")
    store_api_key: str | None = Field(default=None, alias="SOULSPEAK_STORE_API_KEY")
    store_timeout_seconds: float = Field(default=10.0, alias="SOULSPEAK_STORE_TIMEOUT_SECONDS")
    circuit_failure_threshold: int = Field(default=5, alias="SOULSPEAK_CIRCUIT_FAILURE_THRESHOLD")
    circuit_recovery_seconds: float = Field(
        default=30.0,
        alias="SOULSPEAK_CIRCUIT_RECOVERY_SECONDS",
    )

    # Identity provider
    access_token: str | None = Field(default=None, alias="SOULSPEAK_ACCESS_TOKEN")
    jwt_secret: str | None = Field(default=None, alias="SOULSPEAK_JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="SOULSPEAK_JWT_ALGORITHM")
    jwt_audience: str | None = Field(default="authenticated", alias="SOULSPEAK_JWT_AUDIENCE")
    auth_logout_url: str | None = Field(default=None, alias="SOULSPEAK_AUTH_LOGOUT_URL")

    # Local SQL backend
    database_url: str = Field(default="sqlite:///./soulspeak.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    blob_root: str = Field(default="./blobs", alias="SOULSPEAK_BLOB_ROOT")
    public_blob_base_url: str = Field(
        default="http://localhost:8000/blobs",
        alias="SOULSPEAK_PUBLIC_BLOB_BASE_URL",
    )

    # Feed shaping
    feed_limit: int = Field(default=50, alias="SOULSPEAK_FEED_LIMIT")
    status_list_limit: int = Field(default=20, alias="SOULSPEAK_STATUS_LIST_LIMIT")
    status_lifetime_hours: int = Field(default=24, alias="SOULSPEAK_STATUS_LIFETIME_HOURS")
    status_content_max_length: int = Field(
        default=10,
        alias="SOULSPEAK_STATUS_CONTENT_MAX_LENGTH",
    )

    # Write the recomputed like count back onto the liked row after each toggle
    sync_like_counts: bool = Field(default=True, alias="SOULSPEAK_SYNC_LIKE_COUNTS")

    # Media uploads
    media_bucket: str = Field(default="media", alias="SOULSPEAK_MEDIA_BUCKET")
    media_max_bytes: int = Field(default=50 * 1024 * 1024, alias="SOULSPEAK_MEDIA_MAX_BYTES")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def rest_enabled(self) -> bool:
        """Return True when the REST backend has enough configuration to run."""
        return bool(self.store_url and self.store_api_key)


settings = Settings()
