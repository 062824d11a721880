"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app and the maintenance scripts
share a consistent configuration surface. Each ad platform carries its own
credential group; a platform whose credentials are absent is simply not
offered for connection.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class _GroupSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)


class MetaSettings(_GroupSettings):
    """Credentials for the Meta (Facebook) Ads OAuth application."""

    app_id: Optional[str] = Field(None, validation_alias="META_APP_ID")
    app_secret: Optional[str] = Field(None, validation_alias="META_APP_SECRET")
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None, validation_alias="META_REDIRECT_URI"
    )

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.app_secret and self.redirect_uri)


class LinkedInSettings(_GroupSettings):
    """Credentials for the LinkedIn Marketing OAuth application."""

    client_id: Optional[str] = Field(None, validation_alias="LINKEDIN_CLIENT_ID")
    client_secret: Optional[str] = Field(
        None, validation_alias="LINKEDIN_CLIENT_SECRET"
    )
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None, validation_alias="LINKEDIN_REDIRECT_URI"
    )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class GoogleSettings(_GroupSettings):
    """Credentials for the Google Analytics OAuth application."""

    client_id: Optional[str] = Field(None, validation_alias="GOOGLE_CLIENT_ID")
    client_secret: Optional[str] = Field(
        None, validation_alias="GOOGLE_CLIENT_SECRET"
    )
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None, validation_alias="GOOGLE_REDIRECT_URI"
    )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class SecuritySettings(_GroupSettings):
    """Security-related configuration."""

    session_secret: str = Field(
        ...,
        validation_alias="SESSION_SECRET",
        description="HMAC key used to sign and verify session cookies.",
    )
    session_cookie_name: str = Field("session", validation_alias="SESSION_COOKIE_NAME")
    session_ttl_seconds: int = Field(86400, validation_alias="SESSION_TTL")
    token_encryption_secret: str = Field(
        ...,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored "
            "platform tokens."
        ),
    )


class OAuthSettings(_GroupSettings):
    """OAuth flow configuration."""

    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL")
    pending_ttl_seconds: int = Field(3600, validation_alias="OAUTH_PENDING_TTL")
    http_timeout_seconds: float = Field(10.0, validation_alias="OAUTH_HTTP_TIMEOUT")

    @field_validator("state_ttl_seconds", "pending_ttl_seconds")
    @classmethod
    def _positive_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("TTL values must be positive.")
        return value


class DatabaseSettings(_GroupSettings):
    """Location of the SQLite database backing the state store."""

    path: str = Field("data/autopilot.db", validation_alias="DATABASE_PATH")
    busy_timeout_seconds: float = Field(5.0, validation_alias="DATABASE_BUSY_TIMEOUT")


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    login_path: str = Field("/login", validation_alias="LOGIN_PATH")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    meta: MetaSettings = Field(default_factory=MetaSettings)
    linkedin: LinkedInSettings = Field(default_factory=LinkedInSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "GoogleSettings",
    "LinkedInSettings",
    "MetaSettings",
    "OAuthSettings",
    "SecuritySettings",
    "get_settings",
]
