"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the webhook handlers and
the scheduled subscription renewal job share a consistent configuration
surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


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


class MicrosoftSettings(BaseSettings):
    """Configuration required for the Microsoft identity platform and Graph."""

    client_id: str = Field(..., alias="MICROSOFT_CLIENT_ID")
    client_secret: str = Field(..., alias="MICROSOFT_CLIENT_SECRET")
    tenant_id: str = Field("common", alias="MICROSOFT_TENANT_ID")
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None,
        alias="MICROSOFT_REDIRECT_URI",
        description=(
            "OAuth callback URL. Derived from PUBLIC_BASE_URL when omitted."
        ),
    )
    graph_base_url: str = Field(
        "https://graph.microsoft.com/v1.0", alias="GRAPH_API_BASE_URL"
    )
    login_base_url: str = Field(
        "https://login.microsoftonline.com", alias="MICROSOFT_LOGIN_BASE_URL"
    )


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    state_ttl_seconds: int = Field(900, alias="OAUTH_STATE_TTL")
    refresh_skew_seconds: int = Field(
        300,
        alias="OAUTH_REFRESH_SKEW_SECONDS",
        description="Refresh access tokens this long before they expire.",
    )
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "Calendars.ReadWrite",
            "Contacts.ReadWrite",
            "Mail.Read",
            "Mail.Send",
            "User.Read",
            "offline_access",
        ),
        alias="OAUTH_SCOPES",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class TwilioSettings(BaseSettings):
    """Credentials for the SMS transport."""

    account_sid: str = Field(..., alias="TWILIO_ACCOUNT_SID")
    auth_token: str = Field(..., alias="TWILIO_AUTH_TOKEN")
    phone_number: str = Field(..., alias="TWILIO_PHONE_NUMBER")
    api_base_url: str = Field("https://api.twilio.com", alias="TWILIO_API_BASE_URL")
    enforce_signature: bool = Field(
        True,
        alias="TWILIO_ENFORCE_SIGNATURE",
        description=(
            "When false (outside production only) invalid signatures are "
            "logged but not rejected."
        ),
    )


class CompletionSettings(BaseSettings):
    """Configuration for the chat completion API."""

    api_key: str = Field(..., alias="OPENROUTER_API_KEY")
    model_name: str = Field("anthropic/claude-sonnet-4.5", alias="OPENROUTER_MODEL")
    base_url: str = Field(
        "https://openrouter.ai/api/v1", alias="OPENROUTER_BASE_URL"
    )
    temperature: float = Field(0.7, alias="OPENROUTER_TEMPERATURE")
    app_title: str = Field("AI SMS Assistant", alias="OPENROUTER_APP_TITLE")


class NotificationSettings(BaseSettings):
    """Push notification and subscription defaults."""

    user_phone_number: Optional[str] = Field(
        None,
        alias="USER_PHONE_NUMBER",
        description="Destination for SMS alerts triggered by new mail.",
    )
    client_state: str = Field("sms-assistant", alias="GRAPH_CLIENT_STATE")
    subscription_resource: str = Field(
        "me/mailFolders('Inbox')/messages", alias="GRAPH_SUBSCRIPTION_RESOURCE"
    )
    subscription_ttl_minutes: int = Field(4200, alias="GRAPH_SUBSCRIPTION_TTL_MINUTES")
    renewal_window_minutes: int = Field(60, alias="GRAPH_RENEWAL_WINDOW_MINUTES")


class StorageSettings(BaseSettings):
    """Backing store selection for credentials and subscriptions."""

    backend: str = Field("sqlite", alias="STORAGE_BACKEND")
    sqlite_db_path: str = Field("data/sms_assistant.db", alias="SQLITE_DB_PATH")
    region_name: str = Field("us-east-1", alias="AWS_REGION")
    dynamodb_table_name: Optional[str] = Field(None, alias="DYNAMODB_TABLE_NAME")

    @field_validator("backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if cleaned not in {"sqlite", "dynamodb"}:
            raise ValueError("STORAGE_BACKEND must be 'sqlite' or 'dynamodb'")
        return cleaned


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    token_encryption_secret: Optional[str] = Field(
        None,
        alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Comma-separated secrets used to derive the Fernet keys for stored "
            "tokens. The first one encrypts; all of them decrypt."
        ),
    )
    admin_api_key: Optional[str] = Field(
        None,
        alias="ADMIN_API_KEY",
        description="Optional key guarding the subscription management endpoints.",
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    environment: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="APP_LOG_LEVEL")
    public_base_url: AnyHttpUrl = Field(
        "http://localhost:8000",
        alias="PUBLIC_BASE_URL",
        description="Externally reachable base URL used for callbacks and webhooks.",
    )
    default_principal_id: str = Field("default", alias="DEFAULT_PRINCIPAL_ID")
    http_timeout_seconds: float = Field(10.0, alias="HTTP_TIMEOUT_SECONDS")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    microsoft: MicrosoftSettings = Field(default_factory=MicrosoftSettings)
    twilio: TwilioSettings = Field(default_factory=TwilioSettings)
    completion: CompletionSettings = Field(default_factory=CompletionSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"production", "prod"}

    def public_url(self, path: str) -> str:
        """Join the public base URL with an absolute request path."""
        return f"{str(self.public_base_url).rstrip('/')}/{path.lstrip('/')}"

    @property
    def oauth_redirect_uri(self) -> str:
        if self.microsoft.redirect_uri:
            return str(self.microsoft.redirect_uri)
        return self.public_url("/api/auth/microsoft/callback")


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "CompletionSettings",
    "MicrosoftSettings",
    "NotificationSettings",
    "OAuthSettings",
    "SecuritySettings",
    "StorageSettings",
    "TwilioSettings",
    "get_settings",
]
