"""
Domain models for persisted OAuth credentials and push subscriptions.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CredentialRecord(BaseModel):
    """Delegated access/refresh token pair held for one principal."""

    principal_id: str = Field("default", description="Stable key for the principal.")
    access_token: str
    refresh_token: str = Field(..., min_length=1)
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("expires_at", "created_at", "updated_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def needs_refresh(self, skew: timedelta, now: Optional[datetime] = None) -> bool:
        """True once ``now`` has entered the skew window before expiry."""
        current = now or utcnow()
        return current >= self.expires_at - skew


class SubscriptionRecord(BaseModel):
    """Graph push subscription as confirmed by the upstream service."""

    subscription_id: str
    resource: str
    expires_at: datetime = Field(
        ..., description="Upstream-confirmed expirationDateTime."
    )
    created_at: datetime = Field(default_factory=utcnow)
    change_type: Optional[str] = None
    notification_url: Optional[str] = None
    principal_id: str = "default"

    @field_validator("expires_at", "created_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        return self.expires_at - (now or utcnow())


__all__ = ["CredentialRecord", "SubscriptionRecord", "utcnow"]
