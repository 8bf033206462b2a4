"""Schemas related to the Microsoft OAuth flow."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class AuthorizationStart(BaseModel):
    """Returned instead of a redirect when the caller asks for JSON."""

    authorization_url: str = Field(..., description="Microsoft consent screen URL.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class OAuthConnection(BaseModel):
    status: str
    principal_id: str
    expires_at: Optional[str] = None
    redirect_to: Optional[str] = None


__all__ = ["AuthorizationStart", "OAuthConnection"]
