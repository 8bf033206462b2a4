"""
Microsoft identity platform OAuth utilities.

These helpers manage the delegated authorization code flow and the
refresh-token grant used to keep the Graph access token fresh.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from fastapi import HTTPException, status

from sms_assistant.core.config import MicrosoftSettings, OAuthSettings
from sms_assistant.core.errors import (
    OAuthTokenExchangeError,
    TransientUpstreamError,
    UpstreamRejectedError,
)
from sms_assistant.utils.http import is_transient_status


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        body = dict(payload)
        body.setdefault("issued_at", datetime.now(timezone.utc).isoformat())
        serialized = json.dumps(body, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str, *, max_age_seconds: Optional[int] = None) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed OAuth state.",
            ) from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid OAuth state signature.",
            )
        payload = json.loads(serialized)
        if max_age_seconds is not None:
            issued_at = datetime.fromisoformat(payload["issued_at"])
            if issued_at.tzinfo is None:
                issued_at = issued_at.replace(tzinfo=timezone.utc)
            age = datetime.now(timezone.utc) - issued_at
            if age > timedelta(seconds=max_age_seconds):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="OAuth state token has expired.",
                )
        return payload


@dataclass(frozen=True)
class TokenGrant:
    """Token endpoint response normalized to an absolute expiry."""

    access_token: str
    expires_at: datetime
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class MicrosoftOAuthClient:
    """Build authorization URLs and call the v2.0 token endpoint."""

    def __init__(
        self,
        microsoft_settings: MicrosoftSettings,
        oauth_settings: OAuthSettings,
        *,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._microsoft = microsoft_settings
        self._oauth = oauth_settings
        self._redirect_uri = redirect_uri
        self._timeout = timeout
        self._transport = transport

    @property
    def authorize_url(self) -> str:
        base = self._microsoft.login_base_url.rstrip("/")
        return f"{base}/{self._microsoft.tenant_id}/oauth2/v2.0/authorize"

    @property
    def token_url(self) -> str:
        base = self._microsoft.login_base_url.rstrip("/")
        return f"{base}/{self._microsoft.tenant_id}/oauth2/v2.0/token"

    def build_authorization_url(self, state: str) -> str:
        """Construct the Microsoft consent URL."""
        params = {
            "client_id": self._microsoft.client_id,
            "response_type": "code",
            "redirect_uri": self._redirect_uri,
            "scope": " ".join(self._oauth.scopes),
            "response_mode": "query",
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for an access/refresh token pair."""
        payload = {
            "client_id": self._microsoft.client_id,
            "client_secret": self._microsoft.client_secret,
            "code": code,
            "redirect_uri": self._redirect_uri,
            "grant_type": "authorization_code",
            "scope": " ".join(self._oauth.scopes),
        }
        try:
            grant = await self._post_token(payload, operation="authorization_code exchange")
        except (TransientUpstreamError, UpstreamRejectedError) as exc:
            raise OAuthTokenExchangeError(str(exc)) from exc

        if not grant.refresh_token:
            raise OAuthTokenExchangeError(
                "Token endpoint did not return a refresh token; is offline_access granted?"
            )
        return grant

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Redeem a refresh token.

        Raises ``UpstreamRejectedError`` when the grant is permanently refused
        and ``TransientUpstreamError`` for network failures, throttling or 5xx.
        """
        payload = {
            "client_id": self._microsoft.client_id,
            "client_secret": self._microsoft.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
            "scope": " ".join(self._oauth.scopes),
        }
        return await self._post_token(payload, operation="refresh_token grant")

    async def _post_token(self, payload: Dict[str, str], *, operation: str) -> TokenGrant:
        requested_at = datetime.now(timezone.utc)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self.token_url, data=payload)
        except httpx.HTTPError as exc:
            raise TransientUpstreamError(operation, body=str(exc)) from exc

        if response.status_code != status.HTTP_200_OK:
            error_cls = (
                TransientUpstreamError
                if is_transient_status(response.status_code)
                else UpstreamRejectedError
            )
            raise error_cls(operation, status_code=response.status_code, body=response.text)

        token_payload = response.json()
        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        if not access_token or not expires_in:
            raise TransientUpstreamError(
                operation,
                status_code=response.status_code,
                body="Incomplete token payload returned from Microsoft.",
            )

        # Measured from before the request so the stored expiry never overshoots.
        return TokenGrant(
            access_token=access_token,
            expires_at=requested_at + timedelta(seconds=int(expires_in)),
            refresh_token=token_payload.get("refresh_token"),
            scope=token_payload.get("scope"),
        )


__all__ = [
    "MicrosoftOAuthClient",
    "OAuthStateEncoder",
    "TokenGrant",
]
