"""
Helpers for retrieving and refreshing the delegated Microsoft Graph token.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import timedelta

from sms_assistant.clients.microsoft_auth import MicrosoftOAuthClient, TokenGrant
from sms_assistant.core.errors import (
    ReauthenticationRequiredError,
    TransientUpstreamError,
    UnauthenticatedError,
    UpstreamRejectedError,
)
from sms_assistant.models.records import CredentialRecord, utcnow
from sms_assistant.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class GraphTokenService:
    """Hands out bearer values that are never inside the refresh window.

    Refreshes are single-flight per principal: concurrent callers wait on
    the same lock and re-read the record before deciding to refresh again.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        oauth_client: MicrosoftOAuthClient,
        *,
        refresh_skew: timedelta = timedelta(minutes=5),
    ) -> None:
        self._credentials = credential_store
        self._oauth = oauth_client
        self._skew = refresh_skew
        self._refresh_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get_auth_header(self, principal_id: str) -> str:
        """Return ``Bearer <token>`` for the principal, refreshing when due."""
        access_token = await self.get_access_token(principal_id)
        return f"Bearer {access_token}"

    async def get_access_token(self, principal_id: str) -> str:
        record = self._credentials.get(principal_id)
        if record is None:
            raise UnauthenticatedError(principal_id)
        if not record.needs_refresh(self._skew):
            return record.access_token

        async with self._refresh_locks[principal_id]:
            # Another caller may have refreshed while we waited.
            record = self._credentials.get(principal_id)
            if record is None:
                raise UnauthenticatedError(principal_id)
            if not record.needs_refresh(self._skew):
                return record.access_token
            record = await self._refresh(record)
        return record.access_token

    def store_grant(self, principal_id: str, grant: TokenGrant) -> CredentialRecord:
        """Persist the token pair returned by the authorization code exchange."""
        now = utcnow()
        record = CredentialRecord(
            principal_id=principal_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or "",
            expires_at=grant.expires_at,
            created_at=now,
            updated_at=now,
        )
        self._credentials.put(principal_id, record)
        return record

    def revoke(self, principal_id: str) -> None:
        self._credentials.clear(principal_id)

    async def _refresh(self, record: CredentialRecord) -> CredentialRecord:
        principal_id = record.principal_id
        logger.info("Access token for principal %s near expiry; refreshing.", principal_id)
        try:
            grant = await self._oauth.refresh_token(record.refresh_token)
        except UpstreamRejectedError as exc:
            # The stored record is kept; only a new consent can replace it.
            logger.error(
                "Refresh token rejected for principal %s (status %s).",
                principal_id,
                exc.status_code,
            )
            raise ReauthenticationRequiredError(principal_id, exc.body[:200]) from exc
        except TransientUpstreamError:
            logger.warning(
                "Transient failure refreshing token for principal %s; keeping stored record.",
                principal_id,
            )
            raise

        updated = self._credentials.update_access_token(
            principal_id,
            grant.access_token,
            grant.expires_at,
            refresh_token=grant.refresh_token,
        )
        if updated.needs_refresh(self._skew):
            raise TransientUpstreamError(
                "refresh_token grant",
                body="Issued access token expires inside the refresh window.",
            )
        return updated


__all__ = ["GraphTokenService"]
