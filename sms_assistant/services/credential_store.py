"""
Durable per-principal storage of the delegated Microsoft token pair.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sms_assistant.clients.sqlite_store import RecordStore
from sms_assistant.core.errors import CredentialNotFoundError
from sms_assistant.models.records import CredentialRecord, utcnow
from sms_assistant.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

_SORT_KEY = "oauth#microsoft"


def _partition_key(principal_id: str) -> str:
    return f"principal#{principal_id}"


class CredentialStore:
    """CRUD over one encrypted credential record per principal.

    The store does not serialize refreshes; callers that need at-most-once
    refresh coordinate above it.
    """

    def __init__(self, store: RecordStore, token_cipher: TokenCipherService) -> None:
        self._store = store
        self._cipher = token_cipher

    def get(self, principal_id: str) -> Optional[CredentialRecord]:
        item = self._store.get_item(
            partition_key=_partition_key(principal_id), sort_key=_SORT_KEY
        )
        if not item:
            return None
        return self._deserialize(principal_id, item)

    def put(self, principal_id: str, record: CredentialRecord) -> None:
        if not record.refresh_token:
            raise ValueError("Credential records require a refresh token.")
        stored = record.model_copy(update={"principal_id": principal_id})
        self._store.put_item(self._serialize(stored))
        logger.info(
            "Credentials saved for principal %s, expires at %s",
            principal_id,
            stored.expires_at.isoformat(),
        )

    def update_access_token(
        self,
        principal_id: str,
        access_token: str,
        expires_at: datetime,
        refresh_token: Optional[str] = None,
    ) -> CredentialRecord:
        """Replace the access token and expiry; rotate the refresh token if issued."""
        current = self.get(principal_id)
        if current is None:
            raise CredentialNotFoundError(
                f"No credential record for principal {principal_id!r}."
            )
        updated = CredentialRecord(
            principal_id=principal_id,
            access_token=access_token,
            refresh_token=refresh_token or current.refresh_token,
            expires_at=expires_at,
            created_at=current.created_at,
            updated_at=utcnow(),
        )
        self._store.put_item(self._serialize(updated))
        logger.info(
            "Access token refreshed for principal %s%s",
            principal_id,
            " (refresh token rotated)" if refresh_token else "",
        )
        return updated

    def clear(self, principal_id: str) -> None:
        self._store.delete_item(
            partition_key=_partition_key(principal_id), sort_key=_SORT_KEY
        )
        logger.info("Credentials cleared for principal %s", principal_id)

    def _serialize(self, record: CredentialRecord) -> Dict[str, Any]:
        return {
            "pk": _partition_key(record.principal_id),
            "sk": _SORT_KEY,
            "principal_id": record.principal_id,
            "provider": "microsoft",
            "access_token_encrypted": self._cipher.encrypt(record.access_token),
            "refresh_token_encrypted": self._cipher.encrypt(record.refresh_token),
            "expires_at": record.expires_at.isoformat(),
            "created_at": record.created_at.isoformat(),
            "updated_at": record.updated_at.isoformat(),
        }

    def _deserialize(self, principal_id: str, item: Dict[str, Any]) -> CredentialRecord:
        return CredentialRecord(
            principal_id=item.get("principal_id", principal_id),
            access_token=self._cipher.decrypt(item["access_token_encrypted"]),
            refresh_token=self._cipher.decrypt(item["refresh_token_encrypted"]),
            expires_at=datetime.fromisoformat(item["expires_at"]),
            created_at=datetime.fromisoformat(item["created_at"]),
            updated_at=datetime.fromisoformat(item["updated_at"]),
        )


__all__ = ["CredentialStore"]
