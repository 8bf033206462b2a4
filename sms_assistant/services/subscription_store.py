"""Persistence of Graph push subscriptions for renewal tracking."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sms_assistant.clients.sqlite_store import RecordStore
from sms_assistant.models.records import SubscriptionRecord, utcnow

logger = logging.getLogger(__name__)

_PARTITION_KEY = "subscriptions"
_SORT_PREFIX = "subscription#"


class SubscriptionStore:
    """Stores one record per subscription; expiry is only ever evaluated lazily."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def save(self, record: SubscriptionRecord) -> None:
        self._store.put_item(_serialize(record))
        logger.info(
            "Subscription saved: %s for %s, expires at %s",
            record.subscription_id,
            record.resource,
            record.expires_at.isoformat(),
        )

    def get(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        item = self._store.get_item(
            partition_key=_PARTITION_KEY, sort_key=f"{_SORT_PREFIX}{subscription_id}"
        )
        return _deserialize(item) if item else None

    def list_all(self) -> list[SubscriptionRecord]:
        items = self._store.list_items_with_prefix(
            partition_key=_PARTITION_KEY, sort_key_prefix=_SORT_PREFIX
        )
        return [_deserialize(item) for item in items]

    def update_expiry(self, subscription_id: str, expires_at: datetime) -> Optional[SubscriptionRecord]:
        record = self.get(subscription_id)
        if record is None:
            return None
        updated = SubscriptionRecord(
            **{**record.model_dump(), "expires_at": expires_at}
        )
        self._store.put_item(_serialize(updated))
        logger.info(
            "Subscription renewed: %s, new expiry %s",
            subscription_id,
            updated.expires_at.isoformat(),
        )
        return updated

    def delete(self, subscription_id: str) -> None:
        self._store.delete_item(
            partition_key=_PARTITION_KEY, sort_key=f"{_SORT_PREFIX}{subscription_id}"
        )
        logger.info("Subscription deleted: %s", subscription_id)

    def due_for_renewal(
        self, window: timedelta, now: Optional[datetime] = None
    ) -> list[SubscriptionRecord]:
        """Records whose remaining lifetime is shorter than ``window``.

        Already-expired records are included; a zero window never selects a
        record that still expires in the future.
        """
        current = now or utcnow()
        return [
            record for record in self.list_all() if record.remaining(current) < window
        ]


def _serialize(record: SubscriptionRecord) -> Dict[str, Any]:
    return {
        "pk": _PARTITION_KEY,
        "sk": f"{_SORT_PREFIX}{record.subscription_id}",
        "subscription_id": record.subscription_id,
        "resource": record.resource,
        "expires_at": record.expires_at.isoformat(),
        "created_at": record.created_at.isoformat(),
        "change_type": record.change_type,
        "notification_url": record.notification_url,
        "principal_id": record.principal_id,
    }


def _deserialize(item: Dict[str, Any]) -> SubscriptionRecord:
    return SubscriptionRecord(
        subscription_id=item["subscription_id"],
        resource=item["resource"],
        expires_at=datetime.fromisoformat(item["expires_at"]),
        created_at=datetime.fromisoformat(item["created_at"]),
        change_type=item.get("change_type"),
        notification_url=item.get("notification_url"),
        principal_id=item.get("principal_id") or "default",
    )


__all__ = ["SubscriptionStore"]
