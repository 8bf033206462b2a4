"""
Lifecycle management for Graph push-notification subscriptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional

from sms_assistant.clients.graph import GraphClient
from sms_assistant.core.errors import SmsAssistantError
from sms_assistant.models.records import SubscriptionRecord
from sms_assistant.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RenewalReport:
    """Outcome of one pass over the subscriptions due for renewal."""

    renewed: list[SubscriptionRecord] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def renewed_ids(self) -> list[str]:
        return [record.subscription_id for record in self.renewed]


class SubscriptionManager:
    """Create, renew and retire subscriptions; expiry is derived, never stored.

    ``renew_due`` may return the same record to overlapping callers; renewal
    is idempotent upstream so at-least-once is acceptable.
    """

    def __init__(
        self,
        graph_client: GraphClient,
        store: SubscriptionStore,
        *,
        default_ttl: timedelta = timedelta(minutes=4200),
        default_window: timedelta = timedelta(hours=1),
    ) -> None:
        self._graph = graph_client
        self._store = store
        self._default_ttl = default_ttl
        self._default_window = default_window

    async def create(
        self,
        resource: str,
        notification_url: str,
        change_type: str = "created",
        ttl: Optional[timedelta] = None,
        client_state: str = "sms-assistant",
        principal_id: Optional[str] = None,
    ) -> SubscriptionRecord:
        record = await self._graph.create_subscription(
            resource=resource,
            notification_url=notification_url,
            change_type=change_type,
            ttl=ttl or self._default_ttl,
            client_state=client_state,
            principal_id=principal_id,
        )
        logger.info("Subscription %s active until %s", record.subscription_id, record.expires_at)
        return record

    def renew_due(self, window: Optional[timedelta] = None) -> list[SubscriptionRecord]:
        return self._store.due_for_renewal(
            window if window is not None else self._default_window
        )

    async def renew(
        self, subscription_id: str, ttl: Optional[timedelta] = None
    ) -> SubscriptionRecord:
        existing = self._store.get(subscription_id)
        return await self._graph.renew_subscription(
            subscription_id,
            ttl=ttl or self._default_ttl,
            principal_id=existing.principal_id if existing else None,
        )

    async def renew_all_due(
        self,
        window: Optional[timedelta] = None,
        ttl: Optional[timedelta] = None,
    ) -> RenewalReport:
        """Renew every due subscription, isolating failures per record."""
        report = RenewalReport()
        for record in self.renew_due(window):
            try:
                renewed = await self.renew(record.subscription_id, ttl)
            except SmsAssistantError as exc:
                logger.error(
                    "Failed to renew subscription %s: %s", record.subscription_id, exc
                )
                report.failed[record.subscription_id] = str(exc)
                continue
            report.renewed.append(renewed)
        logger.info(
            "Renewal pass complete: %d renewed, %d failed",
            len(report.renewed),
            len(report.failed),
        )
        return report

    async def delete(self, subscription_id: str) -> None:
        existing = self._store.get(subscription_id)
        await self._graph.delete_subscription(
            subscription_id,
            principal_id=existing.principal_id if existing else None,
        )

    async def list_remote(self) -> list[Dict[str, Any]]:
        return await self._graph.list_subscriptions()

    def list_local(self) -> list[SubscriptionRecord]:
        return self._store.list_all()


__all__ = ["RenewalReport", "SubscriptionManager"]
