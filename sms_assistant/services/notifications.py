"""
Relay Graph change notifications to the owner's phone.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any, Iterable, Protocol

from pydantic import ValidationError

from sms_assistant.core.logging import mask_phone
from sms_assistant.schemas.webhooks import GraphNotification

logger = logging.getLogger(__name__)

SUBJECT_PREVIEW_LENGTH = 100


class SmsSender(Protocol):
    async def send_sms(self, *, to: str, body: str) -> str: ...


def format_new_mail_alert(notification: GraphNotification) -> str:
    subject = notification.resource_data.get("subject") or "New Email"
    return f"New email: {subject[:SUBJECT_PREVIEW_LENGTH]}"


class MailNotificationService:
    """Check each notification's client state and text the owner about new mail."""

    def __init__(
        self,
        sms_sender: SmsSender,
        *,
        client_state: str,
        destination_number: str | None,
    ) -> None:
        self._sender = sms_sender
        self._client_state = client_state.encode("utf-8")
        self._destination = destination_number

    def client_state_matches(self, candidate: str | None) -> bool:
        if not candidate:
            return False
        return hmac.compare_digest(self._client_state, candidate.encode("utf-8"))

    async def process_batch(self, items: Iterable[Any]) -> int:
        """Handle every item independently; returns how many alerts were sent."""
        sent = 0
        for index, item in enumerate(items):
            try:
                if await self.process_item(item):
                    sent += 1
            except Exception:  # noqa: BLE001
                logger.exception("Error processing notification %d", index)
        return sent

    async def process_item(self, item: Any) -> bool:
        try:
            notification = GraphNotification.model_validate(item)
        except ValidationError as exc:
            logger.warning("Skipping malformed notification: %s", exc)
            return False

        if not self.client_state_matches(notification.client_state):
            logger.warning(
                "Invalid client state for subscription %s", notification.subscription_id
            )
            return False

        logger.info(
            "Notification received: %s on %s",
            notification.change_type,
            notification.resource,
        )
        if not notification.is_new_message:
            return False
        if not self._destination:
            logger.warning("USER_PHONE_NUMBER not configured; dropping new mail alert")
            return False

        await self._sender.send_sms(
            to=self._destination, body=format_new_mail_alert(notification)
        )
        logger.info("New mail alert sent to %s", mask_phone(self._destination))
        return True


__all__ = ["MailNotificationService", "format_new_mail_alert"]
