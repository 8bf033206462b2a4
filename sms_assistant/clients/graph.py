"""Microsoft Graph client for calendar, mail, contacts and push subscriptions."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from sms_assistant.core.errors import (
    ReauthenticationRequiredError,
    TransientUpstreamError,
    UpstreamRejectedError,
)
from sms_assistant.models.records import SubscriptionRecord, utcnow
from sms_assistant.utils.http import NO_RETRY, RetryConfig, send_with_retry

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from sms_assistant.services.graph_tokens import GraphTokenService
    from sms_assistant.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_graph_datetime(value: str) -> datetime:
    """Parse Graph timestamps, which carry seven fractional digits and a ``Z``."""
    cleaned = _FRACTION_RE.sub(r"\1", value.strip())
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    parsed = datetime.fromisoformat(cleaned)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_graph_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _recipients(addresses: Optional[list[str]]) -> list[Dict[str, Any]]:
    return [{"emailAddress": {"address": address}} for address in addresses or []]


class GraphClient:
    """Bearer-authenticated Graph calls on behalf of a principal.

    Every call obtains a fresh header first; non-2xx responses surface as
    ``TransientUpstreamError`` or ``UpstreamRejectedError``. Idempotent reads
    are retried on transient failures, writes never are.
    """

    def __init__(
        self,
        token_service: "GraphTokenService",
        subscription_store: "SubscriptionStore",
        *,
        base_url: str = "https://graph.microsoft.com/v1.0",
        default_principal_id: str = "default",
        timeout: float = 10.0,
        read_retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = token_service
        self._subscriptions = subscription_store
        self._base_url = base_url.rstrip("/")
        self._default_principal = default_principal_id
        self._timeout = timeout
        self._read_retry = read_retry or RetryConfig(attempts=2, backoff_seconds=0.5)
        self._transport = transport

    async def list_upcoming_events(
        self, *, days_ahead: int = 7, principal_id: str | None = None
    ) -> list[Dict[str, Any]]:
        now = utcnow()
        params = {
            "startDateTime": _format_graph_datetime(now),
            "endDateTime": _format_graph_datetime(now + timedelta(days=days_ahead)),
            "$orderby": "start/dateTime",
            "$select": "subject,start,end,location,organizer",
            "$top": "50",
        }
        data = await self._request(
            "GET",
            "/me/calendarview",
            principal_id,
            operation="list calendar events",
            params=params,
            headers={"Prefer": 'outlook.timezone="UTC"'},
        )
        events = data.get("value", [])
        logger.info("Retrieved %d calendar events", len(events))
        return events

    async def create_event(
        self,
        *,
        title: str,
        start_time: str,
        end_time: str,
        description: str | None = None,
        attendees: list[str] | None = None,
        time_zone: str = "UTC",
        principal_id: str | None = None,
    ) -> Dict[str, Any]:
        body = {
            "subject": title,
            "start": {"dateTime": start_time, "timeZone": time_zone},
            "end": {"dateTime": end_time, "timeZone": time_zone},
            "body": {"contentType": "HTML", "content": description or ""},
            "attendees": [
                {"emailAddress": {"address": email}, "type": "required"}
                for email in attendees or []
            ],
        }
        data = await self._request(
            "POST", "/me/events", principal_id, operation="create event", json=body
        )
        logger.info("Calendar event created: %s", data.get("id"))
        return data

    async def send_mail(
        self,
        *,
        to: list[str],
        subject: str,
        body: str,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
        principal_id: str | None = None,
    ) -> None:
        message = {
            "message": {
                "subject": subject,
                "body": {"contentType": "HTML", "content": body},
                "toRecipients": _recipients(to),
                "ccRecipients": _recipients(cc),
                "bccRecipients": _recipients(bcc),
            }
        }
        await self._request(
            "POST", "/me/sendMail", principal_id, operation="send mail", json=message
        )
        logger.info("Email sent to %d recipient(s)", len(to))

    async def list_contacts(
        self, *, limit: int = 10, principal_id: str | None = None
    ) -> list[Dict[str, Any]]:
        data = await self._request(
            "GET",
            "/me/contacts",
            principal_id,
            operation="list contacts",
            params={"$top": str(limit)},
        )
        contacts = data.get("value", [])
        logger.info("Retrieved %d contacts", len(contacts))
        return contacts

    async def list_recent_messages(
        self, *, limit: int = 5, principal_id: str | None = None
    ) -> list[Dict[str, Any]]:
        data = await self._request(
            "GET",
            "/me/mailFolders/Inbox/messages",
            principal_id,
            operation="list inbox messages",
            params={
                "$top": str(limit),
                "$select": "subject,from,receivedDateTime,isRead",
                "$orderby": "receivedDateTime desc",
            },
        )
        return data.get("value", [])

    async def create_subscription(
        self,
        *,
        resource: str,
        notification_url: str,
        change_type: str = "created",
        ttl: timedelta = timedelta(minutes=4200),
        client_state: str = "sms-assistant",
        principal_id: str | None = None,
    ) -> SubscriptionRecord:
        requested_expiry = utcnow() + ttl
        payload = {
            "changeType": change_type,
            "notificationUrl": notification_url,
            "resource": resource,
            "expirationDateTime": _format_graph_datetime(requested_expiry),
            "clientState": client_state,
        }
        data = await self._request(
            "POST",
            "/subscriptions",
            principal_id,
            operation="create subscription",
            json=payload,
        )
        record = SubscriptionRecord(
            subscription_id=data["id"],
            resource=data.get("resource", resource),
            expires_at=self._confirmed_expiry(data, "create subscription"),
            change_type=data.get("changeType", change_type),
            notification_url=data.get("notificationUrl", notification_url),
            principal_id=principal_id or self._default_principal,
        )
        self._subscriptions.save(record)
        return record

    async def renew_subscription(
        self,
        subscription_id: str,
        *,
        ttl: timedelta = timedelta(minutes=4200),
        principal_id: str | None = None,
    ) -> SubscriptionRecord:
        requested_expiry = utcnow() + ttl
        data = await self._request(
            "PATCH",
            f"/subscriptions/{subscription_id}",
            principal_id,
            operation="renew subscription",
            json={"expirationDateTime": _format_graph_datetime(requested_expiry)},
        )
        confirmed = self._confirmed_expiry(data, "renew subscription")
        record = self._subscriptions.update_expiry(subscription_id, confirmed)
        if record is None:
            # Renewed upstream but unknown locally; start tracking it.
            record = SubscriptionRecord(
                subscription_id=subscription_id,
                resource=data.get("resource", ""),
                expires_at=confirmed,
                change_type=data.get("changeType"),
                notification_url=data.get("notificationUrl"),
                principal_id=principal_id or self._default_principal,
            )
            self._subscriptions.save(record)
        return record

    async def list_subscriptions(
        self, *, principal_id: str | None = None
    ) -> list[Dict[str, Any]]:
        data = await self._request(
            "GET", "/subscriptions", principal_id, operation="list subscriptions"
        )
        subscriptions = data.get("value", [])
        logger.info("Retrieved %d subscriptions", len(subscriptions))
        return subscriptions

    async def delete_subscription(
        self, subscription_id: str, *, principal_id: str | None = None
    ) -> None:
        await self._request(
            "DELETE",
            f"/subscriptions/{subscription_id}",
            principal_id,
            operation="delete subscription",
        )
        self._subscriptions.delete(subscription_id)

    @staticmethod
    def _confirmed_expiry(data: Dict[str, Any], operation: str) -> datetime:
        raw = data.get("expirationDateTime")
        if not raw:
            raise TransientUpstreamError(
                operation, body="Response did not include expirationDateTime."
            )
        return parse_graph_datetime(raw)

    async def _request(
        self,
        method: str,
        path: str,
        principal_id: str | None,
        *,
        operation: str,
        params: Dict[str, str] | None = None,
        json: Any = None,
        headers: Dict[str, str] | None = None,
    ) -> Dict[str, Any]:
        principal = principal_id or self._default_principal
        auth_header = await self._tokens.get_auth_header(principal)
        request_headers = {"Authorization": auth_header, **(headers or {})}
        retry = self._read_retry if method == "GET" else NO_RETRY

        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await send_with_retry(
                    client.request,
                    method,
                    f"{self._base_url}{path}",
                    operation=operation,
                    retry_config=retry,
                    params=params,
                    json=json,
                    headers=request_headers,
                )
            except UpstreamRejectedError as exc:
                if exc.status_code == 401:
                    logger.warning("Graph rejected the access token for %s", principal)
                    raise ReauthenticationRequiredError(principal, exc.body[:200]) from exc
                raise

        if not response.content:
            return {}
        return response.json()


__all__ = ["GraphClient", "parse_graph_datetime"]
