try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from sms_assistant.clients.graph import GraphClient, parse_graph_datetime
from sms_assistant.core.errors import (
    ReauthenticationRequiredError,
    TransientUpstreamError,
    UnauthenticatedError,
    UpstreamRejectedError,
)
from sms_assistant.services.subscription_store import SubscriptionStore
from sms_assistant.utils.http import RetryConfig

BASE_URL = "https://graph.example.com/v1.0"


class StubTokenService:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.principals: list[str] = []
        self.error = error

    async def get_auth_header(self, principal_id: str) -> str:
        self.principals.append(principal_id)
        if self.error is not None:
            raise self.error
        return f"Bearer token-{principal_id}"


class Recorder:
    """Replays queued responses and keeps every request it saw."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _graph(recorder: Recorder, memory_store, token_service=None) -> GraphClient:
    return GraphClient(
        token_service or StubTokenService(),
        SubscriptionStore(memory_store),
        base_url=BASE_URL,
        read_retry=RetryConfig(attempts=2, backoff_seconds=0),
        transport=httpx.MockTransport(recorder),
    )


def test_parse_graph_datetime_handles_seven_digit_fractions() -> None:
    parsed = parse_graph_datetime("2025-01-06T09:00:00.1234567Z")
    assert parsed == datetime(2025, 1, 6, 9, 0, 0, 123456, tzinfo=timezone.utc)
    naive = parse_graph_datetime("2025-01-06T09:00:00.0000000")
    assert naive.tzinfo == timezone.utc


@pytest.mark.asyncio
async def test_list_upcoming_events_sends_bearer_and_utc_preference(memory_store) -> None:
    recorder = Recorder(httpx.Response(200, json={"value": [{"subject": "Standup"}]}))
    events = await _graph(recorder, memory_store).list_upcoming_events(days_ahead=1)

    assert events == [{"subject": "Standup"}]
    request = recorder.requests[0]
    assert request.url.path == "/v1.0/me/calendarview"
    assert request.headers["Authorization"] == "Bearer token-default"
    assert request.headers["Prefer"] == 'outlook.timezone="UTC"'
    start = parse_graph_datetime(request.url.params["startDateTime"])
    end = parse_graph_datetime(request.url.params["endDateTime"])
    assert end - start == timedelta(days=1)


@pytest.mark.asyncio
async def test_reads_retry_once_on_transient_status(memory_store) -> None:
    recorder = Recorder(
        httpx.Response(503, text="busy"),
        httpx.Response(200, json={"value": [{"displayName": "Ada"}]}),
    )
    contacts = await _graph(recorder, memory_store).list_contacts(limit=3)

    assert contacts == [{"displayName": "Ada"}]
    assert len(recorder.requests) == 2
    assert recorder.requests[0].url.params["$top"] == "3"


@pytest.mark.asyncio
async def test_writes_are_never_retried(memory_store) -> None:
    recorder = Recorder(httpx.Response(503, text="busy"), httpx.Response(202))

    with pytest.raises(TransientUpstreamError):
        await _graph(recorder, memory_store).send_mail(
            to=["ada@example.com"], subject="Hi", body="Hello"
        )
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_send_mail_builds_recipient_lists(memory_store) -> None:
    recorder = Recorder(httpx.Response(202))
    await _graph(recorder, memory_store).send_mail(
        to=["ada@example.com"], subject="Hi", body="Hello", cc=["bob@example.com"]
    )

    payload = json.loads(recorder.requests[0].content)
    message = payload["message"]
    assert message["toRecipients"] == [{"emailAddress": {"address": "ada@example.com"}}]
    assert message["ccRecipients"] == [{"emailAddress": {"address": "bob@example.com"}}]
    assert message["bccRecipients"] == []


@pytest.mark.asyncio
async def test_create_event_posts_subject_and_attendees(memory_store) -> None:
    recorder = Recorder(httpx.Response(201, json={"id": "evt-1"}))
    created = await _graph(recorder, memory_store).create_event(
        title="Lunch",
        start_time="2025-01-06T12:00:00",
        end_time="2025-01-06T13:00:00",
        attendees=["ada@example.com"],
    )

    assert created["id"] == "evt-1"
    payload = json.loads(recorder.requests[0].content)
    assert payload["subject"] == "Lunch"
    assert payload["start"] == {"dateTime": "2025-01-06T12:00:00", "timeZone": "UTC"}
    assert payload["attendees"][0]["emailAddress"]["address"] == "ada@example.com"


@pytest.mark.asyncio
async def test_client_errors_are_rejected_not_retried(memory_store) -> None:
    recorder = Recorder(httpx.Response(403, json={"error": {"code": "Forbidden"}}))

    with pytest.raises(UpstreamRejectedError) as excinfo:
        await _graph(recorder, memory_store).list_recent_messages()
    assert excinfo.value.status_code == 403
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_revoked_access_token_requires_reauthentication(memory_store) -> None:
    recorder = Recorder(
        httpx.Response(401, json={"error": {"code": "InvalidAuthenticationToken"}})
    )

    with pytest.raises(ReauthenticationRequiredError) as excinfo:
        await _graph(recorder, memory_store).list_contacts(principal_id="owner")
    assert excinfo.value.principal_id == "owner"
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_missing_credentials_short_circuit_before_http(memory_store) -> None:
    recorder = Recorder()
    tokens = StubTokenService(error=UnauthenticatedError("default"))

    with pytest.raises(UnauthenticatedError):
        await _graph(recorder, memory_store, tokens).list_contacts()
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_create_subscription_stores_confirmed_expiry(memory_store) -> None:
    confirmed = "2025-03-01T10:00:00.0000000Z"
    recorder = Recorder(
        httpx.Response(
            201,
            json={
                "id": "sub-1",
                "resource": "me/mailFolders('Inbox')/messages",
                "changeType": "created",
                "notificationUrl": "https://assistant.example.com/api/webhooks/microsoft",
                "expirationDateTime": confirmed,
            },
        )
    )
    graph = _graph(recorder, memory_store)

    record = await graph.create_subscription(
        resource="me/mailFolders('Inbox')/messages",
        notification_url="https://assistant.example.com/api/webhooks/microsoft",
        client_state="sms-assistant",
    )

    assert record.expires_at == parse_graph_datetime(confirmed)
    payload = json.loads(recorder.requests[0].content)
    assert payload["clientState"] == "sms-assistant"
    assert payload["changeType"] == "created"
    stored = SubscriptionStore(memory_store).get("sub-1")
    assert stored is not None
    assert stored.expires_at == record.expires_at


@pytest.mark.asyncio
async def test_subscription_response_without_expiry_is_transient(memory_store) -> None:
    recorder = Recorder(httpx.Response(201, json={"id": "sub-2"}))

    with pytest.raises(TransientUpstreamError):
        await _graph(recorder, memory_store).create_subscription(
            resource="me/messages", notification_url="https://example.com/hook"
        )
    assert SubscriptionStore(memory_store).list_all() == []
