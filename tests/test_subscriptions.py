try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from sms_assistant.clients.graph import GraphClient, parse_graph_datetime
from sms_assistant.clients.sqlite_store import SQLiteStore
from sms_assistant.models.records import SubscriptionRecord, utcnow
from sms_assistant.services.subscription_store import SubscriptionStore
from sms_assistant.services.subscriptions import SubscriptionManager
from sms_assistant.utils.http import RetryConfig

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class StubTokenService:
    async def get_auth_header(self, principal_id: str) -> str:
        return "Bearer token"


def _record(subscription_id: str, expires_at: datetime) -> SubscriptionRecord:
    return SubscriptionRecord(
        subscription_id=subscription_id,
        resource="me/mailFolders('Inbox')/messages",
        expires_at=expires_at,
    )


def test_due_for_renewal_window_boundaries(memory_store) -> None:
    store = SubscriptionStore(memory_store)
    store.save(_record("expired", NOW - timedelta(minutes=5)))
    store.save(_record("soon", NOW + timedelta(minutes=30)))
    store.save(_record("edge", NOW + timedelta(hours=1)))
    store.save(_record("later", NOW + timedelta(days=2)))

    due = {record.subscription_id for record in store.due_for_renewal(timedelta(hours=1), now=NOW)}
    assert due == {"expired", "soon"}

    zero = {record.subscription_id for record in store.due_for_renewal(timedelta(0), now=NOW)}
    assert zero == {"expired"}


def test_update_expiry_on_unknown_subscription_returns_none(memory_store) -> None:
    assert SubscriptionStore(memory_store).update_expiry("missing", NOW) is None


def test_sqlite_prefix_listing_escapes_wildcards(tmp_path: Path) -> None:
    sqlite = SQLiteStore(str(tmp_path / "records.db"))
    sqlite.put_item({"pk": "subscriptions", "sk": "subscription#a", "value": 1})
    sqlite.put_item({"pk": "subscriptions", "sk": "subscriptionXb", "value": 2})
    sqlite.put_item({"pk": "other", "sk": "subscription#c", "value": 3})

    items = sqlite.list_items_with_prefix(
        partition_key="subscriptions", sort_key_prefix="subscription#"
    )
    assert [item["value"] for item in items] == [1]

    sqlite.delete_item(partition_key="subscriptions", sort_key="subscription#a")
    assert sqlite.get_item(partition_key="subscriptions", sort_key="subscription#a") is None


def _manager(memory_store, handler) -> tuple[SubscriptionManager, SubscriptionStore]:
    store = SubscriptionStore(memory_store)
    graph = GraphClient(
        StubTokenService(),
        store,
        base_url="https://graph.example.com/v1.0",
        read_retry=RetryConfig(attempts=1, backoff_seconds=0),
        transport=httpx.MockTransport(handler),
    )
    return SubscriptionManager(graph, store), store


@pytest.mark.asyncio
async def test_renewing_expired_subscription_stores_confirmed_expiry(memory_store) -> None:
    confirmed = "2025-03-04T09:30:00.0000000Z"
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requested.append(body["expirationDateTime"])
        return httpx.Response(
            200, json={"id": "sub-1", "expirationDateTime": confirmed}
        )

    manager, store = _manager(memory_store, handler)
    store.save(_record("sub-1", utcnow() - timedelta(hours=3)))

    renewed = await manager.renew("sub-1")

    assert renewed.expires_at == parse_graph_datetime(confirmed)
    assert store.get("sub-1").expires_at == parse_graph_datetime(confirmed)
    assert requested and parse_graph_datetime(requested[0]) > utcnow()


@pytest.mark.asyncio
async def test_renew_all_due_isolates_failures(memory_store) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/sub-gone"):
            return httpx.Response(404, json={"error": {"code": "ResourceNotFound"}})
        return httpx.Response(
            200,
            json={
                "id": "sub-ok",
                "expirationDateTime": (utcnow() + timedelta(days=2)).isoformat(),
            },
        )

    manager, store = _manager(memory_store, handler)
    store.save(_record("sub-gone", utcnow() + timedelta(minutes=10)))
    store.save(_record("sub-ok", utcnow() + timedelta(minutes=10)))
    store.save(_record("sub-fresh", utcnow() + timedelta(days=2)))

    report = await manager.renew_all_due(timedelta(hours=1))

    assert report.renewed_ids == ["sub-ok"]
    assert list(report.failed) == ["sub-gone"]
    assert store.get("sub-ok").remaining() > timedelta(days=1)
    assert store.get("sub-gone").remaining() < timedelta(hours=1)


@pytest.mark.asyncio
async def test_delete_removes_local_record(memory_store) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        return httpx.Response(204)

    manager, store = _manager(memory_store, handler)
    store.save(_record("sub-1", utcnow() + timedelta(days=1)))

    await manager.delete("sub-1")

    assert store.get("sub-1") is None
    assert manager.list_local() == []
