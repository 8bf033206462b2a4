try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi import HTTPException

from sms_assistant.clients.microsoft_auth import (
    MicrosoftOAuthClient,
    OAuthStateEncoder,
    TokenGrant,
)
from sms_assistant.core.config import MicrosoftSettings, OAuthSettings
from sms_assistant.core.errors import (
    OAuthTokenExchangeError,
    TransientUpstreamError,
    UpstreamRejectedError,
)
from sms_assistant.main import app
from sms_assistant.models.records import CredentialRecord

REDIRECT_URI = "https://assistant.example.com/api/auth/microsoft/callback"


def _oauth_client(handler) -> MicrosoftOAuthClient:
    return MicrosoftOAuthClient(
        MicrosoftSettings(
            MICROSOFT_CLIENT_ID="client-id",
            MICROSOFT_CLIENT_SECRET="client-secret",
            MICROSOFT_TENANT_ID="contoso",
        ),
        OAuthSettings(),
        redirect_uri=REDIRECT_URI,
        transport=httpx.MockTransport(handler),
    )


def _unused(request: httpx.Request) -> httpx.Response:  # pragma: no cover
    raise AssertionError("no HTTP call expected")


def test_build_authorization_url_targets_tenant_endpoint() -> None:
    url = _oauth_client(_unused).build_authorization_url(state="opaque")

    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
        "https://login.microsoftonline.com/contoso/oauth2/v2.0/authorize"
    )
    params = parse_qs(parsed.query)
    assert params["client_id"] == ["client-id"]
    assert params["response_type"] == ["code"]
    assert params["redirect_uri"] == [REDIRECT_URI]
    assert params["response_mode"] == ["query"]
    assert params["state"] == ["opaque"]
    assert "offline_access" in params["scope"][0].split(" ")


@pytest.mark.asyncio
async def test_exchange_authorization_code_returns_grant() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
        return httpx.Response(
            200,
            json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600},
        )

    before = datetime.now(timezone.utc)
    grant = await _oauth_client(handler).exchange_authorization_code("the-code")

    assert grant.access_token == "at"
    assert grant.refresh_token == "rt"
    assert grant.expires_at <= datetime.now(timezone.utc) + timedelta(seconds=3600)
    assert grant.expires_at >= before + timedelta(seconds=3599)
    assert seen[0]["grant_type"] == "authorization_code"
    assert seen[0]["code"] == "the-code"
    assert seen[0]["redirect_uri"] == REDIRECT_URI


@pytest.mark.asyncio
async def test_exchange_without_refresh_token_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "at", "expires_in": 3600})

    with pytest.raises(OAuthTokenExchangeError):
        await _oauth_client(handler).exchange_authorization_code("code")


@pytest.mark.asyncio
async def test_exchange_maps_upstream_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    with pytest.raises(OAuthTokenExchangeError):
        await _oauth_client(handler).exchange_authorization_code("code")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "expected"),
    [(400, UpstreamRejectedError), (401, UpstreamRejectedError), (503, TransientUpstreamError)],
)
async def test_refresh_token_classifies_failures(status_code, expected) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"error": "nope"})

    with pytest.raises(expected):
        await _oauth_client(handler).refresh_token("rt")


@pytest.mark.asyncio
async def test_refresh_token_network_error_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(TransientUpstreamError):
        await _oauth_client(handler).refresh_token("rt")


def test_state_encoder_rejects_tampering_and_expiry() -> None:
    encoder = OAuthStateEncoder("state-secret")
    token = encoder.encode({"principal_id": "default"})
    assert encoder.decode(token, max_age_seconds=60)["principal_id"] == "default"

    with pytest.raises(HTTPException):
        OAuthStateEncoder("other-secret").decode(token)

    stale = encoder.encode(
        {
            "principal_id": "default",
            "issued_at": (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat(),
        }
    )
    with pytest.raises(HTTPException):
        encoder.decode(stale, max_age_seconds=60)


class DummyOAuthClient:
    def __init__(self) -> None:
        self.states: list[str] = []
        self.codes: list[str] = []

    def build_authorization_url(self, state: str) -> str:
        self.states.append(state)
        return f"https://login.example.com/authorize?state={state}"

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        self.codes.append(code)
        return TokenGrant(
            access_token="access-token",
            refresh_token="refresh-token",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )


class RecordingTokenService:
    def __init__(self) -> None:
        self.grants: list[tuple[str, TokenGrant]] = []
        self.revoked: list[str] = []

    def store_grant(self, principal_id: str, grant: TokenGrant) -> CredentialRecord:
        self.grants.append((principal_id, grant))
        return CredentialRecord(
            principal_id=principal_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at,
        )

    def revoke(self, principal_id: str) -> None:
        self.revoked.append(principal_id)


@pytest.fixture()
def oauth_overrides():
    from sms_assistant import dependencies
    from sms_assistant.core.config import get_settings

    dummy_client = DummyOAuthClient()
    token_service = RecordingTokenService()
    base_settings = copy.deepcopy(get_settings())
    base_settings.security.admin_api_key = None

    app.dependency_overrides.update(
        {
            dependencies.get_oauth_client: lambda: dummy_client,
            dependencies.get_oauth_state_encoder: lambda: OAuthStateEncoder("test"),
            dependencies.get_token_service: lambda: token_service,
            dependencies.get_app_settings: lambda: base_settings,
        }
    )

    yield dummy_client, token_service, base_settings

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


@pytest.mark.anyio
async def test_authorize_redirects_by_default(oauth_overrides):
    async with _client() as client:
        response = await client.get("/api/auth/microsoft/authorize")

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://login.example.com/authorize")


@pytest.mark.anyio
async def test_authorize_returns_json_when_redirect_disabled(oauth_overrides):
    dummy_client, _, _ = oauth_overrides
    async with _client() as client:
        response = await client.get(
            "/api/auth/microsoft/authorize", params={"redirect": "false"}
        )

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == dummy_client.states[-1]
    assert data["authorization_url"].startswith("https://")


@pytest.mark.anyio
async def test_callback_stores_grant_for_state_principal(oauth_overrides):
    dummy_client, token_service, _ = oauth_overrides

    async with _client() as client:
        await client.get(
            "/api/auth/microsoft/authorize",
            params={"principal_id": "owner", "redirect": "false"},
        )
        response = await client.get(
            "/api/auth/microsoft/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
        )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "connected"
    assert data["principal_id"] == "owner"
    assert dummy_client.codes == ["oauth-code"]
    assert token_service.grants[0][0] == "owner"


@pytest.mark.anyio
async def test_callback_reports_provider_error(oauth_overrides):
    _, token_service, _ = oauth_overrides
    async with _client() as client:
        response = await client.get(
            "/api/auth/microsoft/callback",
            params={"error": "access_denied", "error_description": "User cancelled"},
        )

    assert response.status_code == 400
    assert "User cancelled" in response.json()["detail"]
    assert token_service.grants == []


@pytest.mark.anyio
async def test_callback_requires_code(oauth_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/microsoft/callback", params={"state": "whatever"}
        )

    assert response.status_code == 400


@pytest.mark.anyio
async def test_callback_rejects_forged_state(oauth_overrides):
    dummy_client, token_service, _ = oauth_overrides
    forged = OAuthStateEncoder("attacker").encode({"principal_id": "owner"})

    async with _client() as client:
        response = await client.get(
            "/api/auth/microsoft/callback", params={"state": forged, "code": "c"}
        )

    assert response.status_code == 400
    assert dummy_client.codes == []
    assert token_service.grants == []


@pytest.mark.anyio
async def test_disconnect_clears_credentials(oauth_overrides):
    _, token_service, _ = oauth_overrides
    async with _client() as client:
        response = await client.delete("/api/auth/microsoft")

    assert response.status_code == 200
    assert response.json()["status"] == "disconnected"
    assert token_service.revoked == ["default"]
