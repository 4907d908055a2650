try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from autostack.clients.oauth import OAuthStateEncoder, OAuthTokenExchangeError, TokenGrant
from autostack.clients.providers import get_provider
from autostack.clients.token_store import InMemoryTokenStore
from autostack.main import broker_app as app
from autostack.models.token import TokenKey, TokenRecord, now_ms
from autostack.services.oauth_flow import OAuthFlowController
from autostack.services.token_issuance import TokenIssuanceService


class DummyOAuthClient:
    def __init__(self, provider: str) -> None:
        self.spec = get_provider(provider)
        self.redirect_uris: list[str] = []
        self.refreshes: list[str] = []

    def build_authorization_url(self, *, state, redirect_uri, scope=None) -> str:
        self.redirect_uris.append(redirect_uri)
        return f"https://oauth.example.com/{self.spec.id}/authorize?state={state}"

    async def exchange_authorization_code(self, code: str, *, redirect_uri: str) -> TokenGrant:
        self.redirect_uris.append(redirect_uri)
        if code == "rejected":
            raise OAuthTokenExchangeError(
                "rejected", status_code=400, body='{"error":"invalid_grant"}'
            )
        return TokenGrant(access_token=f"{self.spec.id}-access", refresh_token="refresh-1")

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        self.refreshes.append(refresh_token)
        return TokenGrant(access_token=f"{self.spec.id}-refreshed", expires_in=3600)


class DummyOAuthFactory:
    def __init__(self) -> None:
        self.clients = {provider: DummyOAuthClient(provider) for provider in ("github", "google")}

    def for_provider(self, provider: str) -> DummyOAuthClient:
        get_provider(provider)
        return self.clients[provider]


@pytest.fixture()
def broker_overrides():
    from autostack import dependencies

    store = InMemoryTokenStore()
    factory = DummyOAuthFactory()

    overrides = {
        dependencies.get_oauth_flow_controller: lambda: OAuthFlowController(
            store=store, oauth_clients=factory, state_encoder=OAuthStateEncoder()
        ),
        dependencies.get_token_issuance_service: lambda: TokenIssuanceService(
            store=store, oauth_clients=factory
        ),
    }
    app.dependency_overrides.update(overrides)

    yield store, factory

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.anyio
async def test_health() -> None:
    async with _client() as client:
        response = await client.get("/health", headers={"x-request-id": "req-42"})

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "oauth-broker"}
    assert response.headers["x-request-id"] == "req-42"


@pytest.mark.anyio
async def test_auth_redirects_to_provider(broker_overrides):
    _, factory = broker_overrides

    async with _client() as client:
        response = await client.get("/auth/github", params={"user_id": "u1"})

    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith("https://oauth.example.com/github/authorize")
    assert parse_qs(urlparse(location).query)["state"] == ["u1"]
    assert factory.clients["github"].redirect_uris == ["http://testserver/callback/github"]


@pytest.mark.anyio
async def test_auth_requires_user_id(broker_overrides):
    async with _client() as client:
        response = await client.get("/auth/github")

    assert response.status_code == 400


@pytest.mark.anyio
async def test_auth_rejects_unknown_provider(broker_overrides):
    async with _client() as client:
        response = await client.get("/auth/gitlab", params={"user_id": "u1"})

    assert response.status_code == 400


@pytest.mark.anyio
async def test_callback_stores_tokens(broker_overrides):
    store, _ = broker_overrides

    async with _client() as client:
        response = await client.get("/callback/github", params={"code": "c1", "state": "u1"})

    assert response.status_code == 200
    assert response.text == "Successfully connected! You can close this window."
    record = store.get(TokenKey("u1", "github"))
    assert record is not None
    assert record.access_token == "github-access"


@pytest.mark.anyio
async def test_callback_reports_provider_error(broker_overrides):
    store, _ = broker_overrides

    async with _client() as client:
        response = await client.get(
            "/callback/google", params={"error": "access_denied", "state": "u1"}
        )

    assert response.status_code == 400
    assert response.text == "OAuth error: access_denied"
    assert store.get(TokenKey("u1", "google")) is None


@pytest.mark.anyio
async def test_callback_requires_code_and_state(broker_overrides):
    async with _client() as client:
        response = await client.get("/callback/github", params={"code": "c1"})

    assert response.status_code == 400


@pytest.mark.anyio
async def test_callback_exchange_failure(broker_overrides):
    store, _ = broker_overrides

    async with _client() as client:
        response = await client.get(
            "/callback/github", params={"code": "rejected", "state": "u1"}
        )

    assert response.status_code == 500
    assert "invalid_grant" in response.text
    assert store.get(TokenKey("u1", "github")) is None


@pytest.mark.anyio
async def test_token_for_unconnected_user_is_404(broker_overrides):
    async with _client() as client:
        response = await client.post("/token/github", json={"user_id": "u1"})

    assert response.status_code == 404
    assert response.json()["detail"] == "No tokens found. Please connect your account first."


@pytest.mark.anyio
async def test_token_requires_user_id(broker_overrides):
    async with _client() as client:
        missing_field = await client.post("/token/github", json={})
        missing_body = await client.post("/token/github")

    assert missing_field.status_code == 400
    assert missing_body.status_code == 400


@pytest.mark.anyio
async def test_token_rejects_unknown_provider(broker_overrides):
    async with _client() as client:
        response = await client.post("/token/gitlab", json={"user_id": "u1"})

    assert response.status_code == 400


@pytest.mark.anyio
async def test_token_issues_stored_github_token(broker_overrides):
    store, factory = broker_overrides
    store.put(
        TokenKey("u1", "github"),
        TokenRecord(access_token="gho_stored", expires_at=now_ms() + 1000),
    )

    async with _client() as client:
        response = await client.post("/token/github", json={"user_id": "u1"})

    assert response.status_code == 200
    body = response.json()
    assert body["access_token"] == "gho_stored"
    assert set(body) == {"access_token", "expires_at"}
    assert factory.clients["github"].refreshes == []


@pytest.mark.anyio
async def test_token_refreshes_google(broker_overrides):
    store, factory = broker_overrides
    store.put(
        TokenKey("u1", "google"),
        TokenRecord(access_token="ya29.old", refresh_token="r1", expires_at=now_ms() + 60_000),
    )

    async with _client() as client:
        response = await client.post("/token/google", json={"user_id": "u1"})

    assert response.status_code == 200
    assert response.json()["access_token"] == "google-refreshed"
    assert factory.clients["google"].refreshes == ["r1"]


@pytest.mark.anyio
async def test_token_expired_without_refresh_token_is_401(broker_overrides):
    store, _ = broker_overrides
    store.put(TokenKey("u1", "google"), TokenRecord(access_token="ya29.old", expires_at=0))

    async with _client() as client:
        response = await client.post("/token/google", json={"user_id": "u1"})

    assert response.status_code == 401
