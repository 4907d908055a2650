try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio

import pytest

from autostack.clients.oauth import OAuthTokenExchangeError, TokenGrant
from autostack.clients.providers import UnsupportedProviderError, get_provider
from autostack.clients.token_store import InMemoryTokenStore
from autostack.models.token import TokenKey, TokenRecord, now_ms
from autostack.services.token_issuance import (
    NotConnectedError,
    RefreshFailedError,
    TokenIssuanceService,
)


class DummyOAuthClient:
    def __init__(self, provider: str, *, expires_in: int | None = 3600) -> None:
        self.spec = get_provider(provider)
        self.expires_in = expires_in
        self.calls: list[str] = []
        self.fail = False
        self.new_refresh_token: str | None = None

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        self.calls.append(refresh_token)
        access_token = f"refreshed-{len(self.calls)}"
        await asyncio.sleep(0)
        if self.fail:
            raise OAuthTokenExchangeError("invalid_grant", status_code=400, body="invalid_grant")
        return TokenGrant(
            access_token=access_token,
            refresh_token=self.new_refresh_token,
            expires_in=self.expires_in,
        )


class DummyOAuthFactory:
    def __init__(self, client: DummyOAuthClient) -> None:
        self.client = client

    def for_provider(self, provider: str) -> DummyOAuthClient:
        return self.client


def _service(store, client: DummyOAuthClient) -> TokenIssuanceService:
    return TokenIssuanceService(store=store, oauth_clients=DummyOAuthFactory(client))


@pytest.mark.anyio
async def test_github_token_issued_as_stored_even_when_expired() -> None:
    store = InMemoryTokenStore()
    client = DummyOAuthClient("github")
    store.put(
        TokenKey("u1", "github"),
        TokenRecord(access_token="gho_1", expires_at=now_ms() - 1000),
    )

    issued = await _service(store, client).issue("github", "u1")

    assert issued.access_token == "gho_1"
    assert client.calls == []


@pytest.mark.anyio
async def test_google_refreshes_once_per_issue() -> None:
    store = InMemoryTokenStore()
    client = DummyOAuthClient("google")
    far_future = now_ms() + 10 * 3600 * 1000
    store.put(
        TokenKey("u1", "google"),
        TokenRecord(access_token="ya29.old", refresh_token="r1", expires_at=far_future),
    )
    service = _service(store, client)

    before = now_ms()
    issued = await service.issue("google", "u1")

    assert client.calls == ["r1"]
    assert issued.access_token == "refreshed-1"
    assert issued.expires_at >= before + 3600 * 1000
    stored = store.get(TokenKey("u1", "google"))
    assert stored.access_token == "refreshed-1"
    assert stored.refresh_token == "r1"

    await service.issue("google", "u1")
    assert client.calls == ["r1", "r1"]


@pytest.mark.anyio
async def test_rotated_refresh_token_replaces_stored_one() -> None:
    store = InMemoryTokenStore()
    client = DummyOAuthClient("google")
    client.new_refresh_token = "r2"
    store.put(
        TokenKey("u1", "google"),
        TokenRecord(access_token="old", refresh_token="r1", expires_at=now_ms()),
    )

    await _service(store, client).issue("google", "u1")

    assert store.get(TokenKey("u1", "google")).refresh_token == "r2"


@pytest.mark.anyio
async def test_missing_expires_in_defaults_to_one_hour() -> None:
    store = InMemoryTokenStore()
    client = DummyOAuthClient("google", expires_in=None)
    store.put(
        TokenKey("u1", "google"),
        TokenRecord(access_token="old", refresh_token="r1", expires_at=0),
    )

    before = now_ms()
    issued = await _service(store, client).issue("google", "u1")
    after = now_ms()

    assert before + 3600 * 1000 <= issued.expires_at <= after + 3600 * 1000


@pytest.mark.anyio
async def test_google_without_refresh_token_is_served_until_expiry() -> None:
    store = InMemoryTokenStore()
    client = DummyOAuthClient("google")
    key = TokenKey("u1", "google")
    store.put(key, TokenRecord(access_token="ya29.live", expires_at=now_ms() + 60_000))
    service = _service(store, client)

    issued = await service.issue("google", "u1")
    assert issued.access_token == "ya29.live"
    assert client.calls == []

    store.put(key, TokenRecord(access_token="ya29.dead", expires_at=now_ms() - 1))
    with pytest.raises(RefreshFailedError):
        await service.issue("google", "u1")


@pytest.mark.anyio
async def test_not_connected() -> None:
    service = _service(InMemoryTokenStore(), DummyOAuthClient("github"))

    with pytest.raises(NotConnectedError) as excinfo:
        await service.issue("github", "u1")

    assert "connect your account" in str(excinfo.value)


@pytest.mark.anyio
async def test_unknown_provider() -> None:
    service = _service(InMemoryTokenStore(), DummyOAuthClient("github"))

    with pytest.raises(UnsupportedProviderError):
        await service.issue("gitlab", "u1")


@pytest.mark.anyio
async def test_rejected_refresh_leaves_record_untouched() -> None:
    store = InMemoryTokenStore()
    client = DummyOAuthClient("google")
    client.fail = True
    original = TokenRecord(access_token="old", refresh_token="r1", expires_at=0)
    store.put(TokenKey("u1", "google"), original)

    with pytest.raises(RefreshFailedError):
        await _service(store, client).issue("google", "u1")

    assert store.get(TokenKey("u1", "google")) == original


@pytest.mark.anyio
async def test_concurrent_issues_both_succeed() -> None:
    store = InMemoryTokenStore()
    client = DummyOAuthClient("google")
    store.put(
        TokenKey("u1", "google"),
        TokenRecord(access_token="old", refresh_token="r1", expires_at=0),
    )
    service = _service(store, client)

    first, second = await asyncio.gather(
        service.issue("google", "u1"), service.issue("google", "u1")
    )

    issued = {first.access_token, second.access_token}
    assert issued == {"refreshed-1", "refreshed-2"}
    assert store.get(TokenKey("u1", "google")).access_token in issued
