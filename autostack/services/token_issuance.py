"""
Issue short-lived access tokens from stored records, refreshing when needed.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from autostack.clients.oauth import (
    OAuthClientFactory,
    OAuthTokenExchangeError,
    ProviderNotConfiguredError,
)
from autostack.clients.providers import ProviderSpec, RefreshPolicy, get_provider
from autostack.clients.token_store import TokenStore
from autostack.models.token import ONE_HOUR_MS, TokenKey, TokenRecord, now_ms

logger = logging.getLogger(__name__)


class NotConnectedError(Exception):
    """Raised when no token record exists for a user/provider pair."""


class RefreshFailedError(Exception):
    """Raised when a required refresh cannot be performed or is rejected."""


class IssuedToken(BaseModel):
    """What callers receive; the refresh token never leaves the broker."""

    access_token: str
    expires_at: int


def needs_refresh(spec: ProviderSpec, record: TokenRecord, at_ms: int) -> bool:
    """Decide whether ``record`` must be refreshed before it is issued."""
    if not spec.supports_refresh:
        return False
    if spec.refresh_policy is RefreshPolicy.ALWAYS and record.refresh_token:
        return True
    return record.is_expired(at_ms)


class TokenIssuanceService:
    """Serve access tokens to the gateway and other callers.

    Refreshes are not serialized. Two concurrent issuances for the same key
    may both refresh and both write; the last write wins, which leaves a
    valid record and at worst costs one redundant refresh call.
    """

    def __init__(self, store: TokenStore, oauth_clients: OAuthClientFactory) -> None:
        self._store = store
        self._oauth_clients = oauth_clients

    async def issue(self, provider: str, user_id: str) -> IssuedToken:
        spec = get_provider(provider)
        key = TokenKey(user_id, spec.id)
        record = self._store.get(key)
        if record is None:
            raise NotConnectedError(
                "No tokens found. Please connect your account first."
            )

        if needs_refresh(spec, record, now_ms()):
            record = await self._refresh(spec, key, record)

        return IssuedToken(access_token=record.access_token, expires_at=record.expires_at)

    async def _refresh(
        self, spec: ProviderSpec, key: TokenKey, record: TokenRecord
    ) -> TokenRecord:
        if not record.refresh_token:
            raise RefreshFailedError("Token expired and cannot be refreshed")
        try:
            client = self._oauth_clients.for_provider(spec.id)
            refreshed_at = now_ms()
            grant = await client.refresh_token(record.refresh_token)
        except (OAuthTokenExchangeError, ProviderNotConfiguredError) as exc:
            logger.warning("Refresh failed for %s/%s: %s", key.user_id, spec.id, exc)
            raise RefreshFailedError(f"Failed to refresh token: {exc}") from exc

        expires_in_ms = grant.expires_in * 1000 if grant.expires_in else ONE_HOUR_MS
        updated = record.model_copy(
            update={
                "access_token": grant.access_token,
                "expires_at": refreshed_at + expires_in_ms,
                "refresh_token": grant.refresh_token or record.refresh_token,
                "scope": grant.scope or record.scope,
            }
        )
        self._store.put(key, updated)
        logger.info(
            "Refreshed %s token for user %s (expires_at=%s)",
            spec.id,
            key.user_id,
            updated.expires_at,
        )
        return updated


__all__ = [
    "IssuedToken",
    "NotConnectedError",
    "RefreshFailedError",
    "TokenIssuanceService",
    "needs_refresh",
]
