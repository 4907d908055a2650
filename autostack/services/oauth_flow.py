"""
Authorization-code flow orchestration for the credential broker.
"""

from __future__ import annotations

import logging
from typing import Optional

from autostack.clients.oauth import (
    OAuthClientFactory,
    OAuthStateEncoder,
    TokenGrant,
)
from autostack.clients.providers import ProviderSpec
from autostack.clients.token_store import TokenStore
from autostack.models.token import (
    NON_EXPIRING_TTL_MS,
    ONE_HOUR_MS,
    TokenKey,
    TokenRecord,
    now_ms,
)

logger = logging.getLogger(__name__)


class AuthorizationRequestError(ValueError):
    """Raised when an authorization request or callback is missing parameters."""


def compute_expires_at(spec: ProviderSpec, grant: TokenGrant, at_ms: Optional[int] = None) -> int:
    """Apply the provider expiry policy to a token grant."""
    issued_at = now_ms() if at_ms is None else at_ms
    if spec.non_expiring:
        return issued_at + NON_EXPIRING_TTL_MS
    if grant.expires_in:
        return issued_at + grant.expires_in * 1000
    return issued_at + ONE_HOUR_MS


class OAuthFlowController:
    """Start provider authorization and persist tokens from the callback."""

    def __init__(
        self,
        store: TokenStore,
        oauth_clients: OAuthClientFactory,
        state_encoder: OAuthStateEncoder,
    ) -> None:
        self._store = store
        self._oauth_clients = oauth_clients
        self._state = state_encoder

    def start_authorization(
        self,
        provider: str,
        user_id: Optional[str],
        *,
        redirect_uri: str,
        scope: Optional[str] = None,
    ) -> str:
        """Return the provider consent URL carrying ``user_id`` as state."""
        if not user_id:
            raise AuthorizationRequestError("user_id is required")
        client = self._oauth_clients.for_provider(provider)
        url = client.build_authorization_url(
            state=self._state.encode(user_id),
            redirect_uri=redirect_uri,
            scope=scope,
        )
        logger.info("Starting %s authorization for user %s", provider, user_id)
        return url

    async def complete_authorization(
        self,
        provider: str,
        code: Optional[str],
        state: Optional[str],
        *,
        redirect_uri: str,
    ) -> TokenRecord:
        """Exchange ``code`` and replace the stored record for the state's user."""
        if not code or not state:
            raise AuthorizationRequestError("Missing code or state parameter")
        client = self._oauth_clients.for_provider(provider)
        user_id = self._state.decode(state)

        grant = await client.exchange_authorization_code(code, redirect_uri=redirect_uri)
        record = TokenRecord(
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=compute_expires_at(client.spec, grant),
            scope=grant.scope,
        )
        self._store.put(TokenKey(user_id, client.spec.id), record)
        logger.info(
            "Stored %s tokens for user %s (refresh token: %s)",
            provider,
            user_id,
            "yes" if record.refresh_token else "no",
        )
        return record


__all__ = ["AuthorizationRequestError", "OAuthFlowController", "compute_expires_at"]
