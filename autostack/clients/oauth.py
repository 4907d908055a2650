"""
Provider OAuth utilities.

These helpers build authorization redirects, exchange authorization codes and
refresh access tokens against each provider's token endpoint.
"""

from __future__ import annotations

import base64
import hmac
import json
import time
from hashlib import sha256
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from autostack.clients.providers import ProviderSpec, get_provider
from autostack.core.config import ProviderCredentials, ProviderSettings


class OAuthTokenExchangeError(Exception):
    """Raised when a provider token endpoint fails or returns an unusable body."""

    def __init__(
        self, message: str, *, status_code: Optional[int] = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProviderNotConfiguredError(Exception):
    """Raised when a provider lacks client credentials."""


class InvalidStateError(Exception):
    """Raised when an OAuth state value fails verification."""


class OAuthStateEncoder:
    """Map user ids to OAuth state values and back.

    Without a secret the state is the user id itself. With a secret the user
    id is wrapped in an HMAC-signed payload that expires after ``ttl_seconds``.
    """

    def __init__(self, secret_key: Optional[str] = None, ttl_seconds: int = 900) -> None:
        self._secret_key = secret_key.encode("utf-8") if secret_key else None
        self._ttl_seconds = ttl_seconds

    @property
    def signed(self) -> bool:
        return self._secret_key is not None

    def encode(self, user_id: str) -> str:
        if self._secret_key is None:
            return user_id
        payload = {"user_id": user_id, "issued_at": int(time.time())}
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        signature = hmac.new(self._secret_key, serialized, sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized).decode("utf-8")

    def decode(self, state: str) -> str:
        if self._secret_key is None:
            return state
        try:
            decoded = base64.urlsafe_b64decode(state.encode("utf-8"))
        except (ValueError, TypeError) as exc:
            raise InvalidStateError("Malformed OAuth state.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected):
            raise InvalidStateError("Invalid OAuth state signature.")
        payload = json.loads(serialized)
        if time.time() - payload.get("issued_at", 0) > self._ttl_seconds:
            raise InvalidStateError("OAuth state has expired.")
        user_id = payload.get("user_id")
        if not user_id:
            raise InvalidStateError("Missing user identifier in OAuth state.")
        return user_id


class TokenGrant(BaseModel):
    """Token endpoint response fields the broker relies on."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None


class ProviderOAuthClient:
    """Build authorization URLs and call the token endpoint of one provider."""

    def __init__(
        self,
        spec: ProviderSpec,
        credentials: ProviderCredentials,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.spec = spec
        self._credentials = credentials
        self._timeout = timeout
        self._transport = transport

    def build_authorization_url(
        self, *, state: str, redirect_uri: str, scope: Optional[str] = None
    ) -> str:
        """Construct the provider consent URL."""
        params = {
            "client_id": self._credentials.client_id,
            "redirect_uri": redirect_uri,
            "scope": scope or self.spec.default_scope,
            "state": state,
            "response_type": "code",
        }
        if self.spec.offline_access:
            # Forcing consent makes the provider reissue a refresh token.
            params["access_type"] = "offline"
            params["prompt"] = "consent"
        return f"{self.spec.authorization_endpoint}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str, *, redirect_uri: str) -> TokenGrant:
        """Exchange an authorization code for tokens."""
        return await self._request_token(
            {
                "code": code,
                "client_id": self._credentials.client_id,
                "client_secret": self._credentials.client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            }
        )

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Refresh the access token using a stored refresh token."""
        return await self._request_token(
            {
                "refresh_token": refresh_token,
                "client_id": self._credentials.client_id,
                "client_secret": self._credentials.client_secret,
                "grant_type": "refresh_token",
            }
        )

    async def _request_token(self, payload: dict) -> TokenGrant:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.spec.token_endpoint,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise OAuthTokenExchangeError(
                f"{self.spec.id} token endpoint unreachable: {exc!r}"
            ) from exc

        if not response.is_success:
            raise OAuthTokenExchangeError(
                f"{self.spec.id} token endpoint returned {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return TokenGrant.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            # GitHub reports grant errors as 200 responses without an access token.
            raise OAuthTokenExchangeError(
                f"Incomplete token payload returned from {self.spec.id}.",
                status_code=response.status_code,
                body=response.text,
            ) from exc


class OAuthClientFactory:
    """Resolve a configured OAuth client for a provider id."""

    def __init__(
        self,
        provider_settings: ProviderSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = provider_settings
        self._timeout = timeout
        self._transport = transport

    def for_provider(self, provider_id: str) -> ProviderOAuthClient:
        spec = get_provider(provider_id)
        credentials = self._settings.credentials_for(spec.id)
        if not credentials.configured:
            raise ProviderNotConfiguredError(
                f"OAuth client credentials are not configured for {spec.id}."
            )
        return ProviderOAuthClient(
            spec, credentials, timeout=self._timeout, transport=self._transport
        )


__all__ = [
    "InvalidStateError",
    "OAuthClientFactory",
    "OAuthStateEncoder",
    "OAuthTokenExchangeError",
    "ProviderNotConfiguredError",
    "ProviderOAuthClient",
    "TokenGrant",
]
