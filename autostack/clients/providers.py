"""
Registry of OAuth providers and their token lifecycle policies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RefreshPolicy(str, Enum):
    """When the broker refreshes a stored access token before issuing it."""

    NEVER = "never"
    ALWAYS = "always"
    ON_EXPIRY = "on_expiry"


class UnsupportedProviderError(Exception):
    """Raised when a provider id is not present in the registry."""


@dataclass(frozen=True)
class ProviderSpec:
    """Endpoints and lifecycle policy for one OAuth provider."""

    id: str
    authorization_endpoint: str
    token_endpoint: str
    default_scope: str
    refresh_policy: RefreshPolicy = RefreshPolicy.ON_EXPIRY
    non_expiring: bool = False
    offline_access: bool = False

    @property
    def supports_refresh(self) -> bool:
        return self.refresh_policy is not RefreshPolicy.NEVER


GITHUB = ProviderSpec(
    id="github",
    authorization_endpoint="https://github.com/login/oauth/authorize",
    token_endpoint="https://github.com/login/oauth/access_token",
    default_scope="repo user",
    # OAuth App tokens are long-lived until revoked and carry no refresh token.
    refresh_policy=RefreshPolicy.NEVER,
    non_expiring=True,
)

GOOGLE = ProviderSpec(
    id="google",
    authorization_endpoint="https://accounts.google.com/o/oauth2/v2/auth",
    token_endpoint="https://oauth2.googleapis.com/token",
    default_scope=(
        "https://www.googleapis.com/auth/calendar "
        "https://www.googleapis.com/auth/gmail.readonly"
    ),
    # Refreshed on every issuance so the token reflects the current consent.
    refresh_policy=RefreshPolicy.ALWAYS,
    offline_access=True,
)

PROVIDERS: dict[str, ProviderSpec] = {spec.id: spec for spec in (GITHUB, GOOGLE)}


def get_provider(provider_id: str) -> ProviderSpec:
    try:
        return PROVIDERS[provider_id]
    except KeyError:
        raise UnsupportedProviderError(f"Unsupported provider: {provider_id}") from None


__all__ = [
    "GITHUB",
    "GOOGLE",
    "PROVIDERS",
    "ProviderSpec",
    "RefreshPolicy",
    "UnsupportedProviderError",
    "get_provider",
]
