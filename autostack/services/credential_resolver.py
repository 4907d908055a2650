"""
Credential resolution for outbound provider calls.

Tiers are tried strictly in order and every failure falls through:

1. bearer token supplied by the caller
2. in-process broker binding
3. broker over the network
4. statically configured fallback token
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from autostack.clients.broker import BrokerHTTPClient
from autostack.services.token_issuance import IssuedToken

logger = logging.getLogger(__name__)


class CredentialTier(str, Enum):
    BEARER = "bearer"
    IN_PROCESS = "in_process"
    NETWORK = "network"
    STATIC = "static"
    NONE = "none"


class TokenIssuer(Protocol):
    async def issue(self, provider: str, user_id: str) -> IssuedToken:
        ...


@dataclass(frozen=True)
class TierFailure:
    tier: CredentialTier
    reason: str


@dataclass
class ResolvedCredential:
    """The token chosen for a call and how it was obtained."""

    token: Optional[str]
    tier: CredentialTier
    failures: list[TierFailure] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return self.token is not None


@dataclass(frozen=True)
class CredentialResolverConfig:
    """Everything the resolver needs, gathered in one value."""

    user_id: Optional[str] = None
    broker_url: Optional[str] = None
    static_tokens: dict[str, str] = field(default_factory=dict)


class CredentialResolver:
    def __init__(
        self,
        config: CredentialResolverConfig,
        *,
        issuer: TokenIssuer | None = None,
        broker_client: BrokerHTTPClient | None = None,
    ) -> None:
        self._config = config
        self._issuer = issuer
        if broker_client is None and config.broker_url:
            broker_client = BrokerHTTPClient(config.broker_url)
        self._broker_client = broker_client

    async def resolve(
        self, provider: Optional[str], bearer_token: Optional[str] = None
    ) -> ResolvedCredential:
        """Return a live token for ``provider`` from the first tier that succeeds."""
        if bearer_token:
            logger.info("Credential for %s resolved via caller bearer token", provider)
            return ResolvedCredential(bearer_token, CredentialTier.BEARER)

        if not provider:
            # Backends that authenticate with their own static keys.
            return ResolvedCredential(None, CredentialTier.NONE)

        failures: list[TierFailure] = []
        user_id = self._config.user_id
        if user_id:
            if self._issuer is not None:
                try:
                    issued = await self._issuer.issue(provider, user_id)
                    return self._resolved(
                        provider, issued.access_token, CredentialTier.IN_PROCESS, failures
                    )
                except Exception as exc:  # pylint: disable=broad-except
                    failures.append(self._failed(provider, CredentialTier.IN_PROCESS, exc))

            if self._broker_client is not None:
                try:
                    token = await self._broker_client.fetch_token(provider, user_id)
                    return self._resolved(provider, token, CredentialTier.NETWORK, failures)
                except Exception as exc:  # pylint: disable=broad-except
                    failures.append(self._failed(provider, CredentialTier.NETWORK, exc))

        static_token = self._config.static_tokens.get(provider)
        if static_token:
            return self._resolved(provider, static_token, CredentialTier.STATIC, failures)

        logger.error("No credential available for %s after tiers %s", provider, failures)
        return ResolvedCredential(None, CredentialTier.NONE, failures)

    @staticmethod
    def _failed(provider: str, tier: CredentialTier, exc: Exception) -> TierFailure:
        logger.warning("Credential tier %s failed for %s: %s", tier.value, provider, exc)
        return TierFailure(tier, str(exc) or type(exc).__name__)

    @staticmethod
    def _resolved(
        provider: str,
        token: str,
        tier: CredentialTier,
        failures: list[TierFailure],
    ) -> ResolvedCredential:
        logger.info(
            "Credential for %s resolved via %s tier (length: %d)",
            provider,
            tier.value,
            len(token),
        )
        return ResolvedCredential(token, tier, failures)


__all__ = [
    "CredentialResolver",
    "CredentialResolverConfig",
    "CredentialTier",
    "ResolvedCredential",
    "TierFailure",
    "TokenIssuer",
]
