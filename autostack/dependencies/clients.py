"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request

from autostack.clients import (
    BackendAdapter,
    BrokerHTTPClient,
    DynamoDBTokenStore,
    InMemoryTokenStore,
    OAuthClientFactory,
    OAuthStateEncoder,
    SQLiteTokenStore,
    TokenRecordCodec,
    TokenStore,
    build_adapters,
)
from autostack.core.config import get_settings
from autostack.services import (
    CredentialResolver,
    CredentialResolverConfig,
    OAuthFlowController,
    ProtocolGateway,
    TokenCipherService,
    ToolRouter,
    TokenIssuanceService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_token_cipher_service() -> Optional[TokenCipherService]:
    """Provide the at-rest cipher when an encryption secret is configured."""
    return TokenCipherService.from_secret(_settings().security.token_encryption_secret)


@lru_cache()
def get_token_store() -> TokenStore:
    """Create the configured token store backend."""
    broker = _settings().broker
    codec = TokenRecordCodec(get_token_cipher_service())
    if broker.token_store_backend == "memory":
        return InMemoryTokenStore()
    if broker.token_store_backend == "dynamodb":
        if not broker.dynamodb_table_name:
            raise RuntimeError("DYNAMODB_TABLE_NAME is required for the dynamodb token store.")
        return DynamoDBTokenStore(
            table_name=broker.dynamodb_table_name,
            region_name=broker.region_name,
            codec=codec,
        )
    return SQLiteTokenStore(broker.token_store_path, codec=codec)


@lru_cache()
def get_oauth_client_factory() -> OAuthClientFactory:
    """Provide per-provider OAuth clients."""
    settings = _settings()
    return OAuthClientFactory(settings.providers, timeout=settings.http_timeout_seconds)


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide the OAuth state encoder; signed only when enabled."""
    security = _settings().security
    if not security.sign_state:
        return OAuthStateEncoder()
    secret = security.state_secret or security.token_encryption_secret
    if not secret:
        raise RuntimeError("OAUTH_SIGN_STATE requires OAUTH_STATE_SECRET.")
    return OAuthStateEncoder(secret_key=secret, ttl_seconds=security.state_ttl_seconds)


def get_oauth_flow_controller() -> OAuthFlowController:
    """Build the authorization flow controller."""
    return OAuthFlowController(
        store=get_token_store(),
        oauth_clients=get_oauth_client_factory(),
        state_encoder=get_oauth_state_encoder(),
    )


def get_token_issuance_service() -> TokenIssuanceService:
    """Build the token issuance service."""
    return TokenIssuanceService(
        store=get_token_store(),
        oauth_clients=get_oauth_client_factory(),
    )


@lru_cache()
def get_broker_http_client() -> Optional[BrokerHTTPClient]:
    """Provide the network broker client when a broker URL is configured."""
    settings = _settings()
    if not settings.gateway.oauth_broker_url:
        return None
    return BrokerHTTPClient(
        settings.gateway.oauth_broker_url, timeout=settings.http_timeout_seconds
    )


def get_in_process_issuer(request: Request) -> Optional[TokenIssuanceService]:
    """Provide a direct broker binding when the broker runs in this process."""
    if getattr(request.app.state, "in_process_broker", False):
        return get_token_issuance_service()
    return None


def get_credential_resolver(
    issuer: Optional[TokenIssuanceService] = Depends(get_in_process_issuer),
) -> CredentialResolver:
    """Build the credential resolver from the gateway settings."""
    gateway = _settings().gateway
    config = CredentialResolverConfig(
        user_id=gateway.user_id,
        broker_url=gateway.oauth_broker_url,
        static_tokens=gateway.static_tokens(),
    )
    return CredentialResolver(
        config, issuer=issuer, broker_client=get_broker_http_client()
    )


@lru_cache()
def get_backend_adapters() -> tuple[BackendAdapter, ...]:
    """Instantiate the configured backend adapters once per process."""
    settings = _settings()
    return tuple(
        build_adapters(
            settings.gateway.backends, timeout=settings.gateway.call_timeout_seconds
        )
    )


@lru_cache()
def get_tool_router() -> ToolRouter:
    """Share one tool routing table across requests."""
    return ToolRouter()


def get_protocol_gateway(
    resolver: CredentialResolver = Depends(get_credential_resolver),
    adapters: tuple[BackendAdapter, ...] = Depends(get_backend_adapters),
    router: ToolRouter = Depends(get_tool_router),
) -> ProtocolGateway:
    """Build a gateway for the current request."""
    gateway = _settings().gateway
    return ProtocolGateway(
        adapters,
        resolver,
        list_timeout=gateway.list_timeout_seconds,
        call_timeout=gateway.call_timeout_seconds,
        router=router,
    )


__all__ = [
    "get_backend_adapters",
    "get_broker_http_client",
    "get_credential_resolver",
    "get_in_process_issuer",
    "get_oauth_client_factory",
    "get_oauth_flow_controller",
    "get_oauth_state_encoder",
    "get_protocol_gateway",
    "get_token_cipher_service",
    "get_token_issuance_service",
    "get_token_store",
    "get_tool_router",
]
