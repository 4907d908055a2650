"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_backend_adapters,
    get_broker_http_client,
    get_credential_resolver,
    get_in_process_issuer,
    get_oauth_client_factory,
    get_oauth_flow_controller,
    get_oauth_state_encoder,
    get_protocol_gateway,
    get_token_cipher_service,
    get_token_issuance_service,
    get_token_store,
    get_tool_router,
)
from .config import get_app_settings

__all__ = [
    "get_app_settings",
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
