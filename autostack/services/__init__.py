"""Service layer exports."""

from .credential_resolver import (
    CredentialResolver,
    CredentialResolverConfig,
    CredentialTier,
    ResolvedCredential,
)
from .gateway import ProtocolGateway, RequestContext, ToolRouter
from .oauth_flow import AuthorizationRequestError, OAuthFlowController
from .token_cipher import TokenCipherService
from .token_issuance import (
    IssuedToken,
    NotConnectedError,
    RefreshFailedError,
    TokenIssuanceService,
)

__all__ = [
    "AuthorizationRequestError",
    "CredentialResolver",
    "CredentialResolverConfig",
    "CredentialTier",
    "IssuedToken",
    "NotConnectedError",
    "OAuthFlowController",
    "ProtocolGateway",
    "RefreshFailedError",
    "RequestContext",
    "ResolvedCredential",
    "TokenCipherService",
    "TokenIssuanceService",
    "ToolRouter",
]
