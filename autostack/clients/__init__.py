"""Expose constructed client wrappers."""

from .adapters import AdapterError, BackendAdapter, RemoteMCPAdapter, build_adapters
from .broker import BrokerHTTPClient, BrokerUnavailableError
from .dynamodb import DynamoDBTokenStore
from .oauth import (
    InvalidStateError,
    OAuthClientFactory,
    OAuthStateEncoder,
    OAuthTokenExchangeError,
    ProviderNotConfiguredError,
    ProviderOAuthClient,
)
from .providers import PROVIDERS, ProviderSpec, RefreshPolicy, UnsupportedProviderError
from .sqlite_store import SQLiteTokenStore
from .token_store import InMemoryTokenStore, TokenRecordCodec, TokenStore

__all__ = [
    "AdapterError",
    "BackendAdapter",
    "BrokerHTTPClient",
    "BrokerUnavailableError",
    "DynamoDBTokenStore",
    "InMemoryTokenStore",
    "InvalidStateError",
    "OAuthClientFactory",
    "OAuthStateEncoder",
    "OAuthTokenExchangeError",
    "PROVIDERS",
    "ProviderNotConfiguredError",
    "ProviderOAuthClient",
    "ProviderSpec",
    "RefreshPolicy",
    "RemoteMCPAdapter",
    "SQLiteTokenStore",
    "TokenRecordCodec",
    "TokenStore",
    "UnsupportedProviderError",
    "build_adapters",
]
