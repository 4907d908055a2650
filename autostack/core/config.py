"""
Application configuration models and helpers.

Centralizes settings management so the credential broker, the protocol
gateway and the combined process share a consistent configuration surface.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class _ComponentSettings(BaseSettings):
    """Base class allowing settings to be built by field name or env alias."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")


class ProviderCredentials(BaseModel):
    """Client credentials registered with a single OAuth provider."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class ProviderSettings(_ComponentSettings):
    """OAuth application credentials for every supported provider."""

    github_client_id: Optional[str] = Field(None, validation_alias="GITHUB_CLIENT_ID")
    github_client_secret: Optional[str] = Field(
        None, validation_alias="GITHUB_CLIENT_SECRET"
    )
    google_client_id: Optional[str] = Field(None, validation_alias="GOOGLE_CLIENT_ID")
    google_client_secret: Optional[str] = Field(
        None, validation_alias="GOOGLE_CLIENT_SECRET"
    )

    def credentials_for(self, provider: str) -> ProviderCredentials:
        """Return the (possibly empty) client credentials for ``provider``."""
        return ProviderCredentials(
            client_id=getattr(self, f"{provider}_client_id", None),
            client_secret=getattr(self, f"{provider}_client_secret", None),
        )


class BrokerSettings(_ComponentSettings):
    """Settings for the credential broker and its token store."""

    public_url: Optional[str] = Field(
        None,
        validation_alias="BROKER_PUBLIC_URL",
        description=(
            "Externally visible base URL used to build OAuth redirect URIs. "
            "Defaults to the base URL of the inbound request."
        ),
    )
    token_store_backend: str = Field("sqlite", validation_alias="TOKEN_STORE_BACKEND")
    token_store_path: str = Field(
        "data/oauth_tokens.db", validation_alias="TOKEN_STORE_PATH"
    )
    dynamodb_table_name: Optional[str] = Field(
        None, validation_alias="DYNAMODB_TABLE_NAME"
    )
    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")

    @field_validator("token_store_backend")
    @classmethod
    def _normalize_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in {"sqlite", "dynamodb", "memory"}:
            raise ValueError(f"Unsupported token store backend: {value}")
        return backend


class SecuritySettings(_ComponentSettings):
    """Security-related configuration."""

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description="Secret used to derive the key encrypting stored token records.",
    )
    sign_state: bool = Field(
        False,
        validation_alias="OAUTH_SIGN_STATE",
        description="Wrap the user id in a signed, expiring OAuth state token.",
    )
    state_secret: Optional[str] = Field(None, validation_alias="OAUTH_STATE_SECRET")
    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")


class BackendDescriptor(BaseModel):
    """Static description of one backend adapter served by the gateway."""

    id: str
    name: str
    url: Optional[str] = None
    provider: Optional[str] = None
    keywords: tuple[str, ...] = ()
    note: Optional[str] = None


class GatewaySettings(_ComponentSettings):
    """Protocol gateway configuration, including credential resolution."""

    oauth_broker_url: Optional[str] = Field(None, validation_alias="OAUTH_BROKER_URL")
    user_id: Optional[str] = Field(None, validation_alias="USER_ID")
    github_token: Optional[str] = Field(None, validation_alias="GITHUB_TOKEN")
    google_access_token: Optional[str] = Field(
        None, validation_alias="GOOGLE_ACCESS_TOKEN"
    )
    backends: list[BackendDescriptor] = Field(
        default_factory=list,
        validation_alias="GATEWAY_BACKENDS",
        description="JSON list of backend adapter descriptors.",
    )
    list_timeout_seconds: float = Field(10.0, validation_alias="GATEWAY_LIST_TIMEOUT")
    call_timeout_seconds: float = Field(30.0, validation_alias="GATEWAY_CALL_TIMEOUT")

    @field_validator("backends", mode="before")
    @classmethod
    def _parse_backends(cls, value: Any) -> Any:
        """Support providing backends as a JSON string."""
        if isinstance(value, str):
            return json.loads(value) if value.strip() else []
        return value

    @field_validator("oauth_broker_url")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        return value.rstrip("/") if value else value

    def static_tokens(self) -> dict[str, str]:
        """Statically configured fallback tokens keyed by provider."""
        tokens = {"github": self.github_token, "google": self.google_access_token}
        return {provider: token for provider, token in tokens.items() if token}


class AppSettings(BaseSettings):
    """Root settings object shared by the broker and the gateway."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    http_timeout_seconds: float = Field(10.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    broker: BrokerSettings = Field(default_factory=BrokerSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "BackendDescriptor",
    "BrokerSettings",
    "GatewaySettings",
    "ProviderCredentials",
    "ProviderSettings",
    "SecuritySettings",
    "get_settings",
]
