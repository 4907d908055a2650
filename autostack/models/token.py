"""
Domain models for OAuth token persistence.
"""

from __future__ import annotations

import time
from typing import NamedTuple, Optional

from pydantic import BaseModel, Field

ONE_HOUR_MS = 3600 * 1000
NON_EXPIRING_TTL_MS = 365 * 24 * 3600 * 1000


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


class TokenKey(NamedTuple):
    """Identifies the single token record held for a user and provider."""

    user_id: str
    provider: str

    @property
    def partition_key(self) -> str:
        return f"user#{self.user_id}"

    @property
    def sort_key(self) -> str:
        return f"oauth#{self.provider}"


class TokenRecord(BaseModel):
    """Delegated-access credentials stored for one user/provider pair."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: int = Field(..., description="Expiry as epoch milliseconds.")
    scope: Optional[str] = None

    def is_expired(self, at_ms: int | None = None) -> bool:
        return (now_ms() if at_ms is None else at_ms) >= self.expires_at


__all__ = [
    "NON_EXPIRING_TTL_MS",
    "ONE_HOUR_MS",
    "TokenKey",
    "TokenRecord",
    "now_ms",
]
