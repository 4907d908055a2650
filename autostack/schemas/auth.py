"""Schemas for the broker's token issuance endpoint."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TokenRequest(BaseModel):
    """Body of ``POST /token/{provider}``."""

    user_id: Optional[str] = Field(
        None, description="User whose stored provider tokens should be issued."
    )


class TokenResponse(BaseModel):
    """Short-lived access token handed to callers."""

    access_token: str
    expires_at: int = Field(..., description="Expiry as epoch milliseconds.")


__all__ = ["TokenRequest", "TokenResponse"]
