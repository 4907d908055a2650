"""Expose wire schemas for the broker and the gateway."""

from .auth import TokenRequest, TokenResponse
from .rpc import ToolDescriptor, ToolResult

__all__ = [
    "TokenRequest",
    "TokenResponse",
    "ToolDescriptor",
    "ToolResult",
]
