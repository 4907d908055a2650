"""
Backend adapter contract consumed by the gateway, plus a generic remote adapter.

Provider-specific adapters live outside this package; anything satisfying
``BackendAdapter`` can be registered with the gateway.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from autostack.core.config import BackendDescriptor
from autostack.schemas.rpc import JSONRPC_VERSION, ToolDescriptor, ToolResult

# Tool-name fragments routed to a backend when no exact tool match exists.
# Substring matches are loose ("pr" also hits "print_"); listed names win first.
DEFAULT_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "github": ("issue", "pr", "repo", "action"),
    "calendar": ("calendar", "event", "freebusy"),
    "gmail": ("email", "gmail", "label", "filter"),
    "drive": ("drive", "file", "folder"),
    "supabase": ("supabase", "database", "table", "sql"),
}


class AdapterError(Exception):
    """Raised when a backend cannot list or execute its tools."""


class BackendAdapter(Protocol):
    id: str
    name: str
    provider: Optional[str]
    keywords: Sequence[str]

    async def list_tools(self) -> List[ToolDescriptor]:
        ...

    async def call_tool(
        self, name: str, arguments: Dict[str, Any], access_token: Optional[str]
    ) -> ToolResult:
        ...

    def describe(self) -> Dict[str, Any]:
        ...


class RemoteMCPAdapter:
    """Forward ``tools/list`` and ``tools/call`` to an upstream tool server."""

    def __init__(
        self,
        descriptor: BackendDescriptor,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not descriptor.url:
            raise ValueError(f"Backend {descriptor.id} has no url configured.")
        self.id = descriptor.id
        self.name = descriptor.name
        self.provider = descriptor.provider
        self.keywords = descriptor.keywords or DEFAULT_KEYWORDS.get(descriptor.id, ())
        self._url = descriptor.url
        self._note = descriptor.note
        self._timeout = timeout
        self._transport = transport

    def describe(self) -> Dict[str, Any]:
        note = self._note or (
            "Uses OAuth broker for authentication"
            if self.provider
            else "Uses direct API keys (configured via secrets)"
        )
        return {"id": self.id, "name": self.name, "status": "available", "note": note}

    async def list_tools(self) -> List[ToolDescriptor]:
        result = await self._rpc("tools/list", {}, access_token=None)
        return [ToolDescriptor.model_validate(tool) for tool in result.get("tools", [])]

    async def call_tool(
        self, name: str, arguments: Dict[str, Any], access_token: Optional[str]
    ) -> ToolResult:
        result = await self._rpc(
            "tools/call", {"name": name, "arguments": arguments}, access_token=access_token
        )
        return ToolResult.model_validate(result)

    async def _rpc(
        self, method: str, params: Dict[str, Any], *, access_token: Optional[str]
    ) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        envelope = {
            "jsonrpc": JSONRPC_VERSION,
            "id": uuid.uuid4().hex,
            "method": method,
            "params": params,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._url, json=envelope, headers=headers)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AdapterError(f"{self.name} {method} failed: {exc}") from exc

        if "error" in body:
            error = body["error"] or {}
            raise AdapterError(f"{self.name} {method} error: {error.get('message', error)}")
        return body.get("result") or {}


def build_adapters(
    descriptors: Sequence[BackendDescriptor], *, timeout: float = 10.0
) -> List[BackendAdapter]:
    """Instantiate remote adapters for every descriptor with an upstream url."""
    return [
        RemoteMCPAdapter(descriptor, timeout=timeout)
        for descriptor in descriptors
        if descriptor.url
    ]


__all__ = [
    "AdapterError",
    "BackendAdapter",
    "DEFAULT_KEYWORDS",
    "RemoteMCPAdapter",
    "build_adapters",
]
