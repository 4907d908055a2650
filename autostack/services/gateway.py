"""
Stateless JSON-RPC dispatcher in front of the backend adapters.

Every request is handled on its own: there is no session object, so any
method other than the handshake is served as if the session were active.
Only the tool routing table outlives a request.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from autostack import __version__
from autostack.clients.adapters import BackendAdapter
from autostack.schemas.rpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    ToolDescriptor,
    ToolResult,
    response_id,
    rpc_error,
    rpc_result,
)
from autostack.services.credential_resolver import CredentialResolver

logger = logging.getLogger(__name__)

DEFAULT_PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "mcp-gateway"


@dataclass(frozen=True)
class RequestContext:
    """Per-request inputs that are not part of the RPC params."""

    bearer_token: Optional[str] = None


Handler = Callable[[Dict[str, Any], RequestContext], Awaitable[Any]]
ToolListing = List[Tuple[BackendAdapter, List[ToolDescriptor]]]


class ToolRouter:
    """Map tool names to the adapter that lists them.

    One router is shared by every request in a process. The table is rebuilt
    from each aggregated listing; a tool call only lists again when the name
    is not in the table. Names that no adapter lists fall back to each
    adapter's keyword fragments, in adapter order.
    """

    def __init__(self) -> None:
        self._table: Dict[str, str] = {}

    def update(self, listing: ToolListing) -> None:
        table: Dict[str, str] = {}
        for adapter, tools in listing:
            for tool in tools:
                owner = table.setdefault(tool.name, adapter.id)
                if owner != adapter.id:
                    logger.warning(
                        "Tool %s is listed by both %s and %s; routing to %s",
                        tool.name,
                        owner,
                        adapter.id,
                        owner,
                    )
        self._table = table

    @property
    def table(self) -> Dict[str, str]:
        return dict(self._table)

    def exact(
        self, tool_name: str, adapters: Sequence[BackendAdapter]
    ) -> Optional[BackendAdapter]:
        owner = self._table.get(tool_name)
        if owner is None:
            return None
        return next((adapter for adapter in adapters if adapter.id == owner), None)

    @staticmethod
    def by_keyword(
        tool_name: str, adapters: Sequence[BackendAdapter]
    ) -> Optional[BackendAdapter]:
        for candidate in adapters:
            if any(keyword in tool_name for keyword in candidate.keywords):
                logger.info("Tool %s routed to %s by keyword", tool_name, candidate.id)
                return candidate
        return None


class ProtocolGateway:
    """Terminate JSON-RPC requests and dispatch them through a method table."""

    def __init__(
        self,
        adapters: Sequence[BackendAdapter],
        resolver: CredentialResolver,
        *,
        list_timeout: float = 10.0,
        call_timeout: float = 30.0,
        router: ToolRouter | None = None,
    ) -> None:
        self.adapters = list(adapters)
        self._resolver = resolver
        self._router = router or ToolRouter()
        self._list_timeout = list_timeout
        self._call_timeout = call_timeout
        self._handlers: Dict[str, Handler] = {
            "initialize": self._initialize,
            "notifications/initialized": self._initialized,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "resources/list": self._resources_list,
        }

    async def handle_body(self, body: bytes, *, bearer_token: Optional[str] = None) -> Dict[str, Any]:
        """Decode a raw request body and dispatch it."""
        try:
            payload = json.loads(body)
        except ValueError:
            return rpc_error(None, PARSE_ERROR, "Parse error")
        return await self.handle(payload, RequestContext(bearer_token=bearer_token))

    async def handle(self, payload: Any, context: RequestContext | None = None) -> Dict[str, Any]:
        context = context or RequestContext()
        request_id = response_id(payload)

        if (
            not isinstance(payload, dict)
            or payload.get("jsonrpc") != JSONRPC_VERSION
            or not isinstance(payload.get("method"), str)
        ):
            return rpc_error(request_id, INVALID_REQUEST, "Invalid Request")

        method = payload["method"]
        params = payload.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return rpc_error(request_id, INVALID_PARAMS, "params must be an object")

        handler = self._handlers.get(method)
        if handler is None and method.startswith("notifications/"):
            handler = self._notification
        if handler is None:
            logger.warning("Unknown method %s", method)
            return rpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        logger.info("Handling %s (id=%r)", method, request_id)
        try:
            result = await handler(params, context)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error while handling %s", method)
            return rpc_error(request_id, INTERNAL_ERROR, str(exc) or "Internal error")
        return rpc_result(request_id, result)

    async def _initialize(self, params: Dict[str, Any], context: RequestContext) -> Dict[str, Any]:
        protocol_version = params.get("protocolVersion") or DEFAULT_PROTOCOL_VERSION
        return {
            "protocolVersion": protocol_version,
            "capabilities": {
                # listChanged prompts clients to fetch tools/list right away.
                "tools": {"listChanged": True},
                "resources": {"listChanged": True},
            },
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
        }

    async def _initialized(self, params: Dict[str, Any], context: RequestContext) -> Dict[str, Any]:
        # Notifications carry no id; an empty result is still returned for
        # clients that wait on every POST.
        return {}

    async def _notification(self, params: Dict[str, Any], context: RequestContext) -> None:
        return None

    async def _resources_list(self, params: Dict[str, Any], context: RequestContext) -> Dict[str, Any]:
        return {"resources": []}

    async def _tools_list(self, params: Dict[str, Any], context: RequestContext) -> Dict[str, Any]:
        listing = await self.collect_tools()
        tools = [tool.to_wire() for _, adapter_tools in listing for tool in adapter_tools]
        logger.info("Listed %d tools from %d adapters", len(tools), len(listing))
        return {"tools": tools}

    async def _tools_call(self, params: Dict[str, Any], context: RequestContext) -> Dict[str, Any]:
        result = await self.call_tool(
            params.get("name"), params.get("arguments"), bearer_token=context.bearer_token
        )
        return result.to_wire()

    async def collect_tools(self) -> ToolListing:
        """List tools from every adapter concurrently, dropping adapters that fail.

        The routing table is refreshed from the result.
        """
        outcomes = await asyncio.gather(
            *(
                asyncio.wait_for(adapter.list_tools(), timeout=self._list_timeout)
                for adapter in self.adapters
            ),
            return_exceptions=True,
        )
        listing: ToolListing = []
        for adapter, outcome in zip(self.adapters, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    "Failed to list %s tools: %s",
                    adapter.id,
                    outcome if str(outcome) else type(outcome).__name__,
                )
                continue
            listing.append((adapter, list(outcome)))
        self._router.update(listing)
        return listing

    async def call_tool(
        self, name: Any, arguments: Any, *, bearer_token: Optional[str] = None
    ) -> ToolResult:
        """Route one tool call to exactly one adapter; failures become error results."""
        if not name or not isinstance(name, str):
            return ToolResult.error("Tool name is required")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return ToolResult.error("Tool arguments must be an object")

        adapter = self._router.exact(name, self.adapters)
        if adapter is None:
            await self.collect_tools()
            adapter = self._router.exact(name, self.adapters) or self._router.by_keyword(
                name, self.adapters
            )
        if adapter is None:
            logger.warning("No adapter serves tool %s", name)
            return ToolResult.error(f"Unknown tool: {name}")

        credential = await self._resolver.resolve(adapter.provider, bearer_token)
        if adapter.provider and not credential.available:
            return ToolResult.error(
                f"Error: No {adapter.provider} token available. "
                "Connect the account through the OAuth broker or configure a static token."
            )
        logger.info(
            "Calling %s on %s with %s credential", name, adapter.id, credential.tier.value
        )

        try:
            result = await asyncio.wait_for(
                adapter.call_tool(name, arguments, credential.token),
                timeout=self._call_timeout,
            )
            if isinstance(result, dict):
                result = ToolResult.model_validate(result)
        except asyncio.TimeoutError:
            logger.error("Tool %s on %s timed out", name, adapter.id)
            return ToolResult.error(
                f"Tool execution error: {name} timed out after {self._call_timeout}s"
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Tool %s on %s raised: %s", name, adapter.id, exc)
            return ToolResult.error(f"Tool execution error: {str(exc) or type(exc).__name__}")

        if result.is_error:
            logger.warning("Tool %s on %s returned an error result", name, adapter.id)
        return result


__all__ = ["ProtocolGateway", "RequestContext", "ToolRouter"]
