"""
FastAPI routes for the MCP protocol gateway.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request

from autostack import __version__
from autostack.dependencies import get_backend_adapters, get_protocol_gateway
from autostack.services.gateway import SERVER_NAME

router = APIRouter()
logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer ") :].strip() or None
    return None


@router.get("/", status_code=HTTPStatus.OK)
async def gateway_index() -> dict:
    """Describe the gateway endpoints."""
    return {
        "service": SERVER_NAME,
        "version": __version__,
        "endpoints": {"mcp": "/mcp/sse", "health": "/health", "servers": "/mcp/servers"},
        "note": "Uses OAuth broker pattern - tokens managed via oauth-broker service",
    }


@router.get("/mcp/servers", status_code=HTTPStatus.OK)
async def list_servers(
    adapters: Annotated[Any, Depends(get_backend_adapters)],
) -> dict:
    """Static descriptor of the configured backend adapters."""
    return {"servers": [adapter.describe() for adapter in adapters]}


@router.get("/mcp/sse", status_code=HTTPStatus.OK)
async def server_info() -> dict:
    """Endpoint probe used by clients before they POST RPC requests."""
    return {
        "serverInfo": {"name": SERVER_NAME, "version": __version__},
        "note": "Uses OAuth broker pattern for authentication",
    }


@router.post("/mcp/sse", status_code=HTTPStatus.OK)
@router.post("/", status_code=HTTPStatus.OK, include_in_schema=False)
async def handle_rpc(
    request: Request,
    gateway: Annotated[Any, Depends(get_protocol_gateway)],
) -> dict:
    """Terminate one JSON-RPC request; errors are reported inside the envelope."""
    body = await request.body()
    bearer_token = _bearer_token(request)
    if bearer_token:
        logger.info("Request carries a bearer token (length: %d)", len(bearer_token))
    return await gateway.handle_body(body, bearer_token=bearer_token)


__all__ = ["router"]
