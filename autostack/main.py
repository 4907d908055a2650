"""
FastAPI application entrypoints for the credential broker and the gateway.

``broker_app`` and ``gateway_app`` run as separate services; ``app`` hosts
both routers in one process and lets the gateway call the broker directly.
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from autostack import __version__
from autostack.api.broker_routes import router as broker_router
from autostack.api.gateway_routes import router as gateway_router
from autostack.core.config import get_settings
from autostack.core.logging import (
    bind_request_id,
    configure_logging,
    get_request_id,
    reset_request_id,
)

logger = logging.getLogger(__name__)


def _base_app(title: str, service: str) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=title, version=__version__)
    app.state.in_process_broker = False
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next):
        token = bind_request_id(request.headers.get("x-request-id"))
        request_id = get_request_id()
        try:
            logger.debug("%s %s", request.method, request.url.path)
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health", status_code=HTTPStatus.OK)
    async def healthcheck() -> dict:
        """Simple health endpoint for monitoring."""
        return {"status": "healthy", "service": service}

    return app


def create_broker_app() -> FastAPI:
    """Factory for the OAuth broker application."""
    app = _base_app("OAuth Broker", "oauth-broker")
    app.include_router(broker_router)
    return app


def create_gateway_app() -> FastAPI:
    """Factory for the MCP gateway application."""
    app = _base_app("MCP Gateway", "mcp-gateway")
    app.include_router(gateway_router)
    return app


def create_app() -> FastAPI:
    """Factory hosting the broker and the gateway in a single process."""
    app = _base_app("Personal Automation Stack", "automation-stack")
    app.state.in_process_broker = True
    app.include_router(broker_router)
    app.include_router(gateway_router)
    return app


broker_app = create_broker_app()
gateway_app = create_gateway_app()
app = create_app()

__all__ = [
    "app",
    "broker_app",
    "create_app",
    "create_broker_app",
    "create_gateway_app",
    "gateway_app",
]
