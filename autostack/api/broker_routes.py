"""
FastAPI routes for the OAuth credential broker.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from autostack.clients.oauth import (
    InvalidStateError,
    OAuthTokenExchangeError,
    ProviderNotConfiguredError,
)
from autostack.clients.providers import UnsupportedProviderError
from autostack.dependencies import (
    get_app_settings,
    get_oauth_flow_controller,
    get_token_issuance_service,
)
from autostack.schemas import TokenRequest, TokenResponse
from autostack.services import (
    AuthorizationRequestError,
    NotConnectedError,
    RefreshFailedError,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _callback_uri(request: Request, settings: Any, provider: str) -> str:
    """Redirect URI registered with the provider for ``provider``."""
    base_url = settings.broker.public_url or str(request.base_url)
    return f"{base_url.rstrip('/')}/callback/{provider}"


@router.get("/auth/{provider}")
async def start_authorization(
    provider: str,
    request: Request,
    flow: Annotated[Any, Depends(get_oauth_flow_controller)],
    settings: Annotated[Any, Depends(get_app_settings)],
    user_id: str | None = Query(None, description="User connecting the provider account."),
    scope: str | None = Query(None, description="Scope override; provider default otherwise."),
) -> RedirectResponse:
    """Redirect the browser to the provider consent screen."""
    try:
        authorization_url = flow.start_authorization(
            provider,
            user_id,
            redirect_uri=_callback_uri(request, settings, provider),
            scope=scope,
        )
    except (
        AuthorizationRequestError,
        UnsupportedProviderError,
        ProviderNotConfiguredError,
    ) as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc

    return RedirectResponse(url=authorization_url, status_code=HTTPStatus.FOUND)


@router.get("/callback/{provider}", response_class=PlainTextResponse)
async def complete_authorization(
    provider: str,
    request: Request,
    flow: Annotated[Any, Depends(get_oauth_flow_controller)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None, description="Error reported by the provider."),
) -> PlainTextResponse:
    """Complete the code exchange and store the resulting tokens."""
    if error:
        return PlainTextResponse(f"OAuth error: {error}", status_code=HTTPStatus.BAD_REQUEST)

    try:
        await flow.complete_authorization(
            provider,
            code,
            state,
            redirect_uri=_callback_uri(request, settings, provider),
        )
    except (
        AuthorizationRequestError,
        UnsupportedProviderError,
        ProviderNotConfiguredError,
        InvalidStateError,
    ) as exc:
        return PlainTextResponse(str(exc), status_code=HTTPStatus.BAD_REQUEST)
    except OAuthTokenExchangeError as exc:
        logger.error(
            "Token exchange failed for %s (status=%s): %s", provider, exc.status_code, exc.body
        )
        return PlainTextResponse(
            f"Token exchange failed: {exc.body or exc}",
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
        )

    return PlainTextResponse("Successfully connected! You can close this window.")


@router.post("/token/{provider}", response_model=TokenResponse)
async def issue_token(
    provider: str,
    token_service: Annotated[Any, Depends(get_token_issuance_service)],
    payload: TokenRequest | None = Body(None),
) -> TokenResponse:
    """Issue a live access token for a previously connected account."""
    user_id = payload.user_id if payload else None
    if not user_id:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="user_id is required")

    try:
        issued = await token_service.issue(provider, user_id)
    except UnsupportedProviderError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    except NotConnectedError as exc:
        logger.info("No %s tokens stored for user %s", provider, user_id)
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc
    except RefreshFailedError as exc:
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail=str(exc)) from exc

    return TokenResponse(access_token=issued.access_token, expires_at=issued.expires_at)


__all__ = ["router"]
