"""HTTP client for the credential broker's token issuance endpoint."""

from __future__ import annotations

import httpx


class BrokerUnavailableError(Exception):
    """Raised when the broker cannot supply a token over the network."""


class BrokerHTTPClient:
    """Request access tokens from a remote broker via ``POST /token/{provider}``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def fetch_token(self, provider: str, user_id: str) -> str:
        url = f"{self._base_url}/token/{provider}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(url, json={"user_id": user_id})
        except httpx.HTTPError as exc:
            raise BrokerUnavailableError(f"broker request failed: {exc!r}") from exc

        if not response.is_success:
            raise BrokerUnavailableError(
                f"broker returned {response.status_code}: {response.text[:200]}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise BrokerUnavailableError("broker returned a non-JSON body") from exc

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise BrokerUnavailableError("broker response has no access_token")
        return access_token


__all__ = ["BrokerHTTPClient", "BrokerUnavailableError"]
