"""Outbound HTTP for third-party JSON APIs (transactional email delivery)."""

from typing import Any, Optional

import httpx


class HttpClient:
    """Owns one httpx.AsyncClient for the lifetime of the app.

    Created in the lifespan handler and closed at shutdown. Transport errors
    propagate as httpx.HTTPError; callers decide what a failure means.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        return await self._client.post(url, json=payload, headers=headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
