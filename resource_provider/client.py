"""Outbound HTTP calls from the provider to consumer services (uses httpx.AsyncClient)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from resource_provider.exceptions import RemoteDeliveryError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
RESOURCE_PATH = "/backend/api/resources/{resource_type}/{resource_uuid}"


def resource_path(resource_type: str, resource_uuid: str) -> str:
    return RESOURCE_PATH.format(resource_type=resource_type, resource_uuid=resource_uuid)


class ConsumerClient:
    """Issues create/update/delete calls against consumer endpoints.

    Usage::

        async with ConsumerClient(timeout=5.0) as client:
            await client.request("PUT", "https://consumer.example/backend/api/...", json=body)
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = http_client or httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "ConsumerClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send one request; raise RemoteDeliveryError unless the answer is 2xx."""
        try:
            resp = await self._client.request(method, url, json=json)
        except httpx.HTTPError as exc:
            raise RemoteDeliveryError(method, url, str(exc) or type(exc).__name__) from exc

        if not resp.is_success:
            raise RemoteDeliveryError(method, url, resp.text[:200], status_code=resp.status_code)

        logger.debug(f"{method} {url} -> {resp.status_code}")
        return resp
