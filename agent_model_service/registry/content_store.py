"""
IPFS content store gateway.

Fetches objects by hash through the IPFS HTTP API (`/api/v0/cat`). Nothing
is cached here; callers decide what to persist.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..errors import InternalError

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class ContentStoreGateway:
    """Thin async client for `ipfs cat`."""

    def __init__(
        self,
        endpoint: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def cat(self, content_hash: str) -> bytes:
        url = f"{self._endpoint}/api/v0/cat"
        LOGGER.info("Fetching %s from IPFS endpoint %s", content_hash, self._endpoint)
        try:
            response = await self._client.post(url, params={"arg": content_hash})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise InternalError(
                f"Failed to get object {content_hash} from IPFS endpoint {self._endpoint}. Error: {exc}"
            ) from exc
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()
