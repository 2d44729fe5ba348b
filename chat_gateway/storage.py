from __future__ import annotations

import logging
from typing import Protocol

import httpx

from .errors import AttachmentFetchError


logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    async def fetch(self, url: str) -> bytes:
        """Resolve a stored file reference to its bytes."""
        ...


class HttpObjectStore:
    """Fetches file references over HTTP(S), e.g. signed storage URLs."""

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None) -> None:
        self._timeout = timeout
        self._client = client

    async def fetch(self, url: str) -> bytes:
        try:
            if self._client is not None:
                resp = await self._client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.get(url)
        except httpx.RequestError as exc:
            logger.warning("file fetch failed for %s: %s", url, exc)
            raise AttachmentFetchError(f"Failed to fetch file from storage: {exc}") from exc

        if resp.status_code >= 400:
            raise AttachmentFetchError(
                f"Failed to fetch file from storage (status {resp.status_code})"
            )
        return resp.content
