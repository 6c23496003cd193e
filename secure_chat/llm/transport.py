"""
Transport layer for chat requests.

The chat client only needs two things from a transport: a `ready()` coroutine
that completes once the channel can be used, and a `fetch()` that returns an
unread, streaming `httpx.Response`. Channel security (attestation, payload
encryption) belongs to the transport and is invisible to the client.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class SecureTransport(Protocol):
    """Collaborator that owns channel setup and request delivery."""

    async def ready(self) -> None:
        """Complete once the channel is established."""
        ...

    async def fetch(
        self,
        path: str,
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        """Send a request and return the response with its body unread.

        The caller must close the response.
        """
        ...


class HttpTransport:
    """Plain httpx transport for a trusted endpoint such as a local proxy."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: httpx.Timeout | float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.base_url = base_url
        self.client: httpx.AsyncClient = client or httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
        )
        self._ready = False
        self._ready_lock = asyncio.Lock()

    async def ready(self) -> None:
        """Mark the channel usable. Safe to await concurrently and repeatedly."""
        async with self._ready_lock:
            if self._ready:
                return
            self._ready = True
            logger.info("Transport ready", base_url=self.base_url)

    async def fetch(
        self,
        path: str,
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        request = self.client.build_request(
            method, path, headers=headers, content=content
        )
        return await self.client.send(request, stream=True)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> HttpTransport:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
