"""Binary retrieval transport.

The manifest loader never talks HTTP directly. It goes through a
``BinaryRetriever``, which callers may replace (to inject authentication,
a different client, or a fake in tests). ``HttpxRetriever`` is the default
implementation on top of ``httpx.AsyncClient``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from dicom_manifest.core.exceptions import RetrievalError
from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetrievalResponse:
    """Status, body and content type of one GET."""

    status_code: int
    content: bytes
    content_type: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@runtime_checkable
class BinaryRetriever(Protocol):
    """Fetches binary bodies; transport failures raise RetrievalError."""

    async def get(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> RetrievalResponse: ...


class HttpxRetriever:
    """BinaryRetriever backed by ``httpx.AsyncClient``.

    Usable as an async context manager. When a client is injected the caller
    owns it and ``aclose`` leaves it open.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        verify_ssl: bool = True,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout_seconds,
            verify=verify_ssl,
            transport=transport,
            follow_redirects=True,
        )

    async def get(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> RetrievalResponse:
        try:
            response = await self._client.get(url, headers=dict(headers or {}))
        except httpx.RequestError as e:
            logger.warning("retrieval_transport_error", url=url, error=str(e))
            raise RetrievalError(
                f"GET {url} failed: {e}",
                error_code="transport_error",
                context={"url": url, "exception": type(e).__name__},
            ) from e

        logger.debug(
            "retrieval_response",
            url=url,
            status=response.status_code,
            size=len(response.content),
        )
        return RetrievalResponse(
            status_code=response.status_code,
            content=response.content,
            content_type=response.headers.get("content-type", ""),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpxRetriever:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
