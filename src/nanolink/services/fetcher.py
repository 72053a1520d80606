"""Retrieves nanopublication documents from the content host."""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from nanolink.errors import FetchError, InvalidInputError
from nanolink.settings import Settings
from nanolink.utils import is_http_uri

logger = structlog.get_logger(__name__)


class DocumentFetcher(Protocol):
    """Protocol for components that return the raw text of a nanopublication."""

    async def fetch(self, uri: str) -> str:
        ...


def document_url(uri: str, settings: Settings) -> str:
    """Map a public nanopublication URI onto its machine-readable TriG location."""
    location = uri.strip()
    purl = settings.purl_prefix
    for prefix in (purl, purl.replace("https://", "http://", 1)):
        if location.startswith(prefix):
            location = settings.document_host + location[len(prefix):]
            break
    if not location.endswith(settings.document_suffix):
        location += settings.document_suffix
    return location


class NanopubFetcher:
    """Single-attempt GET against the nanopublication content host."""

    name = "knowledgepixels"

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    async def fetch(self, uri: str) -> str:
        if not is_http_uri(uri):
            raise InvalidInputError(f"Not an http(s) nanopublication URI: {uri!r}")
        url = document_url(uri, self._settings)
        logger.info("fetch.attempt", uri=uri, url=url)
        try:
            response = await self._client.get(url, timeout=self._settings.request_timeout)
        except httpx.HTTPError as exc:
            logger.warning("fetch.error", url=url, error=str(exc))
            raise FetchError(url, cause=exc) from exc
        if response.status_code != 200:
            logger.warning("fetch.status", url=url, status=response.status_code)
            raise FetchError(url, status_code=response.status_code)
        return response.text
