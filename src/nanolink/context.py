"""Explicit application context wired once per process or command."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
import structlog

from nanolink.services import (
    ConsolePrompt,
    LocalLibrary,
    NanopubFetcher,
    NanopubLinker,
    NanopubSearch,
    PatternExtractor,
    Reconciler,
    RecordStore,
    SparqlClient,
    UserPrompt,
)
from nanolink.settings import Settings

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class NanopubContext:
    settings: Settings
    client: httpx.AsyncClient
    store: RecordStore
    prompt: UserPrompt
    fetcher: NanopubFetcher
    extractor: PatternExtractor
    sparql: SparqlClient
    search: NanopubSearch
    reconciler: Reconciler
    linker: NanopubLinker


@asynccontextmanager
async def open_context(
    settings: Settings,
    *,
    store: RecordStore | None = None,
    prompt: UserPrompt | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[NanopubContext]:
    """Build every service on one shared HTTP client and close it afterwards."""
    store = store or LocalLibrary(settings)
    prompt = prompt or ConsolePrompt(timeout=settings.prompt_timeout)
    async with httpx.AsyncClient(
        timeout=settings.request_timeout, transport=transport, follow_redirects=True
    ) as client:
        fetcher = NanopubFetcher(client=client, settings=settings)
        extractor = PatternExtractor()
        sparql = SparqlClient(client=client, settings=settings)
        search = NanopubSearch(sparql, settings)
        reconciler = Reconciler(fetcher, extractor)
        linker = NanopubLinker(
            fetcher=fetcher,
            extractor=extractor,
            search=search,
            reconciler=reconciler,
            store=store,
            settings=settings,
        )
        logger.debug("context.opened", endpoint=settings.query_endpoint)
        yield NanopubContext(
            settings=settings,
            client=client,
            store=store,
            prompt=prompt,
            fetcher=fetcher,
            extractor=extractor,
            sparql=sparql,
            search=search,
            reconciler=reconciler,
            linker=linker,
        )
    logger.debug("context.closed")
