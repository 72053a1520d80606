"""Row-by-row reconciliation of search results against a library record."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

import structlog

from nanolink.errors import NanolinkError, PromptTimeoutError
from nanolink.models import (
    CANDIDATE_TRANSITIONS,
    BibRecord,
    CandidateState,
    LinkedRecord,
    NanopubDocument,
)
from nanolink.utils import nanopub_short_id
from .extractor import Extractor
from .fetcher import DocumentFetcher
from .prompts import UserPrompt
from .search import SearchResult

logger = structlog.get_logger(__name__)

LinkCallback = Callable[[BibRecord, "ReconciledCandidate"], Awaitable[LinkedRecord]]


@dataclass(slots=True)
class ReconciledCandidate:
    result: SearchResult
    document: NanopubDocument | None = None
    enrich_error: str | None = None
    state: CandidateState = CandidateState.FOUND
    linked: LinkedRecord | None = None

    @property
    def uri(self) -> str:
        return self.result.uri

    @property
    def quoted_text(self) -> str | None:
        if self.document and self.document.quoted_text:
            return self.document.quoted_text
        return self.result.extra.get("quotation")

    @property
    def comment(self) -> str | None:
        if self.document and self.document.comment:
            return self.document.comment
        return self.result.extra.get("comment")

    def advance(self, state: CandidateState) -> None:
        if state not in CANDIDATE_TRANSITIONS[self.state]:
            raise ValueError(f"Illegal candidate transition {self.state.value} -> {state.value}")
        self.state = state

    def describe(self) -> str:
        """One-paragraph summary shown before asking for a decision."""
        lines = [f"Nanopublication {nanopub_short_id(self.uri)}", self.uri]
        label = self.document.label if self.document else None
        if label:
            lines.append(f"Label: {label}")
        created = self.document.created_date if self.document else None
        if created or self.result.created:
            lines.append(f"Created: {created or self.result.created}")
        if self.result.author:
            lines.append(f"Author: {self.result.author}")
        if self.quoted_text:
            lines.append(f'Quotation: "{self.quoted_text}"')
        if self.comment:
            lines.append(f"Comment: {self.comment}")
        return "\n".join(lines)


class Reconciler:
    """Enriches search results and collects an accept/decline per row."""

    def __init__(self, fetcher: DocumentFetcher, extractor: Extractor) -> None:
        self._fetcher = fetcher
        self._extractor = extractor

    async def enrich(self, result: SearchResult, *, enabled: bool = True) -> ReconciledCandidate:
        candidate = ReconciledCandidate(result=result)
        if not enabled:
            candidate.advance(CandidateState.ENRICH_SKIPPED)
            return candidate
        candidate.advance(CandidateState.ENRICH_ATTEMPTED)
        try:
            raw = await self._fetcher.fetch(result.uri)
            candidate.document = self._extractor.extract(raw)
        except NanolinkError as exc:
            logger.warning("reconcile.enrich_failed", uri=result.uri, error=str(exc))
            candidate.enrich_error = str(exc)
        return candidate

    async def enrich_all(
        self, results: Iterable[SearchResult], *, enabled: bool = True
    ) -> list[ReconciledCandidate]:
        candidates: list[ReconciledCandidate] = []
        for result in results:
            candidates.append(await self.enrich(result, enabled=enabled))
        return candidates

    async def review(
        self,
        record: BibRecord,
        candidates: Iterable[ReconciledCandidate],
        prompt: UserPrompt,
        link: LinkCallback,
    ) -> list[ReconciledCandidate]:
        reviewed: list[ReconciledCandidate] = []
        for candidate in candidates:
            candidate.advance(CandidateState.AWAITING_DECISION)
            question = f"{candidate.describe()}\nLink to '{record.title}'?"
            try:
                accepted = await prompt.confirm(question)
            except PromptTimeoutError:
                logger.warning("reconcile.prompt_timeout", uri=candidate.uri)
                accepted = False
            if accepted:
                candidate.linked = await link(record, candidate)
                candidate.advance(CandidateState.LINKED)
                logger.info("reconcile.linked", uri=candidate.uri, record=record.key)
            else:
                candidate.advance(CandidateState.DECLINED)
                logger.info("reconcile.declined", uri=candidate.uri, record=record.key)
            reviewed.append(candidate)
        return reviewed
