"""Operations that connect nanopublications to records in the library."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from html import escape
from urllib.parse import urlencode

import structlog

from nanolink.errors import InvalidInputError, LinkError
from nanolink.models import BibRecord, LinkedRecord, NanopubDocument
from nanolink.settings import Settings
from nanolink.utils import doi_url, is_http_uri, nanopub_short_id, normalize_term
from .extractor import Extractor
from .fetcher import DocumentFetcher
from .prompts import UserPrompt
from .reconciler import ReconciledCandidate, Reconciler
from .search import NanopubSearch
from .storage import RecordStore

logger = structlog.get_logger(__name__)

LONG_QUOTATION = 500
QUOTATION_EDGE = 240


@dataclass(slots=True)
class QuotationParts:
    start: str
    end: str | None = None


def split_quotation(text: str) -> QuotationParts:
    """Shorten quotations the publishing template cannot take in one field."""
    text = text.strip()
    if len(text) <= LONG_QUOTATION:
        return QuotationParts(start=text)
    return QuotationParts(
        start=text[:QUOTATION_EDGE] + "...",
        end="..." + text[-QUOTATION_EDGE:],
    )


def render_content_note(document: NanopubDocument, heading: str = "Nanopublication Content") -> str:
    parts = [f"<h2>{escape(heading)}</h2>"]
    if document.label:
        parts.append(f"<p><b>Label:</b> {escape(document.label)}</p>")
    if document.cited_identifier:
        target = escape(doi_url(document.cited_identifier))
        parts.append(
            f'<p><b>References:</b> <a href="{target}">{escape(document.cited_identifier)}</a></p>'
        )
    if document.quoted_text:
        parts.append(f'<p><b>Quotation:</b> "{escape(document.quoted_text)}"</p>')
    if document.comment:
        parts.append(f"<p><b>Comment:</b> {escape(document.comment)}</p>")
    if document.created_date:
        parts.append(f"<p><b>Created:</b> {escape(document.created_date)}</p>")
    return "".join(parts)


def render_created_note(uri: str, quotation: str | None, interpretation: str | None) -> str:
    safe_uri = escape(uri)
    parts = [
        "<h2>Nanopublication Created</h2>",
        f'<p><b>URL:</b> <a href="{safe_uri}">{safe_uri}</a></p>',
    ]
    if quotation:
        parts.append(f'<p><b>Quotation:</b> "{escape(quotation)}"</p>')
    if interpretation:
        parts.append(f"<p><b>Interpretation:</b> {escape(interpretation)}</p>")
    return "".join(parts)


class NanopubLinker:
    """Import, search and link nanopublications for library records."""

    def __init__(
        self,
        fetcher: DocumentFetcher,
        extractor: Extractor,
        search: NanopubSearch,
        reconciler: Reconciler,
        store: RecordStore,
        settings: Settings,
    ) -> None:
        self._fetcher = fetcher
        self._extractor = extractor
        self._search = search
        self._reconciler = reconciler
        self._store = store
        self._settings = settings

    async def import_by_identifier(self, uri: str) -> LinkedRecord:
        uri = (uri or "").strip()
        if not is_http_uri(uri):
            raise InvalidInputError(f"Not an http(s) nanopublication URI: {uri!r}")
        raw = await self._fetcher.fetch(uri)
        document = self._extractor.extract(raw)
        tags = ["nanopublication"]
        if document.cited_identifier:
            tags.append(f"quotes:{document.cited_identifier}")
        record = BibRecord(
            item_type="webpage",
            title=document.label or "Nanopublication",
            url=uri,
            date=document.created_date,
            access_date=date.today(),
            tags=tags,
        )
        note_body = None
        if document.quoted_text or document.cited_identifier:
            note_body = render_content_note(document)
        record, note = await self._store.import_record(record, note_body)
        logger.info("link.imported", uri=uri, record=record.key, note=note is not None)
        return LinkedRecord(record=record, nanopub_uri=uri, note=note)

    async def search_for_record(
        self, record: BibRecord, *, limit: int = 10, enrich: bool = True
    ) -> list[ReconciledCandidate]:
        if not record.doi:
            raise InvalidInputError(f"Record {record.key} has no DOI")
        results = await self._search.search(normalize_term(record.doi), limit=limit)
        return await self._reconciler.enrich_all(results, enabled=enrich)

    async def link_candidate(self, record: BibRecord, candidate: ReconciledCandidate) -> LinkedRecord:
        body = None
        if candidate.document is not None and not candidate.document.is_empty:
            body = render_content_note(candidate.document)
        return await self._link(record, candidate.uri, note_body=body)

    async def link_uri(
        self,
        record: BibRecord,
        uri: str,
        *,
        quotation: str | None = None,
        interpretation: str | None = None,
    ) -> LinkedRecord:
        uri = (uri or "").strip()
        if not is_http_uri(uri):
            raise InvalidInputError(f"Not an http(s) nanopublication URI: {uri!r}")
        body = None
        if quotation or interpretation:
            body = render_created_note(uri, quotation, interpretation)
        return await self._link(record, uri, note_body=body)

    async def reconcile_record(
        self, record: BibRecord, prompt: UserPrompt, *, limit: int = 10, enrich: bool = True
    ) -> list[ReconciledCandidate]:
        candidates = await self.search_for_record(record, limit=limit, enrich=enrich)
        if not candidates:
            logger.info("link.no_candidates", record=record.key)
            return []
        return await self._reconciler.review(record, candidates, prompt, self.link_candidate)

    def publish_url(self, record: BibRecord, quotation: str, comment: str) -> str:
        """Nanodash link that opens the quotation template prefilled for the record."""
        if not record.doi:
            raise InvalidInputError(f"Record {record.key} has no DOI")
        if not quotation or not quotation.strip():
            raise InvalidInputError("Quotation is empty")
        parts = split_quotation(quotation)
        params = {
            "template": self._settings.template_url,
            "template-version": "latest",
            "param_paper": doi_url(record.doi),
            "param_quotation": parts.start,
            "param_comment": comment,
        }
        if parts.end:
            params["param_quotation-end"] = parts.end
        return f"{self._settings.nanodash_url}?{urlencode(params)}"

    async def _link(self, record: BibRecord, uri: str, *, note_body: str | None) -> LinkedRecord:
        current = await self._store.get_record(record.key)
        if current is None:
            raise LinkError(f"Record {record.key} does not exist")
        line = f"Nanopublication: {uri}"
        current.extra = f"{current.extra}\n{line}" if current.extra else line
        current, attachment, note = await self._store.save_link(
            current,
            url=uri,
            title=f"Nanopublication: {nanopub_short_id(uri)}",
            note_body=note_body,
        )
        logger.info("link.created", uri=uri, record=current.key)
        return LinkedRecord(record=current, nanopub_uri=uri, attachment=attachment, note=note)
