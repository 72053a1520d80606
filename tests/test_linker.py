from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy.exc import SQLAlchemyError

from nanolink.errors import FetchError, InvalidInputError, LinkError
from nanolink.models import BibRecord, CandidateState
from nanolink.services.extractor import PatternExtractor
from nanolink.services.linker import NanopubLinker, split_quotation
from nanolink.services.prompts import ScriptedPrompt
from nanolink.services.reconciler import Reconciler
from nanolink.services.search import SearchResult
from nanolink.services import storage
from nanolink.services.storage import LocalLibrary

NP = "https://w3id.org/np/RAexample"


class _StubFetcher:
    def __init__(self, documents: dict[str, str]) -> None:
        self._documents = documents

    async def fetch(self, uri: str) -> str:
        if uri not in self._documents:
            raise FetchError(uri, status_code=404)
        return self._documents[uri]


class _StubSearch:
    def __init__(self, results: list[SearchResult]) -> None:
        self._results = results
        self.terms: list[str] = []

    async def search(self, term: str, *, limit: int = 10, method: str = "POST") -> list[SearchResult]:
        self.terms.append(term)
        return self._results[:limit]


def _linker(settings, documents=None, results=None) -> tuple[NanopubLinker, LocalLibrary, _StubSearch]:
    fetcher = _StubFetcher(documents or {})
    extractor = PatternExtractor()
    store = LocalLibrary(settings)
    search = _StubSearch(results or [])
    linker = NanopubLinker(
        fetcher=fetcher,
        extractor=extractor,
        search=search,
        reconciler=Reconciler(fetcher, extractor),
        store=store,
        settings=settings,
    )
    return linker, store, search


@pytest.mark.asyncio
async def test_import_creates_webpage_record_with_note(settings, sample_trig) -> None:
    linker, store, _ = _linker(settings, {NP: sample_trig})

    linked = await linker.import_by_identifier(NP)

    record = await store.get_record(linked.record.key)
    assert record.item_type == "webpage"
    assert record.title == "Example Title"
    assert record.url == NP
    assert record.date == "2023-05-01"
    assert record.tags == ["nanopublication", "quotes:10.1/abc"]
    assert linked.note is not None
    assert "sample quote" in linked.note.body
    assert 'href="https://doi.org/10.1/abc"' in linked.note.body


@pytest.mark.asyncio
async def test_import_without_fields_uses_fallback_title(settings) -> None:
    linker, store, _ = _linker(settings, {NP: "nothing to see"})

    linked = await linker.import_by_identifier(NP)

    assert linked.record.title == "Nanopublication"
    assert linked.note is None
    assert await store.list_notes(linked.record.key) == []


@pytest.mark.asyncio
async def test_import_rejects_bad_uri_and_propagates_fetch_errors(settings) -> None:
    linker, store, _ = _linker(settings)

    with pytest.raises(InvalidInputError):
        await linker.import_by_identifier("not a uri")
    with pytest.raises(FetchError):
        await linker.import_by_identifier(NP)
    assert await store.list_records() == []


@pytest.mark.asyncio
async def test_search_for_record_requires_doi(settings) -> None:
    linker, _, _ = _linker(settings)
    with pytest.raises(InvalidInputError):
        await linker.search_for_record(BibRecord(title="No DOI"))


@pytest.mark.asyncio
async def test_search_for_record_normalizes_doi_and_enriches(settings, sample_trig) -> None:
    results = [SearchResult(uri=NP), SearchResult(uri="https://w3id.org/np/RAgone")]
    linker, _, search = _linker(settings, {NP: sample_trig}, results)

    candidates = await linker.search_for_record(
        BibRecord(title="Paper", doi="https://doi.org/10.1/abc")
    )

    assert search.terms == ["10.1/abc"]
    assert candidates[0].document.quoted_text == "sample quote"
    assert candidates[1].document is None


@pytest.mark.asyncio
async def test_link_candidate_attaches_and_appends_extra(settings, sample_trig) -> None:
    linker, store, _ = _linker(settings, {NP: sample_trig}, [SearchResult(uri=NP)])
    record = await store.create_record(BibRecord(title="Paper", doi="10.1/abc", extra="Note: keep"))
    candidates = await linker.search_for_record(record)

    linked = await linker.link_candidate(record, candidates[0])

    stored = await store.get_record(record.key)
    assert stored.extra == f"Note: keep\nNanopublication: {NP}"
    attachments = await store.list_attachments(record.key)
    assert [(a.url, a.title) for a in attachments] == [(NP, "Nanopublication: RAexample")]
    assert linked.note is not None and "Example Title" in linked.note.body


@pytest.mark.asyncio
async def test_link_candidate_for_missing_record_raises(settings) -> None:
    linker, _, _ = _linker(settings, results=[SearchResult(uri=NP)])
    candidates = await linker.search_for_record(
        BibRecord(title="Ghost", doi="10.1/abc"), enrich=False
    )
    with pytest.raises(LinkError):
        await linker.link_candidate(BibRecord(title="Ghost", doi="10.1/abc"), candidates[0])


@pytest.mark.asyncio
async def test_reconcile_decline_leaves_store_untouched(settings, sample_trig) -> None:
    linker, store, _ = _linker(settings, {NP: sample_trig}, [SearchResult(uri=NP)])
    record = await store.create_record(BibRecord(title="Paper", doi="10.1/abc"))

    reviewed = await linker.reconcile_record(record, ScriptedPrompt(confirm=False))

    assert reviewed[0].state is CandidateState.DECLINED
    assert await store.list_attachments(record.key) == []
    assert await store.list_notes(record.key) == []
    assert (await store.get_record(record.key)).extra == ""


@pytest.mark.asyncio
async def test_reconcile_accept_links(settings, sample_trig) -> None:
    linker, store, _ = _linker(settings, {NP: sample_trig}, [SearchResult(uri=NP)])
    record = await store.create_record(BibRecord(title="Paper", doi="10.1/abc"))

    reviewed = await linker.reconcile_record(record, ScriptedPrompt(confirm=True))

    assert reviewed[0].state is CandidateState.LINKED
    assert len(await store.list_attachments(record.key)) == 1


@pytest.mark.asyncio
async def test_reconcile_with_no_results_returns_empty(settings) -> None:
    linker, store, _ = _linker(settings)
    record = await store.create_record(BibRecord(title="Paper", doi="10.1/abc"))
    assert await linker.reconcile_record(record, ScriptedPrompt(confirm=True)) == []


@pytest.mark.asyncio
async def test_link_uri_writes_created_note(settings) -> None:
    linker, store, _ = _linker(settings)
    record = await store.create_record(BibRecord(title="Paper", doi="10.1/abc"))

    linked = await linker.link_uri(record, NP, quotation="a <b>", interpretation="matters")

    assert "Nanopublication Created" in linked.note.body
    assert "a &lt;b&gt;" in linked.note.body
    with pytest.raises(InvalidInputError):
        await linker.link_uri(record, "ftp://example.org/np")


def _fail_note_writes(monkeypatch) -> None:
    def _broken_note(**kwargs):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(storage, "NoteRow", _broken_note)


@pytest.mark.asyncio
async def test_failed_link_leaves_no_attachment_or_extra(settings, monkeypatch) -> None:
    linker, store, _ = _linker(settings)
    record = await store.create_record(BibRecord(title="Paper", doi="10.1/abc", extra="Note: keep"))
    _fail_note_writes(monkeypatch)

    with pytest.raises(LinkError):
        await linker.link_uri(record, NP, quotation="a quote")

    assert await store.list_attachments(record.key) == []
    assert (await store.get_record(record.key)).extra == "Note: keep"


@pytest.mark.asyncio
async def test_failed_import_leaves_no_record(settings, sample_trig, monkeypatch) -> None:
    linker, store, _ = _linker(settings, {NP: sample_trig})
    _fail_note_writes(monkeypatch)

    with pytest.raises(LinkError):
        await linker.import_by_identifier(NP)

    assert await store.list_records() == []


def test_split_quotation_keeps_short_text() -> None:
    parts = split_quotation("short")
    assert parts.start == "short"
    assert parts.end is None


def test_split_quotation_shortens_long_text() -> None:
    text = "a" * 300 + "b" * 300
    parts = split_quotation(text)
    assert parts.start == "a" * 240 + "..."
    assert parts.end == "..." + "b" * 240


def test_publish_url_carries_template_parameters(settings) -> None:
    linker, _, _ = _linker(settings)
    url = linker.publish_url(BibRecord(title="Paper", doi="10.1/abc"), "x" * 600, "why")

    parsed = urlparse(url)
    params = parse_qs(parsed.query)
    assert url.startswith(settings.nanodash_url + "?")
    assert params["template"] == [settings.template_url]
    assert params["template-version"] == ["latest"]
    assert params["param_paper"] == ["https://doi.org/10.1/abc"]
    assert params["param_comment"] == ["why"]
    assert len(params["param_quotation"][0]) == 243
    assert "param_quotation-end" in params
    with pytest.raises(InvalidInputError):
        linker.publish_url(BibRecord(title="No DOI"), "quote", "why")
