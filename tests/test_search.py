import json
from urllib.parse import parse_qs

import httpx
import pytest

from nanolink.errors import InvalidInputError, QueryError
from nanolink.services.search import (
    NanopubSearch,
    SparqlClient,
    build_citation_query,
    build_search_query,
)


def _bindings(*rows: dict) -> dict:
    return {"head": {"vars": ["np", "date", "author"]}, "results": {"bindings": list(rows)}}


def _row(uri: str, date: str | None = None, **extra: str) -> dict:
    row = {"np": {"type": "uri", "value": uri}}
    if date:
        row["date"] = {"type": "literal", "value": date}
    for name, value in extra.items():
        row[name] = {"type": "literal", "value": value}
    return row


def test_search_query_is_case_folded_substring_match() -> None:
    query = build_search_query("https://doi.org/10.1/ABC", 25)

    assert 'CONTAINS(LCASE(STR(?s)), "10.1/abc")' in query
    assert 'CONTAINS(LCASE(STR(?p)), "10.1/abc")' in query
    assert 'CONTAINS(LCASE(STR(?o)), "10.1/abc")' in query
    assert "GRAPH ?assertion" in query
    assert "ORDER BY DESC(?date)" in query
    assert query.rstrip().endswith("LIMIT 25")


def test_search_query_escapes_quotes() -> None:
    query = build_search_query('10.1/a"b', 10)
    assert '"10.1/a\\"b"' in query


@pytest.mark.parametrize("limit", [0, 101])
def test_search_query_limit_is_bounded(limit) -> None:
    with pytest.raises(InvalidInputError):
        build_search_query("10.1/x", limit)


def test_search_query_rejects_empty_term() -> None:
    with pytest.raises(InvalidInputError):
        build_search_query("https://doi.org/", 10)


def test_citation_query_targets_doi_url() -> None:
    query = build_citation_query("dx.doi.org/10.1/abc", 100)
    assert "cito:quotes <https://doi.org/10.1/abc>" in query
    with pytest.raises(InvalidInputError):
        build_citation_query("10.1/a> <b", 100)


@pytest.mark.asyncio
async def test_post_sends_query_body(settings) -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_bindings(_row("https://w3id.org/np/RA1", "2024-01-02")))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        rows = await SparqlClient(client, settings).select("SELECT * WHERE {}", method="POST")

    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == settings.query_endpoint
    assert request.headers["content-type"] == "application/sparql-query"
    assert request.headers["accept"] == "application/sparql-results+json"
    assert request.content == b"SELECT * WHERE {}"
    assert rows[0]["np"]["value"] == "https://w3id.org/np/RA1"


@pytest.mark.asyncio
async def test_get_sends_url_encoded_query(settings) -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_bindings())

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        rows = await SparqlClient(client, settings).select("SELECT ?np WHERE {}", method="GET")

    request = captured[0]
    assert request.method == "GET"
    assert parse_qs(request.url.query.decode())["query"] == ["SELECT ?np WHERE {}"]
    assert rows == []


@pytest.mark.asyncio
async def test_error_status_raises_query_error_with_query(settings) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(QueryError) as excinfo:
            await SparqlClient(client, settings).select("SELECT 1")

    assert excinfo.value.status_code == 500
    assert excinfo.value.query == "SELECT 1"


@pytest.mark.asyncio
async def test_unparseable_body_raises_query_error(settings) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(QueryError):
            await SparqlClient(client, settings).select("SELECT 1")


@pytest.mark.asyncio
async def test_search_maps_rows_and_keeps_backend_order(settings) -> None:
    payload = _bindings(
        _row("https://w3id.org/np/RA2", "2024-03-01"),
        {"date": {"type": "literal", "value": "2024-02-01"}},
        _row("https://w3id.org/np/RA1", "2024-04-01", quotation="q"),
    )
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=json.dumps(payload)))
    async with httpx.AsyncClient(transport=transport) as client:
        search = NanopubSearch(SparqlClient(client, settings), settings)
        results = await search.search("https://doi.org/10.1/abc", limit=10)

    assert [result.uri for result in results] == [
        "https://w3id.org/np/RA2",
        "https://w3id.org/np/RA1",
    ]
    assert results[0].created == "2024-03-01"
    assert results[1].extra == {"quotation": "q"}


@pytest.mark.asyncio
async def test_search_with_no_bindings_is_empty(settings) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=_bindings()))
    async with httpx.AsyncClient(transport=transport) as client:
        search = NanopubSearch(SparqlClient(client, settings), settings)
        assert await search.search("10.1/none") == []
