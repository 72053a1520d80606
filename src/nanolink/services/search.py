"""SPARQL query construction and execution against the nanopub query service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
import structlog

from nanolink.errors import InvalidInputError, QueryError
from nanolink.settings import Settings
from nanolink.utils import doi_url, normalize_term

logger = structlog.get_logger(__name__)

SPARQL_RESULTS_JSON = "application/sparql-results+json"
SPARQL_QUERY = "application/sparql-query"

QueryMethod = Literal["POST", "GET"]

_PREFIXES = """PREFIX np: <http://www.nanopub.org/nschema#>
PREFIX dct: <http://purl.org/dc/terms/>
PREFIX cito: <http://purl.org/spar/cito/>
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>
"""

# Substring match on every position of every assertion triple. Loose on
# purpose: a DOI fragment may show up in any of the three.
_SEARCH_TEMPLATE = (
    _PREFIXES
    + """
SELECT DISTINCT ?np ?date ?author WHERE {{
  ?np np:hasAssertion ?assertion .
  GRAPH ?assertion {{ ?s ?p ?o . }}
  FILTER(
    CONTAINS(LCASE(STR(?s)), "{term}") ||
    CONTAINS(LCASE(STR(?p)), "{term}") ||
    CONTAINS(LCASE(STR(?o)), "{term}")
  )
  OPTIONAL {{
    ?np np:hasPublicationInfo ?pubinfo .
    GRAPH ?pubinfo {{
      OPTIONAL {{ ?np dct:created ?date . }}
      OPTIONAL {{ ?np dct:creator ?author . }}
    }}
  }}
}}
ORDER BY DESC(?date)
LIMIT {limit}
"""
)

_CITATION_TEMPLATE = (
    _PREFIXES
    + """
SELECT DISTINCT ?np ?quotation ?comment WHERE {{
  GRAPH ?assertion {{
    ?s cito:quotes <{paper}> .
    OPTIONAL {{ <{paper}> cito:hasQuotedText ?quotation . }}
    OPTIONAL {{ <{paper}> rdfs:comment ?comment . }}
  }}
  ?np np:hasAssertion ?assertion .
}}
LIMIT {limit}
"""
)


@dataclass(slots=True)
class SearchResult:
    uri: str
    created: str | None = None
    author: str | None = None
    extra: dict[str, str] = field(default_factory=dict)


def escape_literal(value: str) -> str:
    """Escape a value for use inside a double-quoted SPARQL string."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def build_search_query(term: str, limit: int, *, max_results: int = 100) -> str:
    """Case-insensitive substring search over assertion graphs, newest first."""
    _check_limit(limit, max_results)
    normalized = normalize_term(term)
    if not normalized:
        raise InvalidInputError("Search term is empty")
    return _SEARCH_TEMPLATE.format(term=escape_literal(normalized.lower()), limit=limit)


def build_citation_query(doi: str, limit: int, *, max_results: int = 100) -> str:
    """Nanopublications whose assertion quotes the paper ``https://doi.org/<doi>``."""
    _check_limit(limit, max_results)
    normalized = normalize_term(doi)
    if not normalized or any(ch in normalized for ch in "<>\" {}|\\^`"):
        raise InvalidInputError(f"Not a usable DOI: {doi!r}")
    return _CITATION_TEMPLATE.format(paper=doi_url(normalized), limit=limit)


def _check_limit(limit: int, max_results: int) -> None:
    if limit < 1 or limit > max_results:
        raise InvalidInputError(f"limit must be between 1 and {max_results}, got {limit}")


class SparqlClient:
    """Executes SELECT queries against a single SPARQL endpoint."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    @property
    def endpoint(self) -> str:
        return self._settings.query_endpoint

    async def select(self, query: str, *, method: QueryMethod = "POST") -> list[dict[str, Any]]:
        logger.info("query.attempt", endpoint=self.endpoint, method=method)
        headers = {"Accept": SPARQL_RESULTS_JSON}
        try:
            if method == "POST":
                headers["Content-Type"] = SPARQL_QUERY
                response = await self._client.post(
                    self.endpoint,
                    content=query.encode("utf-8"),
                    headers=headers,
                    timeout=self._settings.request_timeout,
                )
            else:
                response = await self._client.get(
                    self.endpoint,
                    params={"query": query},
                    headers=headers,
                    timeout=self._settings.request_timeout,
                )
        except httpx.HTTPError as exc:
            logger.warning("query.error", endpoint=self.endpoint, error=str(exc))
            raise QueryError(f"Query request failed: {exc}", query=query) from exc
        if response.status_code != 200:
            logger.warning("query.status", endpoint=self.endpoint, status=response.status_code)
            raise QueryError("Query failed", query=query, status_code=response.status_code)
        return _parse_bindings(response, query)


def _parse_bindings(response: httpx.Response, query: str) -> list[dict[str, Any]]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise QueryError(
            "Query endpoint returned an unparseable body",
            query=query,
            status_code=response.status_code,
        ) from exc
    results = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(payload, dict) or not isinstance(results or {}, dict):
        raise QueryError(
            "Query endpoint returned an unexpected payload",
            query=query,
            status_code=response.status_code,
        )
    bindings = (results or {}).get("bindings") or []
    if not isinstance(bindings, list):
        raise QueryError(
            "Query endpoint returned malformed bindings",
            query=query,
            status_code=response.status_code,
        )
    return bindings


def binding_value(row: dict[str, Any], name: str) -> str | None:
    cell = row.get(name)
    if not isinstance(cell, dict):
        return None
    return cell.get("value") or None


def rows_to_results(rows: list[dict[str, Any]]) -> list[SearchResult]:
    """Map SPARQL bindings to search results, keeping backend order."""
    results: list[SearchResult] = []
    for row in rows:
        uri = binding_value(row, "np")
        if not uri:
            logger.debug("query.row_skipped", variables=sorted(row))
            continue
        extra: dict[str, str] = {}
        for name in row:
            value = binding_value(row, name)
            if name not in {"np", "date", "author"} and value is not None:
                extra[name] = value
        results.append(
            SearchResult(
                uri=uri,
                created=binding_value(row, "date"),
                author=binding_value(row, "author"),
                extra=extra,
            )
        )
    return results


class NanopubSearch:
    """Builds nanopublication queries and maps their rows to results."""

    def __init__(self, sparql: SparqlClient, settings: Settings) -> None:
        self._sparql = sparql
        self._settings = settings

    async def search(
        self, term: str, *, limit: int = 10, method: QueryMethod = "POST"
    ) -> list[SearchResult]:
        query = build_search_query(term, limit, max_results=self._settings.max_results)
        rows = await self._sparql.select(query, method=method)
        results = rows_to_results(rows)
        logger.info("query.results", term=normalize_term(term), count=len(results))
        return results

    async def citing(self, doi: str, *, limit: int = 100) -> list[SearchResult]:
        query = build_citation_query(doi, limit, max_results=self._settings.max_results)
        rows = await self._sparql.select(query, method="POST")
        return rows_to_results(rows)
