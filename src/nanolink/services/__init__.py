"""Service abstractions for the nanolink application."""

from .extractor import Extractor, PatternExtractor
from .fetcher import DocumentFetcher, NanopubFetcher, document_url
from .linker import NanopubLinker, split_quotation
from .prompts import ConsolePrompt, ScriptedPrompt, UserPrompt
from .reconciler import ReconciledCandidate, Reconciler
from .search import (
    NanopubSearch,
    SearchResult,
    SparqlClient,
    build_citation_query,
    build_search_query,
)
from .storage import LocalLibrary, RecordStore

__all__ = [
    "DocumentFetcher",
    "NanopubFetcher",
    "document_url",
    "Extractor",
    "PatternExtractor",
    "NanopubSearch",
    "SearchResult",
    "SparqlClient",
    "build_search_query",
    "build_citation_query",
    "Reconciler",
    "ReconciledCandidate",
    "NanopubLinker",
    "split_quotation",
    "UserPrompt",
    "ConsolePrompt",
    "ScriptedPrompt",
    "RecordStore",
    "LocalLibrary",
]
