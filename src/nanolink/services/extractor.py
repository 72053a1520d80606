"""Pattern-based field extraction from TriG nanopublication documents.

Fields are matched line-agnostically with one regular expression each. Only
the first occurrence counts and a missing field simply stays ``None``; a real
RDF parser can replace :class:`PatternExtractor` behind the
:class:`Extractor` protocol without touching callers.
"""

from __future__ import annotations

import re
from typing import Protocol

import structlog

from nanolink.errors import InvalidInputError
from nanolink.models import NanopubDocument
from nanolink.utils import normalize_term

logger = structlog.get_logger(__name__)

_LITERAL = r'\s+"([^"]+)"'
_IRI = r"\s+<([^>]+)>"
_DOI_RESOLVER = re.compile(r"^https?://(?:dx\.)?doi\.org/", flags=re.IGNORECASE)

FIELD_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    "label": (re.compile(r"rdfs:label" + _LITERAL),),
    "created": (re.compile(r"dct:created" + _LITERAL),),
    "cited_identifier": (
        re.compile(r"cito:quotes" + _IRI),
        re.compile(r"cito:cites" + _IRI),
    ),
    "quoted_text": (re.compile(r"cito:hasQuotedText" + _LITERAL),),
    "comment": (re.compile(r"rdfs:comment" + _LITERAL),),
}


class Extractor(Protocol):
    def extract(self, text: str | None) -> NanopubDocument:
        ...


class PatternExtractor:
    """Extracts label, date, cited DOI, quotation and comment via regex."""

    def extract(self, text: str | None) -> NanopubDocument:
        if text is None or not text.strip():
            raise InvalidInputError("Nanopublication document is empty")
        fields: dict[str, str | None] = {}
        for name, patterns in FIELD_PATTERNS.items():
            fields[name] = _first_match(patterns, text)
        if fields["cited_identifier"]:
            fields["cited_identifier"] = _strip_resolver(fields["cited_identifier"])
        document = NanopubDocument(raw=text, **fields)
        if document.is_empty:
            logger.info("extract.no_fields", length=len(text))
        return document


def _first_match(patterns: tuple[re.Pattern[str], ...], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1).strip() or None
    return None


def _strip_resolver(identifier: str) -> str | None:
    if _DOI_RESOLVER.match(identifier):
        return normalize_term(identifier) or None
    return identifier
