"""Utility helpers for identifier normalization and record keys."""

from __future__ import annotations

import re
import secrets
from datetime import datetime, timezone
from urllib.parse import urlparse

DOI_PREFIX_PATTERN = re.compile(r"^(?:https?://)?(?:(?:dx\.)?doi\.org/)?", flags=re.IGNORECASE)
KEY_ALPHABET = "23456789ABCDEFGHIJKLMNPQRSTUVWXYZ"


def normalize_term(term: str) -> str:
    """Strip a resolver prefix (``https://dx.doi.org/`` and friends) from a DOI."""
    if not term:
        return ""
    return DOI_PREFIX_PATTERN.sub("", term.strip(), count=1)


def is_http_uri(value: str | None) -> bool:
    """Check that the value is an absolute http(s) URI with a host."""
    if not value:
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def nanopub_short_id(uri: str) -> str:
    """Return the trailing artifact code of a nanopublication URI."""
    return uri.rstrip("/").rsplit("/", 1)[-1]


def doi_url(doi: str) -> str:
    return f"https://doi.org/{normalize_term(doi)}"


def new_record_key() -> str:
    """Generate an eight character record key."""
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(8))


def utcnow() -> datetime:
    """Timezone-aware current time; naive datetimes are rejected by the store."""
    return datetime.now(timezone.utc)
