"""Exception taxonomy shared by the fetch, query and link services."""

from __future__ import annotations


class NanolinkError(RuntimeError):
    """Base class for failures surfaced to the user as a single message."""


class InvalidInputError(NanolinkError, ValueError):
    """Raised for malformed identifiers, empty documents or incomplete records."""


class FetchError(NanolinkError):
    """Raised when a nanopublication document cannot be retrieved."""

    def __init__(
        self,
        url: str,
        *,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.cause = cause
        if status_code is not None:
            detail = f"HTTP {status_code}"
        elif cause is not None:
            detail = str(cause) or type(cause).__name__
        else:
            detail = "unknown error"
        super().__init__(f"Could not fetch nanopublication from {url} ({detail})")


class QueryError(NanolinkError):
    """Raised when the SPARQL endpoint rejects a query or returns garbage."""

    def __init__(self, message: str, *, query: str, status_code: int | None = None) -> None:
        self.query = query
        self.status_code = status_code
        suffix = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{message}{suffix}")


class LinkError(NanolinkError):
    """Raised when a record, note or attachment cannot be persisted."""


class PromptTimeoutError(NanolinkError):
    """Raised when the user does not answer a prompt in time."""
