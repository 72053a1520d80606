"""Core data models used throughout the nanolink application."""

from __future__ import annotations

from datetime import date as Date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from nanolink.utils import new_record_key, utcnow


class NanopubDocument(BaseModel):
    """Fields pattern-matched out of a fetched TriG document."""

    model_config = ConfigDict(frozen=True)

    raw: str = Field(repr=False)
    label: str | None = None
    created: str | None = None
    cited_identifier: str | None = None
    quoted_text: str | None = None
    comment: str | None = None

    @property
    def created_date(self) -> str | None:
        """Date part of ``created`` (``2023-05-01T00:00:00`` -> ``2023-05-01``)."""
        if not self.created:
            return None
        return self.created.split("T", 1)[0]

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.label, self.created, self.cited_identifier, self.quoted_text, self.comment)
        )


class BibRecord(BaseModel):
    """A bibliographic record in the local library."""

    key: str = Field(default_factory=new_record_key)
    item_type: str = "journalArticle"
    title: str
    doi: str | None = None
    url: str | None = None
    date: str | None = None
    access_date: Date | None = None
    extra: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class Note(BaseModel):
    id: int | None = None
    record_key: str
    body: str
    created_at: datetime = Field(default_factory=utcnow)


class Attachment(BaseModel):
    """A linked-URL attachment hanging off a record."""

    id: int | None = None
    record_key: str
    url: str
    title: str
    created_at: datetime = Field(default_factory=utcnow)


class LinkedRecord(BaseModel):
    """Association between a library record and a nanopublication URI."""

    record: BibRecord
    nanopub_uri: str
    attachment: Attachment | None = None
    note: Note | None = None


class CandidateState(str, Enum):
    FOUND = "found"
    ENRICH_ATTEMPTED = "enrich_attempted"
    ENRICH_SKIPPED = "enrich_skipped"
    AWAITING_DECISION = "awaiting_decision"
    LINKED = "linked"
    DECLINED = "declined"


CANDIDATE_TRANSITIONS: dict[CandidateState, frozenset[CandidateState]] = {
    CandidateState.FOUND: frozenset(
        {CandidateState.ENRICH_ATTEMPTED, CandidateState.ENRICH_SKIPPED}
    ),
    CandidateState.ENRICH_ATTEMPTED: frozenset({CandidateState.AWAITING_DECISION}),
    CandidateState.ENRICH_SKIPPED: frozenset({CandidateState.AWAITING_DECISION}),
    CandidateState.AWAITING_DECISION: frozenset(
        {CandidateState.LINKED, CandidateState.DECLINED}
    ),
    CandidateState.LINKED: frozenset(),
    CandidateState.DECLINED: frozenset(),
}
