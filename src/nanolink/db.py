"""SQLite persistence layer for nanolink."""

from __future__ import annotations

from datetime import date as Date, datetime
from functools import lru_cache
from pathlib import Path

from sqlmodel import Field, SQLModel, create_engine

from nanolink.utils import utcnow


class RecordRow(SQLModel, table=True):
    """Bibliographic record row."""

    key: str = Field(primary_key=True)
    item_type: str = Field(default="journalArticle")
    title: str
    doi: str | None = Field(default=None, index=True)
    url: str | None = None
    date: str | None = None
    access_date: Date | None = None
    extra: str = Field(default="")
    tags_json: str = Field(default="[]")
    created_at: datetime = Field(default_factory=utcnow)


class NoteRow(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    record_key: str = Field(foreign_key="recordrow.key", index=True)
    body: str
    created_at: datetime = Field(default_factory=utcnow)


class AttachmentRow(SQLModel, table=True):
    """Linked-URL attachment of a record."""

    id: int | None = Field(default=None, primary_key=True)
    record_key: str = Field(foreign_key="recordrow.key", index=True)
    url: str
    title: str
    created_at: datetime = Field(default_factory=utcnow)


def create_engine_for_path(db_path: Path):
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


def init_db(engine) -> None:
    SQLModel.metadata.create_all(engine)


@lru_cache(maxsize=4)
def get_engine(path_str: str):
    engine = create_engine_for_path(Path(path_str))
    init_db(engine)
    return engine
