"""Record store backing the local bibliographic library with SQLite."""

from __future__ import annotations

import asyncio
import json
from typing import Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from nanolink.db import AttachmentRow, NoteRow, RecordRow, get_engine
from nanolink.errors import LinkError
from nanolink.models import Attachment, BibRecord, Note
from nanolink.settings import Settings
from nanolink.utils import normalize_term

logger = structlog.get_logger(__name__)


class RecordStore(Protocol):
    """Contract for creating records and linking notes and attachments to them.

    Multi-row writes (``import_record``, ``save_link``) are all-or-nothing.
    """

    async def create_record(self, record: BibRecord) -> BibRecord:
        ...

    async def import_record(
        self, record: BibRecord, note_body: str | None = None
    ) -> tuple[BibRecord, Note | None]:
        ...

    async def get_record(self, key: str) -> BibRecord | None:
        ...

    async def find_by_doi(self, doi: str) -> list[BibRecord]:
        ...

    async def list_records(self) -> list[BibRecord]:
        ...

    async def save_link(
        self, record: BibRecord, *, url: str, title: str, note_body: str | None = None
    ) -> tuple[BibRecord, Attachment, Note | None]:
        ...

    async def list_notes(self, record_key: str | None = None, limit: int = 50) -> list[Note]:
        ...

    async def list_attachments(self, record_key: str) -> list[Attachment]:
        ...


class LocalLibrary(RecordStore):
    """SQLite-backed implementation of the record store."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._lock = asyncio.Lock()
        self._settings.ensure_directories()
        self._engine = get_engine(str(self._settings.db_path))

    async def create_record(self, record: BibRecord) -> BibRecord:
        created, _ = await self._run(self._create_sync, record, None)
        return created

    async def import_record(
        self, record: BibRecord, note_body: str | None = None
    ) -> tuple[BibRecord, Note | None]:
        return await self._run(self._create_sync, record, note_body)

    async def get_record(self, key: str) -> BibRecord | None:
        return await self._run(self._get_sync, key)

    async def find_by_doi(self, doi: str) -> list[BibRecord]:
        return await self._run(self._find_by_doi_sync, normalize_term(doi).lower())

    async def list_records(self) -> list[BibRecord]:
        return await self._run(self._list_sync)

    async def save_link(
        self, record: BibRecord, *, url: str, title: str, note_body: str | None = None
    ) -> tuple[BibRecord, Attachment, Note | None]:
        return await self._run(self._save_link_sync, record, url, title, note_body)

    async def list_notes(self, record_key: str | None = None, limit: int = 50) -> list[Note]:
        return await self._run(self._list_notes_sync, record_key, limit)

    async def list_attachments(self, record_key: str) -> list[Attachment]:
        return await self._run(self._list_attachments_sync, record_key)

    # Internal helpers -----------------------------------------------------

    async def _run(self, func, *args):
        async with self._lock:
            try:
                return await asyncio.to_thread(func, *args)
            except SQLAlchemyError as exc:
                logger.warning("storage.error", operation=func.__name__, error=str(exc))
                raise LinkError(f"Library write failed: {exc}") from exc

    def _create_sync(self, record: BibRecord, note_body: str | None) -> tuple[BibRecord, Note | None]:
        # One commit for the record and its note; an error before it rolls both back.
        with Session(self._engine, expire_on_commit=False) as session:
            if session.get(RecordRow, record.key) is not None:
                raise LinkError(f"Record {record.key} already exists")
            row = RecordRow(key=record.key, created_at=record.created_at, title=record.title)
            self._apply(row, record)
            session.add(row)
            note_row = None
            if note_body:
                note_row = NoteRow(record_key=record.key, body=note_body)
                session.add(note_row)
            session.commit()
        logger.info("storage.record_created", key=record.key, item_type=record.item_type)
        return record, self._row_to_note(note_row) if note_row else None

    def _save_link_sync(
        self, record: BibRecord, url: str, title: str, note_body: str | None
    ) -> tuple[BibRecord, Attachment, Note | None]:
        with Session(self._engine, expire_on_commit=False) as session:
            row = session.get(RecordRow, record.key)
            if row is None:
                raise LinkError(f"Record {record.key} does not exist")
            self._apply(row, record)
            session.add(row)
            attachment_row = AttachmentRow(record_key=record.key, url=url, title=title)
            session.add(attachment_row)
            note_row = None
            if note_body:
                note_row = NoteRow(record_key=record.key, body=note_body)
                session.add(note_row)
            session.commit()
        logger.info("storage.link_saved", key=record.key, url=url, note=note_row is not None)
        return (
            record,
            self._row_to_attachment(attachment_row),
            self._row_to_note(note_row) if note_row else None,
        )

    def _get_sync(self, key: str) -> BibRecord | None:
        with Session(self._engine) as session:
            row = session.get(RecordRow, key)
            return self._row_to_record(row) if row else None

    def _find_by_doi_sync(self, doi: str) -> list[BibRecord]:
        with Session(self._engine) as session:
            rows = session.exec(select(RecordRow).where(RecordRow.doi == doi)).all()
        return [self._row_to_record(row) for row in rows]

    def _list_sync(self) -> list[BibRecord]:
        with Session(self._engine) as session:
            statement = select(RecordRow).order_by(RecordRow.created_at.desc())
            rows = session.exec(statement).all()
        return [self._row_to_record(row) for row in rows]

    def _list_notes_sync(self, record_key: str | None, limit: int) -> list[Note]:
        stmt = select(NoteRow).order_by(NoteRow.created_at.desc()).limit(limit)
        if record_key:
            stmt = stmt.where(NoteRow.record_key == record_key)
        with Session(self._engine, expire_on_commit=False) as session:
            rows = session.exec(stmt).all()
        return [self._row_to_note(row) for row in rows]

    def _list_attachments_sync(self, record_key: str) -> list[Attachment]:
        stmt = (
            select(AttachmentRow)
            .where(AttachmentRow.record_key == record_key)
            .order_by(AttachmentRow.created_at)
        )
        with Session(self._engine, expire_on_commit=False) as session:
            rows = session.exec(stmt).all()
        return [self._row_to_attachment(row) for row in rows]

    @staticmethod
    def _apply(row: RecordRow, record: BibRecord) -> None:
        row.item_type = record.item_type
        row.title = record.title
        row.doi = normalize_term(record.doi).lower() if record.doi else None
        row.url = record.url
        row.date = record.date
        row.access_date = record.access_date
        row.extra = record.extra
        row.tags_json = json.dumps(sorted(set(record.tags)))

    @staticmethod
    def _row_to_record(row: RecordRow) -> BibRecord:
        return BibRecord(
            key=row.key,
            item_type=row.item_type,
            title=row.title,
            doi=row.doi,
            url=row.url,
            date=row.date,
            access_date=row.access_date,
            extra=row.extra or "",
            tags=json.loads(row.tags_json or "[]"),
            created_at=row.created_at,
        )

    @staticmethod
    def _row_to_note(row: NoteRow) -> Note:
        return Note(id=row.id, record_key=row.record_key, body=row.body, created_at=row.created_at)

    @staticmethod
    def _row_to_attachment(row: AttachmentRow) -> Attachment:
        return Attachment(
            id=row.id, record_key=row.record_key, url=row.url, title=row.title, created_at=row.created_at
        )
