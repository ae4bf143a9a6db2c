"""Domain models for the butler database layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum

# Fixed-width UTC form so stored timestamps compare correctly as text.
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Fresh identifier in canonical lowercase UUID form."""
    return str(uuid.uuid4())


def format_ts(value: datetime | None) -> str | None:
    """Render *value* as fixed-width UTC text; naive datetimes are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


def truncate_ts(value: datetime, resolution: timedelta) -> datetime:
    """Round *value* down to a multiple of *resolution* (UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    return value - (value - epoch) % resolution


class SourceKind(str, Enum):
    """Where a Record came from. Part of the record's identity key."""

    GOOGLE_CALENDAR = "google_calendar"
    GMAIL = "gmail"
    PERSONAL = "personal"
    OBSIDIAN = "obsidian"
    OTHER = "other"


@dataclass
class Record:
    """A unit of personal context (calendar event, mail, note, journal day).

    Identity is ``(source_kind, external_key)`` when ``external_key`` is set;
    otherwise only ``id`` identifies it and it is never deduplicated.
    ``relevant_at`` of None means the record is timeless.
    """

    source_kind: SourceKind
    title: str = ""
    body: str = ""
    external_key: str | None = None
    relevant_at: datetime | None = None
    category: str | None = None
    source_modified_at: datetime | None = None
    summary: str | None = None
    media_type: str | None = None
    media_metadata: str | None = None
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_timeless(self) -> bool:
        return self.relevant_at is None

    @property
    def identity(self) -> tuple[str, str] | None:
        if self.external_key is None:
            return None
        return (SourceKind(self.source_kind).value, self.external_key)


def daily_note_record(
    day: date,
    body: str,
    modified_at: datetime,
    *,
    title: str | None = None,
    category: str | None = "journal",
) -> Record:
    """Build a journal-day Record keyed by its ISO date (freshness-gated upsert)."""
    return Record(
        source_kind=SourceKind.OBSIDIAN,
        external_key=day.isoformat(),
        title=title or day.isoformat(),
        body=body,
        relevant_at=datetime(day.year, day.month, day.day, tzinfo=timezone.utc),
        category=category,
        source_modified_at=modified_at,
    )


@dataclass
class Document:
    """A chunkable note file, tracked by path and content hash."""

    path: str
    content_hash: str
    title: str | None = None
    source_modified_at: datetime | None = None
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Chunk:
    """One ordered slice of a Document's text.

    ``start_line`` / ``end_line`` are 1-based and inclusive when tracked.
    ``embedding`` is transient: it is written to the vector index, never to
    the chunks table.
    """

    chunk_index: int
    text: str
    start_line: int | None = None
    end_line: int | None = None
    document_id: str | None = None
    id: str | None = None
    created_at: datetime | None = None
    embedding: list[float] | None = field(default=None, repr=False)


@dataclass
class SearchResult:
    """A chunk hit joined back to its document."""

    chunk_id: str
    score: float
    distance: float
    document_id: str
    path: str
    title: str | None
    text: str
    chunk_index: int
    start_line: int | None = None
    end_line: int | None = None


@dataclass
class SyncLogEntry:
    """One reconcile run, as shown in the sync summary."""

    source: str
    status: str
    items_scanned: int = 0
    items_added: int = 0
    items_updated: int = 0
    items_unchanged: int = 0
    items_failed: int = 0
    duration_ms: int = 0
    message: str | None = None
    timestamp: datetime | None = None
    id: int | None = None
