"""
Record stores backing the library.

Every store implements the same RecordStore capability: upsert by record
key, delete by record key, and query by (media type, status, rewatch flag).
The primary store is a SQLite database accessed through SQLAlchemy; the
backup store is a flat, timestamped JSON list.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from .models import Item, RecordKey, Status
from .logging import InvalidStatusError, PersistenceError

logger = logging.getLogger(__name__)


def _sort_for_bucket(items: List[Item], is_rewatch: bool) -> List[Item]:
    # Rewatches read back in cycle order, everything else in rank order
    if is_rewatch:
        return sorted(items, key=lambda i: i.rewatch_count)
    return sorted(items, key=lambda i: i.rank)


class RecordStore(ABC):
    """Capability shared by the primary and backup stores."""

    name: str = "store"

    @abstractmethod
    def upsert(self, item: Item) -> None:
        """Update the record with the item's key, or insert it."""

    @abstractmethod
    def delete(self, key: RecordKey) -> bool:
        """Delete the record with this key. Returns False if there was none."""

    @abstractmethod
    def query(self, is_anime: bool, status: Status, is_rewatch: bool) -> List[Item]:
        """All records in one (media type, status, rewatch flag) combination."""

    @abstractmethod
    def all(self) -> List[Item]:
        """Every record held by the store."""

    def keys(self) -> List[RecordKey]:
        return [item.record_key for item in self.all()]


class MemoryRecordStore(RecordStore):
    """Dictionary-backed store. Used for ephemeral libraries and as a test double."""

    def __init__(self, name: str = "memory"):
        self.name = name
        self._records: Dict[RecordKey, Item] = {}

    def upsert(self, item: Item) -> None:
        self._records[item.record_key] = item

    def delete(self, key: RecordKey) -> bool:
        return self._records.pop(key, None) is not None

    def query(self, is_anime: bool, status: Status, is_rewatch: bool) -> List[Item]:
        found = [
            i for i in self._records.values()
            if i.is_anime == is_anime and i.status == status and i.is_rewatch == is_rewatch
        ]
        return _sort_for_bucket(found, is_rewatch)

    def all(self) -> List[Item]:
        return list(self._records.values())


class JsonRecordStore(RecordStore):
    """
    Backup store: the whole library as one JSON list.

    Each entry carries the full item plus a 'timestamp' of its last write.
    The file is rewritten in full on every change, through a temporary file.
    """

    def __init__(self, path: Path, name: str = "backup"):
        self.path = Path(path)
        self.name = name

    def _read(self) -> List[Dict]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read backup store {self.path}: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(f"Backup store {self.path} is not a list of records")
        return data

    def _write(self, entries: List[Dict]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Failed to write backup store {self.path}: {e}") from e

    @staticmethod
    def _entry_key(entry: Dict) -> RecordKey:
        return (
            int(entry["media_id"]),
            bool(entry["is_anime"]),
            bool(entry.get("is_rewatch", False)),
            int(entry.get("rewatch_count", 0)),
        )

    def _decode(self, entries: List[Dict]) -> List[Item]:
        items = []
        for entry in entries:
            try:
                items.append(Item.from_dict(entry))
            except (KeyError, TypeError, ValueError, InvalidStatusError) as e:
                # Skip unreadable entries
                logger.warning(f"Skipping unreadable backup entry {entry!r}: {e}")
        return items

    def upsert(self, item: Item) -> None:
        entries = [e for e in self._read() if self._entry_key(e) != item.record_key]
        entry = item.to_dict()
        entry["timestamp"] = datetime.now().isoformat()
        entries.append(entry)
        self._write(entries)

    def delete(self, key: RecordKey) -> bool:
        entries = self._read()
        kept = [e for e in entries if self._entry_key(e) != key]
        if len(kept) == len(entries):
            return False
        self._write(kept)
        return True

    def query(self, is_anime: bool, status: Status, is_rewatch: bool) -> List[Item]:
        found = [
            i for i in self.all()
            if i.is_anime == is_anime and i.status == status and i.is_rewatch == is_rewatch
        ]
        return _sort_for_bucket(found, is_rewatch)

    def all(self) -> List[Item]:
        return self._decode(self._read())


class Base(DeclarativeBase):
    pass


class ItemRecord(Base):
    """One row per library record in the primary store."""

    __tablename__ = "library_items"
    __table_args__ = (
        UniqueConstraint("media_id", "is_anime", "is_rewatch", "rewatch_count", name="uq_library_record"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    is_anime: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_rewatch: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rewatch_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    cover_image: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    rank: Mapped[int] = mapped_column(Integer, default=0)
    score: Mapped[float] = mapped_column(Float, default=0.0)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    genres: Mapped[list] = mapped_column(JSON, default=list)
    total_units: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    def apply(self, item: Item) -> None:
        """Copies every mutable field of the item onto this row."""
        self.title = item.title
        self.cover_image = item.cover_image
        self.status = item.status.value
        self.progress = item.progress
        self.rank = item.rank
        self.score = item.score
        self.start_date = item.start_date
        self.end_date = item.end_date
        self.summary = item.summary
        self.genres = list(item.genres)
        self.total_units = item.total_units
        self.updated_at = datetime.now()

    def to_item(self) -> Item:
        return Item(
            media_id=self.media_id,
            is_anime=self.is_anime,
            title=self.title,
            status=Status(self.status),
            cover_image=self.cover_image or "",
            progress=self.progress or 0,
            rank=self.rank or 0,
            score=self.score or 0.0,
            start_date=self.start_date,
            end_date=self.end_date,
            is_rewatch=self.is_rewatch,
            rewatch_count=self.rewatch_count,
            summary=self.summary,
            genres=list(self.genres or []),
            total_units=self.total_units,
        )


class SqlRecordStore(RecordStore):
    """Primary store: structured and queryable, one row per record key."""

    def __init__(self, url: str, name: str = "primary"):
        self.name = name
        try:
            self.engine = create_engine(url, echo=False)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Invalid primary store url {url}: {e}") from e
        try:
            Base.metadata.create_all(self.engine, checkfirst=True)
        except SQLAlchemyError as e:
            self.engine.dispose()
            raise PersistenceError(f"Failed to open primary store {url}: {e}") from e
        self.session_factory = sessionmaker(self.engine, expire_on_commit=False)

    @classmethod
    def for_path(cls, path: Path) -> "SqlRecordStore":
        """
        Opens the database file at `path`, creating it if needed.

        A file SQLite cannot open is moved aside to `<name>.corrupt-<timestamp>`
        and an empty database takes its place, so the next load refills it
        from the backup store.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            return cls(f"sqlite:///{path}")
        except PersistenceError as e:
            if not path.exists():
                raise
            quarantine = path.with_name(f"{path.name}.corrupt-{datetime.now():%Y%m%d-%H%M%S}")
            logger.error(f"Primary store is unreadable, moving it to {quarantine.name}: {e}")
            try:
                os.replace(path, quarantine)
            except OSError as move_error:
                raise PersistenceError(f"Could not move aside corrupt primary store {path}: {move_error}") from e
            return cls(f"sqlite:///{path}")

    @staticmethod
    def _to_items(rows) -> List[Item]:
        items = []
        for row in rows:
            try:
                items.append(row.to_item())
            except ValueError as e:
                logger.error(f"Skipping unreadable primary row {row.id} (media {row.media_id}): {e}")
        return items

    @staticmethod
    def _key_filter(stmt, key: RecordKey):
        media_id, is_anime, is_rewatch, rewatch_count = key
        return stmt.where(
            ItemRecord.media_id == media_id,
            ItemRecord.is_anime == is_anime,
            ItemRecord.is_rewatch == is_rewatch,
            ItemRecord.rewatch_count == rewatch_count,
        )

    def upsert(self, item: Item) -> None:
        try:
            with self.session_factory.begin() as session:
                row = session.scalars(self._key_filter(select(ItemRecord), item.record_key)).first()
                if row is None:
                    row = ItemRecord(
                        media_id=item.media_id,
                        is_anime=item.is_anime,
                        is_rewatch=item.is_rewatch,
                        rewatch_count=item.rewatch_count,
                    )
                    session.add(row)
                row.apply(item)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Primary store write failed for {item.record_key}: {e}") from e

    def delete(self, key: RecordKey) -> bool:
        try:
            with self.session_factory.begin() as session:
                row = session.scalars(self._key_filter(select(ItemRecord), key)).first()
                if row is None:
                    return False
                session.delete(row)
                return True
        except SQLAlchemyError as e:
            raise PersistenceError(f"Primary store delete failed for {key}: {e}") from e

    def query(self, is_anime: bool, status: Status, is_rewatch: bool) -> List[Item]:
        order = ItemRecord.rewatch_count if is_rewatch else ItemRecord.rank
        stmt = (
            select(ItemRecord)
            .where(
                ItemRecord.is_anime == is_anime,
                ItemRecord.status == status.value,
                ItemRecord.is_rewatch == is_rewatch,
            )
            .order_by(order, ItemRecord.id)
        )
        try:
            with self.session_factory() as session:
                return self._to_items(session.scalars(stmt))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Primary store query failed: {e}") from e

    def all(self) -> List[Item]:
        try:
            with self.session_factory() as session:
                return self._to_items(session.scalars(select(ItemRecord).order_by(ItemRecord.id)))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Primary store scan failed: {e}") from e
