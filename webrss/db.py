"""SQL storage for the entry snapshot."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    insert,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .models import Entry
from .store import SnapshotError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class EntryModel(Base):
    """One entry of the current snapshot."""

    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    position = Column(Integer, nullable=False, index=True)
    feed_name = Column(String, nullable=False, default="")
    feed_url = Column(String, nullable=False, default="")
    title = Column(Text, nullable=False, default="")
    url = Column(String, nullable=False, default="")
    # Wall-clock time as published; the zone lives in utc_offset (seconds).
    published = Column(DateTime, nullable=False)
    utc_offset = Column(Integer, nullable=False, default=0)


class SnapshotMetaModel(Base):
    """Marks that a snapshot has been saved at least once."""

    __tablename__ = "snapshot_meta"

    id = Column(Integer, primary_key=True)
    saved_at = Column(DateTime, nullable=False)
    entry_count = Column(Integer, nullable=False)


def init_engine(connection_string: Optional[str]) -> Optional[Engine]:
    """Initialize the database engine."""
    if not connection_string:
        return None

    engine = create_engine(connection_string)
    logger.info(
        "Initializing database connection: %s (%s)",
        engine.url.get_backend_name(),
        engine.url.host or engine.url.database or "in-memory",
    )
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine)


def _split_zone(value: datetime) -> Tuple[datetime, int]:
    offset = value.utcoffset()
    seconds = int(offset.total_seconds()) if offset is not None else 0
    return value.replace(tzinfo=None), seconds


def _entry_row(position: int, entry: Entry) -> Dict[str, object]:
    published, utc_offset = _split_zone(entry.when)
    return {
        "position": position,
        "feed_name": entry.feed_name,
        "feed_url": entry.feed_url,
        "title": entry.title,
        "url": entry.url,
        "published": published,
        "utc_offset": utc_offset,
    }


def replace_snapshot(session: Session, entries: Sequence[Entry]) -> None:
    """Swap the stored snapshot for ``entries`` in a single transaction."""
    try:
        session.execute(delete(EntryModel))
        session.execute(delete(SnapshotMetaModel))
        if entries:
            session.execute(
                insert(EntryModel),
                [_entry_row(position, entry) for position, entry in enumerate(entries)],
            )
        session.execute(
            insert(SnapshotMetaModel).values(
                id=1,
                saved_at=datetime.now(timezone.utc).replace(tzinfo=None),
                entry_count=len(entries),
            )
        )
        session.commit()
    except Exception:
        session.rollback()
        raise


def read_snapshot(session: Session) -> Optional[List[Entry]]:
    """Return the stored snapshot, or ``None`` if nothing was ever saved."""
    meta = session.execute(
        select(SnapshotMetaModel).where(SnapshotMetaModel.id == 1)
    ).scalar_one_or_none()
    if meta is None:
        return None

    rows = session.execute(select(EntryModel).order_by(EntryModel.position)).scalars().all()
    if len(rows) != meta.entry_count:
        raise SnapshotError(
            f"Stored snapshot has {len(rows)} entries, expected {meta.entry_count}."
        )
    return [
        Entry(
            feed_name=row.feed_name,
            feed_url=row.feed_url,
            title=row.title,
            url=row.url,
            when=row.published.replace(
                tzinfo=timezone(timedelta(seconds=row.utc_offset or 0))
            ),
        )
        for row in rows
    ]


class SqlSnapshotStore:
    """Snapshot store backed by any SQLAlchemy database."""

    def __init__(self, connection_string: str):
        self.connection_string = connection_string
        self._session_factory: Optional[sessionmaker[Session]] = None

    def _sessions(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            engine = init_engine(self.connection_string)
            self._session_factory = get_session_factory(engine)
        return self._session_factory

    def save(self, entries: Sequence[Entry]) -> None:
        try:
            with self._sessions()() as session:
                replace_snapshot(session, entries)
        except (SQLAlchemyError, OverflowError, ValueError) as exc:
            raise SnapshotError(f"Could not write snapshot: {exc}") from exc
        logger.info("Saved %d entries to the database", len(entries))

    def load(self) -> Optional[List[Entry]]:
        try:
            with self._sessions()() as session:
                entries = read_snapshot(session)
        except (SQLAlchemyError, OverflowError, ValueError) as exc:
            raise SnapshotError(f"Could not read snapshot: {exc}") from exc
        if entries is None:
            logger.info("No snapshot stored in the database")
        else:
            logger.info("Loaded %d entries from the database", len(entries))
        return entries
