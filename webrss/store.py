"""Durable storage for the entry snapshot."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Protocol, Sequence

from .models import Entry

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "webrss-snapshot"
SNAPSHOT_VERSION = 1


class SnapshotError(RuntimeError):
    """The snapshot could not be written, or a stored one could not be read."""


class SnapshotStore(Protocol):
    def save(self, entries: Sequence[Entry]) -> None:
        ...

    def load(self) -> Optional[List[Entry]]:
        ...


def entry_to_dict(entry: Entry) -> dict:
    return {
        "feed_name": entry.feed_name,
        "feed_url": entry.feed_url,
        "title": entry.title,
        "url": entry.url,
        "when": entry.when.isoformat(),
    }


def entry_from_dict(item: Any) -> Entry:
    if not isinstance(item, dict):
        raise SnapshotError("Snapshot entries must be JSON objects.")
    try:
        when = datetime.fromisoformat(item["when"])
        fields = [item[key] for key in ("feed_name", "feed_url", "title", "url")]
    except (KeyError, TypeError, ValueError) as exc:
        raise SnapshotError(f"Malformed snapshot entry: {exc}") from exc
    if when.tzinfo is None or not all(isinstance(value, str) for value in fields):
        raise SnapshotError("Malformed snapshot entry.")
    return Entry(*fields, when=when)


class JsonSnapshotStore:
    """Keep the whole snapshot in one JSON file, rewritten on every save."""

    def __init__(self, path: str):
        self.path = Path(path)

    def save(self, entries: Sequence[Entry]) -> None:
        document = {
            "format": SNAPSHOT_FORMAT,
            "version": SNAPSHOT_VERSION,
            "entries": [entry_to_dict(entry) for entry in entries],
        }
        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8"
            )
        except OSError as exc:
            raise SnapshotError(f"Could not write snapshot {self.path}: {exc}") from exc
        logger.info("Saved %d entries to %s", len(entries), self.path)

    def load(self) -> Optional[List[Entry]]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("No snapshot at %s", self.path)
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise SnapshotError(f"Could not read snapshot {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SnapshotError(f"Snapshot is not valid JSON: {self.path}") from exc

        if not isinstance(payload, dict) or payload.get("format") != SNAPSHOT_FORMAT:
            raise SnapshotError(f"{self.path} is not a webrss snapshot.")
        if payload.get("version") != SNAPSHOT_VERSION:
            raise SnapshotError(
                f"Unsupported snapshot version {payload.get('version')!r} in {self.path}"
            )
        items = payload.get("entries")
        if not isinstance(items, list):
            raise SnapshotError("Snapshot must contain an entries array.")

        entries = [entry_from_dict(item) for item in items]
        logger.info("Loaded %d entries from %s", len(entries), self.path)
        return entries


def build_store(cache_path: str, database=None) -> SnapshotStore:
    """Pick the SQL store when a database is enabled, else the JSON file."""
    if database is not None and database.enabled:
        if not database.connection_string:
            raise ValueError("Database enabled but no connection string provided.")
        from .db import SqlSnapshotStore

        return SqlSnapshotStore(database.connection_string)
    return JsonSnapshotStore(cache_path)
