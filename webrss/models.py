"""Shared data models for webrss."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

# Timestamp given to entries whose source date could not be parsed.
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Entry:
    """One normalized feed item."""

    feed_name: str
    feed_url: str
    title: str
    url: str
    when: datetime = ZERO_TIME

    @property
    def has_date(self) -> bool:
        return self.when != ZERO_TIME
