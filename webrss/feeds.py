"""Single-feed fetching and entry selection helpers."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Iterable, List, Optional
from urllib.parse import urlsplit

import requests

from .models import Entry
from .parsing import FeedParseError, parse_feed

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class FeedError(Exception):
    """A per-feed failure, tagged with the URL that caused it."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url


class FeedFetchError(FeedError):
    """The feed could not be downloaded."""


def validate_url(url: str) -> str:
    """Return ``url`` unchanged if it is an absolute http(s) URL."""
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise FeedFetchError(url, f"malformed URL: {exc}") from exc
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise FeedFetchError(url, "malformed URL: expected an absolute http(s) URL")
    return url


def fetch_feed(url: str, timeout: float = 10.0) -> List[Entry]:
    """Download one feed and return its normalized entries.

    ``timeout`` bounds the socket operations and the total time spent reading
    the body. Any failure raises a :class:`FeedError` carrying ``url``.
    """
    validate_url(url)
    logger.debug("Fetching feed %s", url)
    deadline = time.monotonic() + timeout

    try:
        with requests.get(url, timeout=timeout, stream=True) as response:
            response.raise_for_status()
            content = _read_body(response, url, deadline)
    except requests.RequestException as exc:
        raise FeedFetchError(url, str(exc)) from exc

    try:
        entries = parse_feed(content)
    except FeedParseError as exc:
        raise FeedError(url, str(exc)) from exc

    logger.debug("Collected %d entries from feed %s", len(entries), url)
    return entries


def _read_body(response, url: str, deadline: float) -> bytes:
    chunks = []
    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
        if time.monotonic() > deadline:
            raise FeedFetchError(url, "timed out reading response body")
        chunks.append(chunk)
    return b"".join(chunks)


def select_recent_entries(
    entries: Iterable[Entry],
    cutoff: Optional[datetime] = None,
) -> List[Entry]:
    """Return entries strictly newer than ``cutoff``, newest first.

    A ``None`` cutoff keeps everything. Entries with equal timestamps keep
    their snapshot order.
    """
    if cutoff is None:
        selected = list(entries)
    else:
        selected = [entry for entry in entries if entry.when > cutoff]
    selected.sort(key=lambda item: item.when, reverse=True)
    return selected
