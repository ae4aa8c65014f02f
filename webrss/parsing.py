"""Decoding of Atom and RSS 2.0 documents into normalized entries.

The root element decides the schema: ``<rss>`` documents are decoded as RSS
2.0 and everything else as Atom. Each schema has its own raw document type and
its own date rules; both end up as a list of :class:`~webrss.models.Entry`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Union
from xml.etree import ElementTree as ET

from bs4 import BeautifulSoup

from .models import ZERO_TIME, Entry

logger = logging.getLogger(__name__)


class FeedParseError(ValueError):
    """Raised when a document is not well-formed XML."""


@dataclass
class RawItem:
    """A single item as it appears in the source document."""

    title: str
    link: str
    when: str


@dataclass
class AtomFeed:
    title: str
    link: str
    items: List[RawItem] = field(default_factory=list)

    def to_entries(self) -> List[Entry]:
        return _build_entries(self.title, self.link, self.items, parse_rfc3339, "atom")


@dataclass
class RssFeed:
    title: str
    link: str
    items: List[RawItem] = field(default_factory=list)

    def to_entries(self) -> List[Entry]:
        return _build_entries(
            self.title, self.link, self.items, parse_rss_date, "rss"
        )


FeedDocument = Union[AtomFeed, RssFeed]


def parse_feed(content: Union[bytes, str]) -> List[Entry]:
    """Parse a feed document and return its normalized entries."""
    return decode_document(content).to_entries()


def decode_document(content: Union[bytes, str]) -> FeedDocument:
    """Peek at the root element and decode the matching schema."""
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise FeedParseError(f"malformed XML: {exc}") from exc

    name = _local_name(root.tag)
    if name == "rss":
        return _decode_rss(root)
    if name != "feed":
        logger.warning("Unexpected root element <%s>; decoding as Atom", name)
    return _decode_atom(root)


def _decode_atom(root: ET.Element) -> AtomFeed:
    feed = AtomFeed(
        title=_title_text(_child(root, "title")),
        link=_atom_href(_children(root, "link")),
    )
    for node in _children(root, "entry"):
        feed.items.append(
            RawItem(
                title=_title_text(_child(node, "title")),
                link=_atom_href(_children(node, "link")),
                when=_text(_child(node, "updated")),
            )
        )
    return feed


def _decode_rss(root: ET.Element) -> RssFeed:
    channel = _child(root, "channel")
    if channel is None:
        return RssFeed(title="", link="")

    feed = RssFeed(
        title=_title_text(_child(channel, "title", plain=True)),
        link=_text(_child(channel, "link", plain=True)),
    )
    for node in _children(channel, "item", plain=True):
        feed.items.append(
            RawItem(
                title=_title_text(_child(node, "title", plain=True)),
                link=_text(_child(node, "link", plain=True)),
                when=_text(_child(node, "pubDate", plain=True)),
            )
        )
    return feed


def _build_entries(
    feed_name: str,
    feed_url: str,
    items: List[RawItem],
    parse_date: Callable[[str], datetime],
    kind: str,
) -> List[Entry]:
    entries: List[Entry] = []
    for item in items:
        try:
            when = parse_date(item.when)
        except ValueError as exc:
            logger.warning("Time parse error for %r: %s gives %s", item.title, kind, exc)
            when = ZERO_TIME
        entries.append(
            Entry(
                feed_name=feed_name,
                feed_url=feed_url,
                title=item.title,
                url=item.link,
                when=when,
            )
        )
    return entries


_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp; a zone designator is mandatory."""
    match = _RFC3339.match(value.strip())
    if not match:
        raise ValueError(f"cannot parse {value!r} as RFC 3339")

    day, clock, fraction, zone = match.groups()
    parsed = datetime.strptime(f"{day}T{clock}", "%Y-%m-%dT%H:%M:%S")
    if fraction:
        parsed = parsed.replace(microsecond=int(fraction[:6].ljust(6, "0")))
    if zone in ("Z", "z"):
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.replace(tzinfo=_offset_zone(zone.replace(":", "")))


# RFC 822 section 5 zone names. Unknown alphabetic zones are read as UTC.
_ZONE_OFFSETS = {
    "UT": 0,
    "UTC": 0,
    "GMT": 0,
    "Z": 0,
    "EST": -5,
    "EDT": -4,
    "CST": -6,
    "CDT": -5,
    "MST": -7,
    "MDT": -6,
    "PST": -8,
    "PDT": -7,
}

# RFC822, RFC822Z, RFC1123, RFC1123Z; the bool marks a numeric zone.
_RSS_DATE_FORMATS = (
    ("%d %b %y %H:%M", False),
    ("%d %b %y %H:%M", True),
    ("%a, %d %b %Y %H:%M:%S", False),
    ("%a, %d %b %Y %H:%M:%S", True),
)

_NUMERIC_ZONE = re.compile(r"^[+-]\d{4}$")
_NAMED_ZONE = re.compile(r"^[A-Za-z]+$")


def parse_rss_date(value: str) -> datetime:
    """Parse an RSS ``pubDate``, trying each RFC 822/1123 layout in turn."""
    text = " ".join(value.split())
    body, _, zone = text.rpartition(" ")
    for layout, numeric in _RSS_DATE_FORMATS:
        if numeric and not _NUMERIC_ZONE.match(zone):
            continue
        if not numeric and not _NAMED_ZONE.match(zone):
            continue
        try:
            parsed = datetime.strptime(body, layout)
        except ValueError:
            continue
        if numeric:
            return parsed.replace(tzinfo=_offset_zone(zone))
        hours = _ZONE_OFFSETS.get(zone.upper(), 0)
        return parsed.replace(tzinfo=timezone(timedelta(hours=hours)))
    raise ValueError(f"cannot parse {value!r} as an RFC 822 or RFC 1123 date")


def _offset_zone(zone: str) -> timezone:
    sign = -1 if zone[0] == "-" else 1
    hours, minutes = int(zone[1:3]), int(zone[3:5])
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _matches(node: ET.Element, name: str, plain: bool) -> bool:
    if not isinstance(node.tag, str):
        return False
    if plain:
        return node.tag == name
    return _local_name(node.tag) == name


def _children(node: ET.Element, name: str, plain: bool = False) -> List[ET.Element]:
    return [child for child in node if _matches(child, name, plain)]


def _child(node: ET.Element, name: str, plain: bool = False) -> Optional[ET.Element]:
    for child in node:
        if _matches(child, name, plain):
            return child
    return None


def _text(node: Optional[ET.Element]) -> str:
    if node is None:
        return ""
    return "".join(node.itertext()).strip()


def _title_text(node: Optional[ET.Element]) -> str:
    """Return the title as plain text.

    Only Atom text constructs typed ``html`` carry escaped markup; anything
    else, including every RSS title, is already literal text.
    """
    text = _text(node)
    if node is None or not text:
        return text
    if node.get("type") == "html":
        soup = BeautifulSoup(text, "html.parser")
        text = " ".join(soup.get_text(separator=" ").split())
    return text


def _atom_href(links: List[ET.Element]) -> str:
    for link in links:
        if link.get("rel", "alternate") == "alternate":
            return link.get("href", "")
    if links:
        return links[0].get("href", "")
    return ""
