from datetime import datetime, timezone

import pytest

from webrss.models import Entry

ATOM_SAMPLE = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Feed A</title>
  <link href="http://a.example/" rel="alternate"/>
  <link href="http://a.example/feed.atom" rel="self"/>
  <updated>2021-01-02T00:00:00Z</updated>
  <entry>
    <title>A</title>
    <link href="http://a/"/>
    <updated>2021-01-02T00:00:00Z</updated>
  </entry>
</feed>
"""

RSS_SAMPLE = b"""<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">
  <channel>
    <title>Feed R</title>
    <link>http://r.example/</link>
    <atom:link href="http://r.example/rss.xml" rel="self"/>
    <item>
      <title>First</title>
      <link>http://r.example/1</link>
      <pubDate>Mon, 02 Jan 2006 15:04:05 -0700</pubDate>
    </item>
    <item>
      <title>Second</title>
      <link>http://r.example/2</link>
      <pubDate>Tue, 03 Jan 2006 10:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""


def _make_entry(title: str, when: datetime, feed: str = "Feed") -> Entry:
    return Entry(
        feed_name=feed,
        feed_url=f"https://{feed.lower()}.example/",
        title=title,
        url=f"https://{feed.lower()}.example/{title}",
        when=when,
    )


@pytest.fixture
def make_entry():
    return _make_entry


@pytest.fixture
def atom_sample():
    return ATOM_SAMPLE


@pytest.fixture
def rss_sample():
    return RSS_SAMPLE


@pytest.fixture
def entries():
    return [
        _make_entry("old", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        _make_entry("new", datetime(2024, 1, 3, tzinfo=timezone.utc)),
        _make_entry("mid", datetime(2024, 1, 2, tzinfo=timezone.utc)),
    ]
