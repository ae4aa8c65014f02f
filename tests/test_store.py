import json
from datetime import datetime, timedelta, timezone

import pytest

from webrss.config import DatabaseConfig
from webrss.db import SqlSnapshotStore
from webrss.models import ZERO_TIME
from webrss.store import JsonSnapshotStore, SnapshotError, build_store


def test_json_round_trip(tmp_path, entries, make_entry):
    store = JsonSnapshotStore(str(tmp_path / "cache" / "rss.json"))
    snapshot = entries + [
        make_entry("undated", ZERO_TIME),
        make_entry(
            "offset", datetime(2024, 2, 1, 8, 30, tzinfo=timezone(timedelta(hours=-7)))
        ),
    ]

    store.save(snapshot)

    assert store.load() == snapshot


def test_json_round_trip_empty(tmp_path):
    store = JsonSnapshotStore(str(tmp_path / "rss.json"))

    store.save([])

    assert store.load() == []


def test_json_save_overwrites(tmp_path, entries):
    store = JsonSnapshotStore(str(tmp_path / "rss.json"))
    store.save(entries)
    store.save(entries[:1])

    assert store.load() == entries[:1]


def test_json_missing_file_loads_none(tmp_path):
    assert JsonSnapshotStore(str(tmp_path / "absent.json")).load() is None


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps([]),
        json.dumps({"format": "something-else", "version": 1, "entries": []}),
        json.dumps({"format": "webrss-snapshot", "version": 99, "entries": []}),
        json.dumps({"format": "webrss-snapshot", "version": 1, "entries": {}}),
        json.dumps({"format": "webrss-snapshot", "version": 1, "entries": [{"title": "x"}]}),
        json.dumps(
            {
                "format": "webrss-snapshot",
                "version": 1,
                "entries": [
                    {
                        "feed_name": "F",
                        "feed_url": "u",
                        "title": "t",
                        "url": "u",
                        "when": "2024-01-01T00:00:00",
                    }
                ],
            }
        ),
    ],
)
def test_json_corrupt_file_raises(tmp_path, content):
    path = tmp_path / "rss.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(SnapshotError):
        JsonSnapshotStore(str(path)).load()


def test_json_save_failure_raises_snapshot_error(tmp_path, entries):
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")
    store = JsonSnapshotStore(str(blocker / "rss.json"))

    with pytest.raises(SnapshotError):
        store.save(entries)


def test_build_store_selects_backend(tmp_path):
    path = str(tmp_path / "rss.json")

    assert isinstance(build_store(path), JsonSnapshotStore)
    assert isinstance(build_store(path, DatabaseConfig(enabled=False)), JsonSnapshotStore)

    sql = build_store(path, DatabaseConfig(enabled=True, connection_string="sqlite://"))
    assert isinstance(sql, SqlSnapshotStore)

    with pytest.raises(ValueError):
        build_store(path, DatabaseConfig(enabled=True))
