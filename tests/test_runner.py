import time
from types import SimpleNamespace

import pytest

from webrss import feeds, runner
from webrss.runner import RunConfig, serve, start_service
from webrss.store import JsonSnapshotStore, SnapshotError


class FakeResponse:
    def __init__(self, body):
        self.body = body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def raise_for_status(self):
        pass

    def iter_content(self, chunk_size=1):
        yield self.body


def _wait_for_entries(cache, deadline=5.0):
    end = time.time() + deadline
    while time.time() < end:
        snapshot = cache.read(timeout=1.0)
        if snapshot:
            return snapshot
        time.sleep(0.01)
    return ()


@pytest.fixture
def no_network(monkeypatch):
    def refuse(*args, **kwargs):
        raise AssertionError("unexpected network access")

    monkeypatch.setattr(feeds.requests, "get", refuse)


def test_start_service_serves_persisted_snapshot_first(tmp_path, entries, no_network):
    cache_file = tmp_path / "rss.json"
    JsonSnapshotStore(str(cache_file)).save(entries)

    service = start_service(
        RunConfig(urls=["https://a.example/rss"], cache_file=str(cache_file), frequency=3600)
    )
    try:
        assert list(_wait_for_entries(service.cache)) == entries
    finally:
        service.stop()


def test_start_service_polls_live_without_snapshot(tmp_path, monkeypatch, rss_sample):
    monkeypatch.setattr(
        feeds.requests, "get", lambda url, timeout=None, stream=False: FakeResponse(rss_sample)
    )
    cache_file = tmp_path / "rss.json"

    service = start_service(
        RunConfig(urls=["https://r.example/rss"], cache_file=str(cache_file), frequency=3600)
    )
    try:
        snapshot = _wait_for_entries(service.cache)
    finally:
        service.stop()

    assert [entry.title for entry in snapshot] == ["First", "Second"]
    assert JsonSnapshotStore(str(cache_file)).load() == list(snapshot)


def test_start_service_corrupt_snapshot_is_fatal(tmp_path, no_network):
    cache_file = tmp_path / "rss.json"
    cache_file.write_text("{broken", encoding="utf-8")

    with pytest.raises(SnapshotError):
        start_service(
            RunConfig(urls=["https://a.example/rss"], cache_file=str(cache_file), frequency=60)
        )


def test_start_service_requires_urls(tmp_path):
    with pytest.raises(ValueError):
        start_service(RunConfig(urls=[], cache_file=str(tmp_path / "rss.json"), frequency=60))


def _stub_service(monkeypatch):
    calls = {"stopped": False}
    service = SimpleNamespace(app=object(), stop=lambda: calls.update(stopped=True))
    monkeypatch.setattr(runner, "start_service", lambda config: service)

    def fake_run(app, **kwargs):
        calls["app"] = app
        calls["kwargs"] = kwargs

    monkeypatch.setattr(runner.uvicorn, "run", fake_run)
    return service, calls


def test_serve_runs_uvicorn_on_listen_address(monkeypatch):
    service, calls = _stub_service(monkeypatch)

    serve(RunConfig(urls=["https://a/"], cache_file="rss.json", frequency=60, http_address=":9000"))

    assert calls["app"] is service.app
    assert calls["kwargs"]["host"] == "0.0.0.0"
    assert calls["kwargs"]["port"] == 9000
    assert "ssl_certfile" not in calls["kwargs"]
    assert calls["stopped"]


def test_serve_enables_tls_with_cert_and_key(monkeypatch):
    _, calls = _stub_service(monkeypatch)

    serve(
        RunConfig(
            urls=["https://a/"],
            cache_file="rss.json",
            frequency=60,
            http_address=":https",
            cert_file="cert.pem",
            key_file="key.pem",
        )
    )

    assert calls["kwargs"]["port"] == 443
    assert calls["kwargs"]["ssl_certfile"] == "cert.pem"
    assert calls["kwargs"]["ssl_keyfile"] == "key.pem"


def test_serve_ignores_half_tls_configuration(monkeypatch):
    _, calls = _stub_service(monkeypatch)

    serve(RunConfig(urls=["https://a/"], cache_file="rss.json", frequency=60, cert_file="c.pem"))

    assert "ssl_certfile" not in calls["kwargs"]
