"""High-level orchestration for the webrss service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

import uvicorn
from fastapi import FastAPI

from .cache import CacheActor
from .config import DatabaseConfig, parse_listen_address
from .poller import FeedPoller
from .store import build_store
from .web import create_app

logger = logging.getLogger(__name__)


@dataclass
class RunConfig:
    """Runtime options for the service."""

    urls: List[str]
    cache_file: str
    frequency: float
    http_address: str = ":8080"
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    concurrency: int = 10
    timeout: float = 10.0
    recent_hours: float = 24.0
    static_dir: Optional[str] = "style"
    database: Optional[DatabaseConfig] = None


@dataclass
class Service:
    cache: CacheActor
    poller: FeedPoller
    app: FastAPI

    def stop(self) -> None:
        self.poller.stop(timeout=1.0)
        self.cache.stop(timeout=1.0)


def start_service(config: RunConfig) -> Service:
    """Load the persisted snapshot, then start the cache and the poller.

    A corrupt snapshot raises :class:`~webrss.store.SnapshotError` before any
    thread is started.
    """
    if not config.urls:
        raise ValueError("I need the feed URL.")

    store = build_store(config.cache_file, config.database)
    initial = store.load()

    cache = CacheActor(store)
    cache.start()

    poller = FeedPoller(
        config.urls,
        sink=cache.write,
        interval=config.frequency,
        concurrency=config.concurrency,
        timeout=config.timeout,
    )
    poller.start(initial)

    app = create_app(
        cache,
        recent_window=timedelta(hours=config.recent_hours),
        static_dir=config.static_dir,
    )
    return Service(cache=cache, poller=poller, app=app)


def serve(config: RunConfig) -> None:
    """Run the service until the HTTP server exits."""
    host, port = parse_listen_address(config.http_address)

    ssl_options = {}
    if config.cert_file and config.key_file:
        ssl_options = {"ssl_certfile": config.cert_file, "ssl_keyfile": config.key_file}
    elif config.cert_file or config.key_file:
        logger.warning("TLS needs both a certificate and a key; serving plain HTTP.")

    service = start_service(config)
    logger.info(
        "Serving %d feeds on %s:%d%s",
        len(config.urls),
        host,
        port,
        " with TLS" if ssl_options else "",
    )
    try:
        uvicorn.run(service.app, host=host, port=port, log_config=None, **ssl_options)
    finally:
        service.stop()
