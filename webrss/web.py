"""HTTP surface: the listing page, the full archive and a health check."""

from __future__ import annotations

import logging
import queue
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles

from .cache import CacheActor
from .feeds import select_recent_entries
from .templating import get_environment

logger = logging.getLogger(__name__)

READ_TIMEOUT = 5.0


def render_listing(cache: CacheActor, cutoff: Optional[datetime]) -> str:
    """Render the entries newer than ``cutoff`` from the current snapshot."""
    try:
        snapshot = cache.read(timeout=READ_TIMEOUT)
    except queue.Empty:
        logger.error("Feed cache did not answer within %.1fs", READ_TIMEOUT)
        raise HTTPException(status_code=503, detail="Feed cache unavailable")

    entries = select_recent_entries(snapshot, cutoff)
    template = get_environment().get_template("listing.html.j2")
    return template.render(entries=entries)


def create_app(
    cache: CacheActor,
    recent_window: timedelta = timedelta(hours=24),
    static_dir: Optional[str] = "style",
) -> FastAPI:
    app = FastAPI(title="webrss", docs_url=None, redoc_url=None, openapi_url=None)

    if static_dir and Path(static_dir).is_dir():
        app.mount("/style", StaticFiles(directory=static_dir), name="style")
    elif static_dir:
        logger.warning("Static directory %s not found; /style is disabled", static_dir)

    @app.get("/", response_class=HTMLResponse)
    @app.get("/index.html", response_class=HTMLResponse)
    def recent_entries():
        cutoff = datetime.now(timezone.utc) - recent_window
        return render_listing(cache, cutoff)

    @app.get("/all", response_class=HTMLResponse)
    def all_entries():
        return render_listing(cache, None)

    @app.get("/healthz")
    def health():
        try:
            size = cache.snapshot_size(timeout=READ_TIMEOUT)
        except queue.Empty:
            raise HTTPException(status_code=503, detail="Feed cache unavailable")
        degraded = cache.persistence_degraded.is_set()
        return {
            "entries": size,
            "persistence": "degraded" if degraded else "ok",
        }

    return app
