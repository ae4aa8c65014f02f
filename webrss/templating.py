"""Jinja2 environment for webrss templates."""

from __future__ import annotations

from datetime import datetime
from importlib import resources

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .models import ZERO_TIME

_ENV: Environment | None = None


def _format_when(value: datetime | None, layout: str = "%a %d/%m/%Y") -> str:
    """Format an entry timestamp; undated entries render as an empty string."""
    if value is None or value == ZERO_TIME:
        return ""
    return value.strftime(layout)


def get_environment() -> Environment:
    """Return a cached Jinja environment configured for package templates."""
    global _ENV
    if _ENV is None:
        template_dir = resources.files(__package__) / "templates"
        loader = FileSystemLoader(str(template_dir))
        _ENV = Environment(
            loader=loader,
            autoescape=select_autoescape(["html", "xml", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        _ENV.filters["when"] = _format_when
    return _ENV
