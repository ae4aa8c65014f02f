"""Configuration loading for webrss."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from xml.etree import ElementTree as ET

logger = logging.getLogger(__name__)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class DatabaseConfig:
    enabled: bool = False
    connection_string: Optional[str] = None


@dataclass
class AppConfig:
    feeds_file: Optional[str] = None
    cache_file: str = "rss.json"
    frequency: float = 3600.0
    http_address: str = ":8080"
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    concurrency: int = 10
    timeout: float = 10.0
    recent_hours: float = 24.0
    static_dir: str = "style"
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> float:
    """Parse ``1h30m``-style durations (or plain seconds) into seconds."""
    text = value.strip()
    if not text:
        raise ValueError("Empty duration.")
    try:
        seconds = float(text)
    except ValueError:
        parts = _DURATION_PART.findall(text)
        if not parts or "".join(number + unit for number, unit in parts) != text:
            raise ValueError(f"Invalid duration: {value!r}") from None
        seconds = sum(float(number) * _DURATION_UNITS[unit] for number, unit in parts)
    if not 0 < seconds < float("inf"):
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


_NAMED_PORTS = {"http": 80, "https": 443}


def parse_listen_address(value: str) -> Tuple[str, int]:
    """Split ``host:port`` into its parts; an empty host binds every interface."""
    host, sep, port = value.strip().rpartition(":")
    if not sep:
        raise ValueError(f"Listen address needs a port: {value!r}")
    host = host.strip("[]") or "0.0.0.0"
    if port in _NAMED_PORTS:
        return host, _NAMED_PORTS[port]
    try:
        number = int(port)
    except ValueError:
        raise ValueError(f"Invalid port in listen address: {value!r}") from None
    if not 0 < number < 65536:
        raise ValueError(f"Port out of range in listen address: {value!r}")
    return host, number


def load_feed_urls(path: str) -> List[str]:
    """Read feed URLs from a newline-delimited file or an OPML document."""
    logger.info("Loading feed list from %s", path)
    location = Path(path)
    if location.suffix.lower() == ".opml":
        urls = _parse_opml(location)
    else:
        text = location.read_text(encoding="utf-8")
        urls = [line.strip() for line in text.splitlines() if line.strip()]
    logger.info("Loaded %d feed URLs from %s", len(urls), path)
    return urls


def _parse_opml(path: Path) -> List[str]:
    root = ET.parse(path).getroot()
    body = root.find("body")
    if body is None:
        raise ValueError(f"{path} is missing the <body> section.")
    urls = []
    for outline in body.iter("outline"):
        feed_url = (outline.attrib.get("xmlUrl") or "").strip()
        if feed_url:
            urls.append(feed_url)
            logger.debug("Registered feed '%s'", feed_url)
    return urls


def collect_urls(arguments: Sequence[str], feeds_file: Optional[str]) -> List[str]:
    """Combine command-line URLs with the feed-list file, dropping blanks."""
    urls = [url.strip() for url in arguments if url.strip()]
    if feeds_file:
        urls.extend(load_feed_urls(feeds_file))
    if not urls:
        raise ValueError("I need the feed URL.")
    return urls


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def _optional_path(root: ET.Element, tag: str, config_path: Path) -> Optional[str]:
    text = (root.findtext(tag) or "").strip()
    return _resolve_path(config_path, text) if text else None


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    try:
        root = ET.parse(config_path).getroot()
    except ET.ParseError as exc:
        raise ValueError(f"Config file is not valid XML: {exc}") from exc

    config = AppConfig()
    config.feeds_file = _optional_path(root, "feeds", config_path)
    config.cache_file = _optional_path(root, "cache", config_path) or config.cache_file
    config.cert_file = _optional_path(root, "cert", config_path)
    config.key_file = _optional_path(root, "key", config_path)

    frequency = root.findtext("frequency")
    if frequency:
        config.frequency = parse_duration(frequency)
    timeout = root.findtext("timeout")
    if timeout:
        config.timeout = parse_duration(timeout)

    config.http_address = (root.findtext("http") or config.http_address).strip()
    parse_listen_address(config.http_address)

    config.concurrency = int(root.findtext("concurrency", str(config.concurrency)))
    if config.concurrency < 1:
        raise ValueError("<concurrency> must be at least 1.")

    recent_hours = root.findtext("recent-hours")
    if recent_hours:
        config.recent_hours = float(recent_hours)
        if config.recent_hours <= 0:
            raise ValueError("<recent-hours> must be positive.")

    static_dir = _optional_path(root, "static-dir", config_path)
    if static_dir:
        config.static_dir = static_dir

    # Logging
    log_node = root.find("logging")
    if log_node is not None:
        config.logging.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            config.logging.file = _resolve_path(config_path, log_file)

    # Database
    db_node = root.find("database")
    if db_node is not None:
        config.database.enabled = db_node.findtext("enabled", "false").lower() == "true"
        config.database.connection_string = db_node.findtext("connection-string")

    return config
