"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- SiteConfig: Public site identity and content location
- IndexConfig: Corpus reload polling
- FeedConfig: RSS feed settings
- WebmentionConfig: Webmention fetching, worker pool and recheck settings
- StoreConfig: Webmention database settings
- LoggingConfig: Logging behavior
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Any

import yaml


IN_MEMORY_DATABASE_URL = "sqlite://"


@dataclass
class SiteConfig:
    """Configuration for the published site.

    Attributes:
        url: Public base URL; article canonical URLs are built from it
        title: Site title used for the RSS channel
        description: Site description used for the RSS channel
        content_dir: Directory containing the Markdown articles
    """

    url: str = "http://localhost:8000"
    title: str = "wolog"
    description: str = "Articles"
    content_dir: str = "./articles"


@dataclass
class IndexConfig:
    """Configuration for corpus reloading.

    Attributes:
        poll_seconds: How often the content directory fingerprint is checked
        rescan_seconds: Maximum age of a snapshot before a full rescan is forced
    """

    poll_seconds: float = 30.0
    rescan_seconds: float = 30 * 60


@dataclass
class FeedConfig:
    """Configuration for RSS generation.

    Attributes:
        limit: Default number of items in a feed
        order: "created" or "updated"; which date makes an item recent
    """

    limit: int = 20
    order: str = "created"


@dataclass
class WebmentionConfig:
    """Configuration for sending and verifying webmentions.

    Attributes:
        timeout_seconds: Per-fetch timeout; a source slower than this is rejected
        max_response_bytes: Largest source document that will be read
        retries: Retry attempts for transient network failures
        workers: Size of the verification/notification worker pool
        queue_size: Capacity of the pending work queue
        bucket_capacity: Burst size of the outbound fetch rate limiter
        bucket_refill_per_second: Tokens added to the rate limiter each second
        recheck_hours: Interval between sweeps re-verifying accepted mentions
        outbound_enabled: Whether changed articles notify the sites they link to
        user_agent: HTTP User-Agent header string
        trust_env: Whether to respect system proxy settings
    """

    timeout_seconds: float = 10.0
    max_response_bytes: int = 0xFFFFFF
    retries: int = 2
    workers: int = 4
    queue_size: int = 256
    bucket_capacity: int = 8
    bucket_refill_per_second: float = 1.0
    recheck_hours: float = 24.0
    outbound_enabled: bool = True
    user_agent: str = "wolog-webmention/0.1 (+https://webmention.net)"
    trust_env: bool = True


@dataclass
class StoreConfig:
    """Configuration for the webmention database.

    Attributes:
        url: SQLAlchemy database URL; falls back to DATABASE_URL, then memory
        retries: Retry attempts for a failed write
        backoff_seconds: Base delay between write retries
    """

    url: str | None = None
    retries: int = 3
    backoff_seconds: float = 0.5


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        filename: Name of the main log file
        directory: Directory for the log file
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    filename: str = "wolog.jsonl"
    directory: str = "logs"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    site: SiteConfig = field(default_factory=SiteConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    webmention: WebmentionConfig = field(default_factory=WebmentionConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults."""
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig."""
    data = _asdict(base)
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            data[key].update(value)
        else:
            data[key] = value
    return _fromdict(data)


def _asdict(cfg: AppConfig) -> dict[str, Any]:
    """Convert AppConfig to nested dictionary."""
    return {
        "site": {
            "url": cfg.site.url,
            "title": cfg.site.title,
            "description": cfg.site.description,
            "content_dir": cfg.site.content_dir,
        },
        "index": {
            "poll_seconds": cfg.index.poll_seconds,
            "rescan_seconds": cfg.index.rescan_seconds,
        },
        "feed": {
            "limit": cfg.feed.limit,
            "order": cfg.feed.order,
        },
        "webmention": {
            "timeout_seconds": cfg.webmention.timeout_seconds,
            "max_response_bytes": cfg.webmention.max_response_bytes,
            "retries": cfg.webmention.retries,
            "workers": cfg.webmention.workers,
            "queue_size": cfg.webmention.queue_size,
            "bucket_capacity": cfg.webmention.bucket_capacity,
            "bucket_refill_per_second": cfg.webmention.bucket_refill_per_second,
            "recheck_hours": cfg.webmention.recheck_hours,
            "outbound_enabled": cfg.webmention.outbound_enabled,
            "user_agent": cfg.webmention.user_agent,
            "trust_env": cfg.webmention.trust_env,
        },
        "store": {
            "url": cfg.store.url,
            "retries": cfg.store.retries,
            "backoff_seconds": cfg.store.backoff_seconds,
        },
        "logging": {
            "level": cfg.logging.level,
            "console": cfg.logging.console,
            "file": cfg.logging.file,
            "format": cfg.logging.format,
            "filename": cfg.logging.filename,
            "directory": cfg.logging.directory,
        },
    }


def _fromdict(data: dict[str, Any]) -> AppConfig:
    """Reconstruct AppConfig from nested dictionary."""
    return AppConfig(
        site=SiteConfig(**data["site"]),
        index=IndexConfig(**data["index"]),
        feed=FeedConfig(**data["feed"]),
        webmention=WebmentionConfig(**data["webmention"]),
        store=StoreConfig(**data["store"]),
        logging=LoggingConfig(**data["logging"]),
    )


def get_database_url(cfg: StoreConfig) -> str:
    """Get the database URL from inline config, DATABASE_URL, or in-memory SQLite."""
    if cfg.url:
        return cfg.url
    return os.getenv("DATABASE_URL") or IN_MEMORY_DATABASE_URL
