"""
Logging setup for the "wolog" logger tree.

Modules log through logging.getLogger(__name__) and attach structured fields
with log_event(). The console shows the message followed by its fields via
Rich; the optional file sink writes one JSON object per line.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.logging import RichHandler

from .config import LoggingConfig


# Attributes every LogRecord has; anything else was passed through extra=.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}


def setup_logging(cfg: LoggingConfig, log_dir: Path | None = None) -> logging.Logger:
    """Configure the package logger from cfg.

    Args:
        cfg: Logging section of the app config
        log_dir: Directory for the file sink; defaults to cfg.directory

    Returns:
        The configured "wolog" logger
    """
    level = _level_from_string(cfg.level)
    logger = logging.getLogger("wolog")
    logger.setLevel(level)
    logger.handlers = []
    logger.propagate = False

    if cfg.console:
        console_handler = RichHandler(rich_tracebacks=True, show_time=False, show_path=False)
        console_handler.setLevel(level)
        console_handler.setFormatter(EventFormatter())
        logger.addHandler(console_handler)

    if cfg.file:
        log_dir = log_dir if log_dir is not None else Path(cfg.directory)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / cfg.filename, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(_build_file_formatter(cfg.format))
        logger.addHandler(file_handler)

    return logger


def log_event(
    logger: logging.Logger | None,
    message: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Log message with structured fields.

    Field names must not collide with LogRecord attributes (name, filename,
    message...); use e.g. article= rather than path=.
    """
    if logger is None:
        return
    logger.log(level, message, extra=fields)


def extract_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}


class EventFormatter(logging.Formatter):
    """Human-readable message followed by key=value fields."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        fields = extract_fields(record)
        if fields:
            message += " " + " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)
        return message


class JsonlFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(extract_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _build_file_formatter(fmt: str) -> logging.Formatter:
    if fmt == "jsonl":
        return JsonlFormatter()
    return logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")


def _level_from_string(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)
