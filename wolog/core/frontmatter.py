"""
Front matter parser for Markdown articles.

Articles start with a YAML metadata block:

    ---
    title: Hello
    created: 2024-01-01
    updated: 2024-02-01
    tags: [x, y]
    ---
    Body text...

The block is closed by a line of "---" or "...". Field normalization lives
here; deciding what to do with a failure is the loader's job.
"""

from __future__ import annotations

from datetime import date, datetime
import re
from typing import Any

import yaml

from ..errors import ContentParseError


OPEN_RE = re.compile(r"^---\s*$")           # Matches the opening "---"
CLOSE_RE = re.compile(r"^(---|\.\.\.)\s*$")  # Matches a closing "---" or "..."

REQUIRED_FIELDS = ("title", "created", "updated")


def split_front_matter(path: str, text: str) -> tuple[dict[str, Any], str]:
    """Split a document into its metadata mapping and Markdown body.

    Args:
        path: Article identifier, used in error messages
        text: Full file contents

    Returns:
        A tuple of (metadata, body)

    Raises:
        ContentParseError: If the block is missing, unterminated, not valid
            YAML, or not a mapping
    """
    lines = text.lstrip("\ufeff").splitlines(keepends=True)
    if not lines or not OPEN_RE.match(lines[0]):
        raise ContentParseError(path, "missing front matter")

    for index, line in enumerate(lines[1:], start=1):
        if CLOSE_RE.match(line):
            raw = "".join(lines[1:index])
            body = "".join(lines[index + 1:])
            break
    else:
        raise ContentParseError(path, "unterminated front matter")

    try:
        meta = yaml.safe_load(raw)
    except (yaml.YAMLError, ValueError) as exc:
        # PyYAML builds timestamps itself; 2024-02-30 surfaces as ValueError.
        raise ContentParseError(path, f"invalid YAML: {exc}") from exc

    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise ContentParseError(path, "front matter is not a mapping")
    return meta, body


def require_fields(path: str, meta: dict[str, Any]) -> None:
    missing = [name for name in REQUIRED_FIELDS if meta.get(name) in (None, "")]
    if missing:
        raise ContentParseError(path, f"missing required field(s): {', '.join(missing)}")


def parse_date(path: str, name: str, value: Any) -> date:
    """Normalize a front-matter date.

    YAML already turns unquoted ISO dates into date objects; quoted strings
    and full timestamps are accepted too.

    Examples:
        >>> parse_date("a", "created", "2024-01-31")
        datetime.date(2024, 1, 31)
        >>> parse_date("a", "created", "2024-01-31T10:00:00")
        datetime.date(2024, 1, 31)
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise ContentParseError(path, f"{name} is not a date: {value!r}")


def parse_tags(path: str, value: Any) -> tuple[str, ...]:
    """Normalize tags from a YAML list or a comma-separated string.

    Blank entries are dropped and duplicates collapsed.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        raise ContentParseError(path, f"tags must be a list or string, got {type(value).__name__}")

    tags = []
    for item in items:
        if not isinstance(item, (str, int, float)):
            raise ContentParseError(path, f"invalid tag: {item!r}")
        tag = str(item).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tuple(tags)


def parse_flag(path: str, name: str, value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "1"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "0"):
        return False
    raise ContentParseError(path, f"{name} must be a boolean, got {value!r}")
