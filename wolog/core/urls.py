"""Canonical article URLs and URL comparison."""

from __future__ import annotations

from urllib.parse import quote, unquote, urldefrag, urlsplit, urlunsplit


def canonical_url(site_url: str, path: str) -> str:
    """Public URL of an article.

    Example:
        >>> canonical_url("https://example.org/", "blog/hello world")
        'https://example.org/blog/hello%20world'
    """
    return f"{site_url.rstrip('/')}/{quote(path, safe='/')}"


def article_path_from_url(site_url: str, target: str) -> str | None:
    """Map a target to an article path.

    Accepts an absolute URL under site_url or a bare site-relative path.
    Returns None when the target points somewhere else entirely.
    """
    target = urldefrag(target.strip())[0]
    base = urlsplit(site_url.rstrip("/"))
    parts = urlsplit(target)

    if parts.scheme or parts.netloc:
        if parts.scheme not in ("http", "https"):
            return None
        if parts.netloc.lower() != base.netloc.lower():
            return None
        relative = parts.path
        base_path = base.path.rstrip("/")
        if base_path:
            if not (relative == base_path or relative.startswith(base_path + "/")):
                return None
            relative = relative[len(base_path):]
    else:
        relative = parts.path

    path = unquote(relative).strip("/")
    if path.endswith(".md"):
        path = path[: -len(".md")]
    return path or None


def normalize_url(url: str) -> str:
    """Comparable form of a URL.

    Drops the fragment, lowercases scheme and host, percent-decodes the path
    and ignores a trailing slash, so equivalent spellings of a link compare
    equal.
    """
    url = urldefrag(url.strip())[0]
    parts = urlsplit(url)
    path = unquote(parts.path).rstrip("/") or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def same_host(a: str, b: str) -> bool:
    return urlsplit(a).netloc.lower() == urlsplit(b).netloc.lower()
