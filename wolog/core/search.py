"""
Multi-criteria article search over a snapshot.

search() is a pure function of (snapshot, query): no side effects, safe to
run concurrently with other searches and with a reload.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date

from ..errors import QueryValidationError
from .index import ArticleSnapshot
from .types import Article, SearchQuery, SortType


HOMEPAGE_LIMIT = 9


def validate_query(query: SearchQuery) -> SearchQuery:
    """Reject queries that cannot be answered as asked.

    A sort type given by name ("CreateAsc") is accepted and normalized.

    Returns:
        The query, with sort_type as a SortType

    Raises:
        QueryValidationError: For an unknown sort type or an inverted range
    """
    sort_type = SortType.parse(query.sort_type)
    _check_range("created", query.created_since, query.created_before)
    _check_range("updated", query.updated_since, query.updated_before)
    if sort_type is not query.sort_type:
        query = replace(query, sort_type=sort_type)
    return query


def _check_range(name: str, since: date | None, before: date | None) -> None:
    if since is not None and before is not None and since > before:
        raise QueryValidationError(f"{name}_since {since} is after {name}_before {before}")


def normalize_prefix(prefix: str | None) -> str:
    return (prefix or "").strip().strip("/")


def under_prefix(path: str, prefix: str) -> bool:
    """Segment-aware prefix test: "blog" covers "blog/x" but not "blogroll"."""
    if not prefix:
        return True
    return path == prefix or path.startswith(prefix + "/")


def matches(article: Article, query: SearchQuery, prefix: str) -> bool:
    if not under_prefix(article.path, prefix):
        return False
    if query.tags and not article.has_any_tag(query.tags):
        return False
    if query.created_since is not None and article.created < query.created_since:
        return False
    if query.created_before is not None and article.created > query.created_before:
        return False
    if query.updated_since is not None and article.updated < query.updated_since:
        return False
    if query.updated_before is not None and article.updated > query.updated_before:
        return False
    if query.title_filter and query.title_filter.casefold() not in article.title.casefold():
        return False
    return True


def search(snapshot: ArticleSnapshot, query: SearchQuery) -> list[Article]:
    """Filter then sort the listed articles of a snapshot.

    Steps: path prefix, tags (union), inclusive date bounds, case-insensitive
    title substring, then order by query.sort_type with path as tie-break.
    Hidden articles never appear. The full result is returned; limiting is
    up to the caller.

    Args:
        snapshot: The corpus generation to search
        query: Search criteria

    Returns:
        Matching articles in sort order

    Raises:
        QueryValidationError: If the query is invalid
    """
    query = validate_query(query)
    prefix = normalize_prefix(query.path_prefix)
    return [
        article
        for article in snapshot.ordered(query.sort_type)
        if matches(article, query, prefix)
    ]


def tag_counts(snapshot: ArticleSnapshot) -> list[tuple[str, int]]:
    """Number of listed articles per tag, sorted by tag name."""
    return sorted((tag, len(paths)) for tag, paths in snapshot.tags.items())


def recent(snapshot: ArticleSnapshot, limit: int = HOMEPAGE_LIMIT) -> list[Article]:
    """Newest articles for the homepage, skipping those kept out of feeds."""
    articles = [
        article
        for article in snapshot.ordered(SortType.CREATE_DESC)
        if not article.exclude_from_rss
    ]
    return articles[:limit]
