"""
Core domain models and business logic.

This package contains the article data types, corpus loading, the snapshot
index and search, independent of any web or network concern.
"""

from .types import (
    Article,
    MentionStatus,
    OutboundAttempt,
    OutboundStatus,
    RejectReason,
    SearchQuery,
    SortType,
    WebmentionRecord,
)
from .loader import ArticleLoader, LoadResult, corpus_fingerprint, render_markdown
from .index import ArticleIndex, ArticleSnapshot, changed_articles
from .search import recent, search, tag_counts, validate_query

__all__ = [
    "Article",
    "ArticleIndex",
    "ArticleLoader",
    "ArticleSnapshot",
    "LoadResult",
    "MentionStatus",
    "OutboundAttempt",
    "OutboundStatus",
    "RejectReason",
    "SearchQuery",
    "SortType",
    "WebmentionRecord",
    "changed_articles",
    "corpus_fingerprint",
    "recent",
    "render_markdown",
    "search",
    "tag_counts",
    "validate_query",
]
