"""
RSS 2.0 feed generation.

Feeds are rendered from a Jinja2 template. Output depends only on the
snapshot, the query and the limit (no wall-clock timestamps), so identical
inputs always produce byte-identical documents and callers can cache them
or answer conditional GETs.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from email.utils import format_datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import FeedConfig, SiteConfig
from ..core.index import ArticleSnapshot
from ..core.search import search
from ..core.types import Article, SearchQuery, SortType
from ..core.urls import canonical_url
from ..errors import QueryValidationError


FEED_ORDERS = {
    "created": SortType.CREATE_DESC,
    "updated": SortType.UPDATE_DESC,
}


def _rfc822(day: date) -> str:
    return format_datetime(datetime.combine(day, time(0, 0), tzinfo=timezone.utc))


class FeedBuilder:
    """Turns search results into an RSS document.

    Args:
        site: Channel identity and base URL for item links
        feed: Default limit and which date orders the feed
    """

    def __init__(self, site: SiteConfig, feed: FeedConfig):
        if feed.order not in FEED_ORDERS:
            raise ValueError(f"feed order must be one of {sorted(FEED_ORDERS)}, got {feed.order!r}")
        self.site = site
        self.feed = feed
        self.env = Environment(
            loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
            autoescape=select_autoescape(["html", "xml"]),
            keep_trailing_newline=True,
        )
        self.env.filters["rfc822"] = _rfc822

    def items(self, snapshot: ArticleSnapshot, query: SearchQuery, limit: int | None = None) -> list[Article]:
        """The articles a feed would contain, most recent first."""
        limit = self.feed.limit if limit is None else limit
        if limit <= 0:
            raise QueryValidationError(f"feed limit must be positive, got {limit}")
        results = search(snapshot, query.with_sort(FEED_ORDERS[self.feed.order]))
        return [article for article in results if not article.exclude_from_rss][:limit]

    def build(self, snapshot: ArticleSnapshot, query: SearchQuery, limit: int | None = None) -> str:
        """Render the feed for query.

        Args:
            snapshot: Corpus generation to read
            query: Search criteria; its sort type is replaced by the feed order
            limit: Maximum number of items, defaulting to the configured limit

        Returns:
            The RSS XML document

        Raises:
            QueryValidationError: If the query is invalid or limit is not positive
        """
        articles = self.items(snapshot, query, limit)
        date_field = "updated" if self.feed.order == "updated" else "created"
        entries = [
            {
                "title": article.title,
                "link": canonical_url(self.site.url, article.path),
                "published": getattr(article, date_field),
                "summary": article.blurb,
                "categories": list(article.tags),
            }
            for article in articles
        ]
        last_build = max((entry["published"] for entry in entries), default=None)

        template = self.env.get_template("rss.xml")
        return template.render(
            title=self.site.title,
            link=self.site.url.rstrip("/") + "/",
            description=self.site.description,
            last_build=last_build,
            items=entries,
        )
