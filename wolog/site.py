"""
The Site facade: the operations the routing layer calls.

Components:
- Site: Wires loader, index, feed builder and webmention service together,
  and runs the background reload poller and recheck sweep
- parse_query_date: Lenient date parsing for query-string values

Reads lease a snapshot for their whole duration, so a reload that lands
mid-request never mixes two generations into one response.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import date, datetime
import logging
from pathlib import Path
from typing import Iterable

import httpx

from .config import AppConfig, load_config
from .core.index import ArticleIndex, ArticleSnapshot, changed_articles
from .core.loader import ArticleLoader, corpus_fingerprint
from .core.search import normalize_prefix, recent, search, tag_counts
from .core.types import SearchQuery, SortType
from .errors import ArticleNotFound, QueryValidationError, ReloadFailure, StoreError
from .logging_utils import log_event
from .output.feed import FeedBuilder
from .views import (
    ArticleSummaryView,
    ArticleView,
    HomepageView,
    SearchResultsView,
    TagDirectoryView,
    TagListingView,
)
from .webmention.service import ClaimResponse, WebmentionService
from .webmention.store import WebmentionStore


logger = logging.getLogger(__name__)


def parse_query_date(name: str, value: str | date | None) -> date | None:
    """Parse a YYYY-MM-DD query value.

    Raises:
        QueryValidationError: If value is not a valid date
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise QueryValidationError(f"{name} must be a YYYY-MM-DD date, got {value!r}") from None


def _tag_set(tags: Iterable[str] | str | None) -> frozenset[str]:
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        tags = tags.split(",")
    return frozenset(tag.strip() for tag in tags if tag and tag.strip())


class Site:
    """Publishing core for one content directory.

    Args:
        config: Application configuration
        store: Webmention store; built from config.store when omitted
        transport: Optional httpx transport for the webmention client
    """

    def __init__(
        self,
        config: AppConfig,
        store: WebmentionStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.content_dir = Path(config.site.content_dir)
        self.loader = ArticleLoader(self.content_dir)
        self.index = ArticleIndex(self.loader)
        self.feeds = FeedBuilder(config.site, config.feed)
        self.store = store or WebmentionStore.from_config(config.store)
        self.webmentions = WebmentionService(config.webmention, config.site, self.index, self.store, transport)
        self._fingerprint: str | None = None
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_config_file(cls, path: str | None) -> Site:
        return cls(load_config(path))

    @property
    def site_url(self) -> str:
        return self.config.site.url

    def _summaries(self, articles) -> list[ArticleSummaryView]:
        return [ArticleSummaryView.from_article(article, self.site_url) for article in articles]

    # Queries

    def search(
        self,
        path_prefix: str = "",
        title_filter: str | None = None,
        created_since: str | date | None = None,
        created_before: str | date | None = None,
        updated_since: str | date | None = None,
        updated_before: str | date | None = None,
        tags: Iterable[str] | str | None = (),
        sort_type: str | SortType | None = None,
    ) -> SearchResultsView:
        """Search listed articles.

        String arguments are accepted as they arrive from a query string.

        Raises:
            QueryValidationError: For an unknown sort type, an unparseable date
                or an inverted range
        """
        query = SearchQuery(
            path_prefix=normalize_prefix(path_prefix),
            title_filter=title_filter or None,
            created_since=parse_query_date("created_since", created_since),
            created_before=parse_query_date("created_before", created_before),
            updated_since=parse_query_date("updated_since", updated_since),
            updated_before=parse_query_date("updated_before", updated_before),
            tags=_tag_set(tags),
            sort_type=SortType.parse(sort_type),
        )
        with self.index.lease() as snapshot:
            results = search(snapshot, query)
            return SearchResultsView(
                path_prefix=query.path_prefix,
                sort_type=query.sort_type,
                results=self._summaries(results),
                generation=snapshot.generation,
            )

    def tags(self, tags: Iterable[str] | str, path_prefix: str = "") -> TagListingView:
        """Articles carrying any of tags, newest first."""
        wanted = _tag_set(tags)
        if not wanted:
            raise QueryValidationError("at least one tag is required")
        query = SearchQuery(path_prefix=normalize_prefix(path_prefix), tags=wanted)
        with self.index.lease() as snapshot:
            return TagListingView(tags=tuple(sorted(wanted)), articles=self._summaries(search(snapshot, query)))

    def tag_directory(self) -> TagDirectoryView:
        with self.index.lease() as snapshot:
            return TagDirectoryView(tags=tag_counts(snapshot))

    def homepage(self) -> HomepageView:
        with self.index.lease() as snapshot:
            return HomepageView(
                title=self.config.site.title,
                description=self.config.site.description,
                recent=self._summaries(recent(snapshot)),
            )

    def article(self, path: str) -> ArticleView:
        """A single article, hidden ones included.

        Mentions are best effort: if the store cannot be read the page is
        still served without them.

        Raises:
            ArticleNotFound: If no article has this path
        """
        path = normalize_prefix(path)
        if path.endswith(".md"):
            path = path[: -len(".md")]
        with self.index.lease() as snapshot:
            article = snapshot.get(path)
        if article is None:
            raise ArticleNotFound(path)
        try:
            mentioners = self.webmentions.mentions_of(article.path)
        except StoreError as exc:
            log_event(
                logger,
                "Mentions unavailable",
                level=logging.WARNING,
                event="store_read_failed",
                article=article.path,
                error=str(exc),
            )
            mentioners = []
        return ArticleView.from_article(article, self.site_url, mentioners)

    def feed(self, path_prefix: str = "", query: SearchQuery | None = None, limit: int | None = None) -> str:
        """RSS for the articles under path_prefix, optionally narrowed by query."""
        query = query or SearchQuery()
        if path_prefix:
            query = replace(query, path_prefix=normalize_prefix(path_prefix))
        with self.index.lease() as snapshot:
            return self.feeds.build(snapshot, query, limit)

    async def receive_webmention(self, source: str, target: str) -> ClaimResponse:
        return await self.webmentions.receive(source, target)

    # Reloading

    def reload(self) -> ArticleSnapshot | None:
        """Rebuild the index now. Returns None if the reload failed."""
        try:
            fingerprint = corpus_fingerprint(self.content_dir)
        except ReloadFailure:
            fingerprint = None
        snapshot = self.index.reload()
        if snapshot is not None:
            self._fingerprint = fingerprint
        return snapshot

    def force_refresh(self) -> None:
        """Rebuild on the next poll, even if no file appears to have changed."""
        self.index.force_rescan()
        self._fingerprint = None

    def needs_reload(self) -> bool:
        if self.index.is_stale(self.config.index.rescan_seconds):
            return True
        try:
            return corpus_fingerprint(self.content_dir) != self._fingerprint
        except ReloadFailure:
            return True

    async def refresh(self) -> ArticleSnapshot | None:
        """Reload in a worker thread and notify sites linked from changed articles.

        The first successful load only establishes the baseline; it sends no
        notifications.
        """
        previous = self.index.active
        snapshot = await asyncio.to_thread(self.reload)
        if snapshot is None:
            return None
        if previous.generation > 0 and self.webmentions.running:
            changed = changed_articles(previous, snapshot)
            queued = self.webmentions.notify(changed)
            if changed:
                log_event(
                    logger,
                    "Queued notifications for changed articles",
                    event="webmention_notify",
                    changed=len(changed),
                    queued=queued,
                )
        return snapshot

    # Background tasks

    async def start(self) -> None:
        """Load the corpus, then start webmention workers and the background loops."""
        if self._tasks:
            return
        await self.webmentions.start()
        await self.refresh()
        self._tasks = [
            asyncio.create_task(self._poll_loop(), name="wolog-reload-poller"),
            asyncio.create_task(self._recheck_loop(), name="wolog-recheck"),
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.webmentions.stop()

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.index.poll_seconds)
            try:
                if await asyncio.to_thread(self.needs_reload):
                    await self.refresh()
            except Exception:
                logger.exception("Reload poll failed")

    async def _recheck_loop(self) -> None:
        interval = self.config.webmention.recheck_hours * 3600
        while True:
            await asyncio.sleep(interval)
            try:
                await self.webmentions.recheck_all()
            except Exception:
                logger.exception("Recheck sweep failed")
