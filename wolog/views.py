"""
Typed view models handed to the page renderer.

Each exposed operation of the Site facade returns one of these instead of a
loose dict, so templates and route handlers agree on field names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .core.types import Article, SortType
from .core.urls import canonical_url


@dataclass(frozen=True)
class ArticleSummaryView:
    path: str
    url: str
    title: str
    blurb: str
    tags: tuple[str, ...]
    created: date
    updated: date

    @classmethod
    def from_article(cls, article: Article, site_url: str) -> ArticleSummaryView:
        return cls(
            path=article.path,
            url=canonical_url(site_url, article.path),
            title=article.title,
            blurb=article.blurb,
            tags=article.tags,
            created=article.created,
            updated=article.updated,
        )


@dataclass(frozen=True)
class SearchResultsView:
    """A page of search results.

    Attributes:
        path_prefix: The normalized prefix searched under
        sort_type: Order the results are in
        results: Matching articles
        generation: Snapshot generation the results were read from
    """
    path_prefix: str
    sort_type: SortType
    results: list[ArticleSummaryView]
    generation: int

    def __len__(self) -> int:
        return len(self.results)


@dataclass(frozen=True)
class TagListingView:
    tags: tuple[str, ...]
    articles: list[ArticleSummaryView]


@dataclass(frozen=True)
class TagDirectoryView:
    """Every tag with the number of listed articles carrying it, by name."""
    tags: list[tuple[str, int]]

    @property
    def counts(self) -> dict[str, int]:
        return dict(self.tags)


@dataclass(frozen=True)
class HomepageView:
    title: str
    description: str
    recent: list[ArticleSummaryView]


@dataclass(frozen=True)
class ArticleView:
    """Everything needed to render one article page.

    Attributes:
        template: Page template the article asked for
        content: Rendered HTML body
        mentioners: Source URLs of verified webmentions, oldest first
        extra: Front-matter keys the core does not interpret
    """
    path: str
    url: str
    title: str
    blurb: str
    tags: tuple[str, ...]
    created: date
    updated: date
    template: str
    content: str
    mentioners: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_article(cls, article: Article, site_url: str, mentioners: list[str]) -> ArticleView:
        return cls(
            path=article.path,
            url=canonical_url(site_url, article.path),
            title=article.title,
            blurb=article.blurb,
            tags=article.tags,
            created=article.created,
            updated=article.updated,
            template=article.template,
            content=article.rendered_content,
            mentioners=mentioners,
            extra=dict(article.extra),
        )
