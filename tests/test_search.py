"""Tests for multi-criteria search over a snapshot."""

from __future__ import annotations

from datetime import date

import pytest

from wolog.core.index import ArticleSnapshot
from wolog.core.search import recent, search, tag_counts, validate_query
from wolog.core.types import SearchQuery, SortType
from wolog.errors import QueryValidationError


def _paths(articles) -> list[str]:
    return [article.path for article in articles]


@pytest.fixture
def corpus(article_factory) -> ArticleSnapshot:
    return ArticleSnapshot.build(
        [
            article_factory("A", created="2023-01-01", tags=("x",)),
            article_factory("B", created="2023-06-01", tags=("y",)),
            article_factory("C", created="2024-01-01", tags=("x", "y")),
        ],
        generation=1,
    )


def test_tag_search_in_creation_order(corpus: ArticleSnapshot) -> None:
    query = SearchQuery(tags=frozenset({"x"}), sort_type=SortType.CREATE_ASC)
    assert _paths(search(corpus, query)) == ["A", "C"]


def test_created_since_with_default_sort(corpus: ArticleSnapshot) -> None:
    query = SearchQuery(created_since=date(2023, 3, 1))
    assert _paths(search(corpus, query)) == ["C", "B"]


def test_multiple_tags_match_any(corpus: ArticleSnapshot) -> None:
    query = SearchQuery(tags=frozenset({"x", "y"}), sort_type=SortType.CREATE_ASC)
    assert _paths(search(corpus, query)) == ["A", "B", "C"]


def test_date_bounds_are_inclusive(corpus: ArticleSnapshot) -> None:
    query = SearchQuery(created_since=date(2023, 1, 1), created_before=date(2023, 6, 1))
    assert _paths(search(corpus, query)) == ["B", "A"]


def test_title_filter_is_case_insensitive(article_factory) -> None:
    snapshot = ArticleSnapshot.build(
        [
            article_factory("one", title="Writing Rust"),
            article_factory("two", title="Gardening"),
        ]
    )
    assert _paths(search(snapshot, SearchQuery(title_filter="rUsT"))) == ["one"]


def test_path_prefix_matches_whole_segments(article_factory) -> None:
    snapshot = ArticleSnapshot.build(
        [
            article_factory("blog/post"),
            article_factory("blogroll"),
            article_factory("notes/blog"),
        ]
    )
    assert _paths(search(snapshot, SearchQuery(path_prefix="blog"))) == ["blog/post"]
    assert _paths(search(snapshot, SearchQuery(path_prefix="/blog/"))) == ["blog/post"]


def test_every_sort_type_orders_all_results(corpus: ArticleSnapshot) -> None:
    for sort_type in SortType:
        results = search(corpus, SearchQuery(sort_type=sort_type))
        assert sorted(_paths(results)) == ["A", "B", "C"]


def test_inverted_range_is_rejected(corpus: ArticleSnapshot) -> None:
    query = SearchQuery(updated_since=date(2024, 1, 2), updated_before=date(2024, 1, 1))
    with pytest.raises(QueryValidationError):
        search(corpus, query)


def test_unknown_sort_type_is_rejected() -> None:
    assert SortType.parse(None) is SortType.CREATE_DESC
    assert SortType.parse("NameAsc") is SortType.NAME_ASC
    with pytest.raises(QueryValidationError):
        SortType.parse("Random")


def test_tag_counts_sorted_by_name(corpus: ArticleSnapshot) -> None:
    assert tag_counts(corpus) == [("x", 2), ("y", 2)]


def test_recent_skips_feed_excluded_and_caps_at_nine(article_factory) -> None:
    articles = [
        article_factory(f"post-{n:02d}", created=f"2024-01-{n:02d}")
        for n in range(1, 13)
    ]
    articles.append(article_factory("about", created="2024-02-01", exclude_from_rss=True))
    snapshot = ArticleSnapshot.build(articles)

    homepage = recent(snapshot)

    assert len(homepage) == 9
    assert homepage[0].path == "post-12"
    assert "about" not in _paths(homepage)


def test_sort_type_given_by_name_is_accepted(corpus: ArticleSnapshot) -> None:
    query = validate_query(SearchQuery(sort_type="CreateAsc"))
    assert query.sort_type is SortType.CREATE_ASC

    assert _paths(search(corpus, SearchQuery(sort_type="CreateAsc"))) == ["A", "B", "C"]
    with pytest.raises(QueryValidationError):
        search(corpus, SearchQuery(sort_type="Sideways"))
