"""Tests for snapshots, atomic swaps and leases."""

from __future__ import annotations

import shutil
import threading
import time
from pathlib import Path

from wolog.core.index import ArticleIndex, ArticleSnapshot, changed_articles
from wolog.core.loader import ArticleLoader
from wolog.core.search import search
from wolog.core.types import SearchQuery, SortType


def test_reload_swaps_in_a_new_generation(content_dir: Path, write_article) -> None:
    index = ArticleIndex(ArticleLoader(content_dir))
    assert index.active.generation == 0
    assert len(index.active) == 0

    write_article("first")
    snapshot = index.reload()

    assert snapshot is index.active
    assert snapshot.generation == 1
    assert index.get("first").title == "First"


def test_failed_reload_keeps_previous_snapshot(content_dir: Path, write_article) -> None:
    write_article("kept")
    index = ArticleIndex(ArticleLoader(content_dir))
    before = index.reload()

    shutil.rmtree(content_dir)

    assert index.reload() is None
    assert index.active is before
    assert index.get("kept") is not None


def test_leased_snapshot_survives_swap_until_released(content_dir: Path, write_article) -> None:
    write_article("a")
    index = ArticleIndex(ArticleLoader(content_dir))
    index.reload()

    with index.lease() as snapshot:
        write_article("b")
        index.reload()
        assert snapshot.generation == 1
        assert snapshot.get("b") is None
        assert index.retained_generations() == [1, 2]

    assert index.retained_generations() == [2]
    assert index.get("b") is not None


def test_hidden_articles_resolve_but_are_not_listed(article_factory) -> None:
    snapshot = ArticleSnapshot.build(
        [
            article_factory("public", tags=("x",)),
            article_factory("secret", tags=("x",), hidden=True),
        ]
    )

    assert snapshot.get("secret") is not None
    assert snapshot.by_tag(["x"]) == ("public",)
    assert [a.path for a in snapshot.ordered(SortType.CREATE_ASC)] == ["public"]
    assert dict(snapshot.tags) == {"x": ("public",)}


def test_descending_order_keeps_ascending_path_tie_break(article_factory) -> None:
    snapshot = ArticleSnapshot.build(
        [
            article_factory("b", created="2024-01-01", title="Same"),
            article_factory("a", created="2024-01-01", title="Same"),
            article_factory("c", created="2023-01-01", title="Other"),
        ]
    )

    def paths(sort_type: SortType) -> list[str]:
        return [a.path for a in snapshot.ordered(sort_type)]

    assert paths(SortType.CREATE_ASC) == ["c", "a", "b"]
    assert paths(SortType.CREATE_DESC) == ["a", "b", "c"]
    assert paths(SortType.NAME_ASC) == ["c", "a", "b"]
    assert paths(SortType.NAME_DESC) == ["a", "b", "c"]


def test_name_order_ignores_case(article_factory) -> None:
    snapshot = ArticleSnapshot.build(
        [
            article_factory("one", title="banana"),
            article_factory("two", title="Apple"),
            article_factory("three", title="cherry"),
        ]
    )

    assert [a.title for a in snapshot.ordered(SortType.NAME_ASC)] == ["Apple", "banana", "cherry"]


def test_changed_articles_reports_new_and_edited(article_factory) -> None:
    old = ArticleSnapshot.build(
        [
            article_factory("same"),
            article_factory("edited", rendered_content="<p>v1</p>"),
        ],
        generation=1,
    )
    new = ArticleSnapshot.build(
        [
            article_factory("same"),
            article_factory("edited", rendered_content="<p>v2</p>"),
            article_factory("added"),
        ],
        generation=2,
    )

    assert [a.path for a in changed_articles(old, new)] == ["added", "edited"]
    assert [a.path for a in changed_articles(None, new)] == ["added", "edited", "same"]


def test_force_rescan_marks_index_stale(content_dir: Path, write_article) -> None:
    write_article("a")
    index = ArticleIndex(ArticleLoader(content_dir))
    assert index.is_stale(3600)

    index.reload()
    assert not index.is_stale(3600)

    index.force_rescan()
    assert index.is_stale(3600)


class SlowLoader(ArticleLoader):
    def __init__(self, content_dir: Path):
        super().__init__(content_dir)
        self._guard = threading.Lock()
        self.running = 0
        self.peak = 0

    def load(self):
        with self._guard:
            self.running += 1
            self.peak = max(self.peak, self.running)
        try:
            time.sleep(0.02)
            return super().load()
        finally:
            with self._guard:
                self.running -= 1


def test_concurrent_reloads_run_one_at_a_time(content_dir: Path, write_article) -> None:
    write_article("a")
    loader = SlowLoader(content_dir)
    index = ArticleIndex(loader)

    generations: list[int] = []
    threads = [threading.Thread(target=lambda: generations.append(index.reload().generation)) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert loader.peak == 1
    assert sorted(generations) == [1, 2, 3, 4]
    assert index.active.generation == 4


def test_reload_unchanged_corpus_is_idempotent(content_dir: Path, write_article) -> None:
    write_article("blog/a", title="Same", created="2024-01-01", tags=["x"])
    write_article("blog/b", title="same", created="2024-01-01", tags=["y"])
    write_article("notes/c", title="Other", created="2023-05-01", updated="2024-02-01", tags=["x"])
    index = ArticleIndex(ArticleLoader(content_dir))

    first = index.reload()
    second = index.reload()

    assert second.generation == first.generation + 1
    assert changed_articles(first, second) == []
    for sort_type in SortType:
        for query in (SearchQuery(sort_type=sort_type), SearchQuery(tags=frozenset({"x"}), sort_type=sort_type)):
            assert search(first, query) == search(second, query)
