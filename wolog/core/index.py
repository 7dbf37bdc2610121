"""
Versioned, immutable corpus snapshots and the index that serves them.

The index holds one active ArticleSnapshot. A reload builds a complete new
snapshot off to the side and swaps the active reference under a lock, so a
reader sees either the old corpus or the new one, never a mix. Readers pin a
snapshot with lease(); a superseded snapshot is released once its last lease
ends.
"""

from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from itertools import groupby
import logging
import threading
import time
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from ..errors import ReloadFailure
from ..logging_utils import log_event
from .loader import ArticleLoader
from .types import Article, SortType


logger = logging.getLogger(__name__)

# Sort field behind each precomputed order
_ORDER_FIELDS = {
    "created": lambda article: article.created,
    "updated": lambda article: article.updated,
    "name": lambda article: (article.title.casefold(), article.title),
}


@dataclass(frozen=True)
class ArticleSnapshot:
    """One immutable generation of the corpus and its derived indexes.

    Attributes:
        generation: Monotonic version number assigned by the index
        articles: Every loaded article by path, hidden ones included
        tags: Tag to listed article paths, each tuple sorted by path
        by_created: Listed paths ordered by (created, path)
        by_updated: Listed paths ordered by (updated, path)
        by_name: Listed paths ordered by (title, path)
    """
    generation: int
    articles: Mapping[str, Article]
    tags: Mapping[str, tuple[str, ...]]
    by_created: tuple[str, ...]
    by_updated: tuple[str, ...]
    by_name: tuple[str, ...]

    @classmethod
    def build(cls, articles: Iterable[Article], generation: int = 0) -> ArticleSnapshot:
        by_path = {article.path: article for article in articles}
        listed = sorted(path for path, article in by_path.items() if not article.hidden)

        tags: dict[str, list[str]] = defaultdict(list)
        for path in listed:
            for tag in by_path[path].tags:
                tags[tag].append(path)

        return cls(
            generation=generation,
            articles=MappingProxyType(by_path),
            tags=MappingProxyType({tag: tuple(paths) for tag, paths in sorted(tags.items())}),
            by_created=_sorted_paths(listed, by_path, "created"),
            by_updated=_sorted_paths(listed, by_path, "updated"),
            by_name=_sorted_paths(listed, by_path, "name"),
        )

    def get(self, path: str) -> Article | None:
        return self.articles.get(path)

    def by_tag(self, tags: Iterable[str]) -> tuple[str, ...]:
        """Union of the articles carrying any of tags, sorted by path."""
        paths: set[str] = set()
        for tag in tags:
            paths.update(self.tags.get(tag, ()))
        return tuple(sorted(paths))

    def ordered(self, sort_type: SortType) -> Iterator[Article]:
        """Listed articles in sort order.

        Descending orders reverse the sort field only; articles that tie on it
        stay in ascending path order, as they do in the ascending orders.
        """
        paths = {
            "created": self.by_created,
            "updated": self.by_updated,
            "name": self.by_name,
        }[sort_type.order_key]
        if sort_type.descending:
            field = _ORDER_FIELDS[sort_type.order_key]
            paths = tuple(
                path
                for _, group in groupby(reversed(paths), key=lambda p: field(self.articles[p]))
                for path in reversed(tuple(group))
            )
        return (self.articles[path] for path in paths)

    def __len__(self) -> int:
        return len(self.articles)


def _sorted_paths(paths: Iterable[str], by_path: Mapping[str, Article], order: str) -> tuple[str, ...]:
    field = _ORDER_FIELDS[order]
    return tuple(sorted(paths, key=lambda p: (field(by_path[p]), p)))


def changed_articles(old: ArticleSnapshot | None, new: ArticleSnapshot) -> list[Article]:
    """Articles that are new in `new` or whose content or update date changed."""
    changed = []
    for path in sorted(new.articles):
        article = new.articles[path]
        previous = old.get(path) if old is not None else None
        if (
            previous is None
            or previous.rendered_content != article.rendered_content
            or previous.updated != article.updated
        ):
            changed.append(article)
    return changed


class ArticleIndex:
    """Serves the active snapshot and swaps in new ones atomically.

    Args:
        loader: Builds fresh snapshots on reload
        initial: Optional starting snapshot; an empty corpus otherwise
    """

    def __init__(self, loader: ArticleLoader, initial: ArticleSnapshot | None = None):
        self.loader = loader
        self._lock = threading.Lock()
        self._reload_lock = threading.Lock()
        self._active = initial or ArticleSnapshot.build([], generation=0)
        self._leases: dict[int, int] = defaultdict(int)
        self._retained: dict[int, ArticleSnapshot] = {}
        self._loaded_at: float | None = None

    @property
    def active(self) -> ArticleSnapshot:
        """The current snapshot, unpinned. Prefer lease() for multi-step reads."""
        with self._lock:
            return self._active

    @contextmanager
    def lease(self) -> Iterator[ArticleSnapshot]:
        """Pin the active snapshot for the duration of a read."""
        with self._lock:
            snapshot = self._active
            self._leases[snapshot.generation] += 1
            self._retained[snapshot.generation] = snapshot
        try:
            yield snapshot
        finally:
            with self._lock:
                self._leases[snapshot.generation] -= 1
                self._release_if_unused(snapshot.generation)

    def swap(self, snapshot: ArticleSnapshot) -> ArticleSnapshot:
        """Make snapshot active. Returns the snapshot it replaced."""
        with self._lock:
            previous = self._active
            self._active = snapshot
            self._loaded_at = time.monotonic()
            self._release_if_unused(previous.generation)
        log_event(
            logger,
            "Snapshot swapped",
            event="snapshot_swapped",
            generation=snapshot.generation,
            previous_generation=previous.generation,
            articles=len(snapshot),
        )
        return previous

    def reload(self) -> ArticleSnapshot | None:
        """Rebuild the corpus and swap it in.

        Reloads are serialized; a caller arriving during a reload waits for it
        and then runs its own. Readers are never blocked. On failure the
        previous snapshot stays active and None is returned.
        """
        with self._reload_lock:
            generation = self.active.generation + 1
            try:
                result = self.loader.load()
            except ReloadFailure as exc:
                log_event(
                    logger,
                    "Reload failed; keeping previous snapshot",
                    level=logging.ERROR,
                    event="reload_failed",
                    error=str(exc),
                    generation=self.active.generation,
                )
                return None

            snapshot = ArticleSnapshot.build(result.articles.values(), generation=generation)
            self.swap(snapshot)
            log_event(
                logger,
                "Corpus reloaded",
                event="corpus_reloaded",
                generation=generation,
                articles=len(snapshot),
                failures=len(result.failures),
                drafts=len(result.drafts),
            )
            return snapshot

    def force_rescan(self) -> None:
        """Mark the active snapshot stale so the next poll reloads."""
        with self._lock:
            self._loaded_at = None

    def is_stale(self, max_age_seconds: float) -> bool:
        with self._lock:
            if self._loaded_at is None:
                return True
            return time.monotonic() - self._loaded_at > max_age_seconds

    def retained_generations(self) -> list[int]:
        """Generations still alive: the active one plus any leased old ones."""
        with self._lock:
            return sorted({self._active.generation, *self._retained})

    def get(self, path: str) -> Article | None:
        return self.active.get(path)

    def by_tag(self, tags: Iterable[str]) -> tuple[str, ...]:
        return self.active.by_tag(tags)

    def ordered(self, sort_type: SortType) -> list[Article]:
        return list(self.active.ordered(sort_type))

    def _release_if_unused(self, generation: int) -> None:
        # Caller holds self._lock.
        if generation == self._active.generation or self._leases.get(generation, 0) > 0:
            return
        self._leases.pop(generation, None)
        if self._retained.pop(generation, None) is not None:
            logger.debug("Released snapshot generation %s", generation)
