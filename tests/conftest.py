from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
import yaml

from wolog.config import AppConfig
from wolog.core.types import Article
from wolog.webmention.store import WebmentionStore, create_store_engine


SITE_URL = "https://blog.example"


def make_article(
    path: str,
    created: str = "2024-01-01",
    updated: str | None = None,
    tags: tuple[str, ...] = (),
    title: str | None = None,
    **fields,
) -> Article:
    return Article(
        path=path,
        title=title or path.rsplit("/", 1)[-1].title(),
        blurb=fields.pop("blurb", ""),
        tags=tags,
        created=date.fromisoformat(created),
        updated=date.fromisoformat(updated or created),
        rendered_content=fields.pop("rendered_content", "<p>Body</p>"),
        **fields,
    )


@pytest.fixture
def article_factory():
    return make_article


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    root = tmp_path / "articles"
    root.mkdir()
    return root


@pytest.fixture
def write_article(content_dir: Path):
    """Write a Markdown document with YAML front matter under content_dir."""

    def _write(
        path: str,
        title: str | None = None,
        created: str = "2024-01-01",
        updated: str | None = None,
        body: str = "Hello.",
        **fields,
    ) -> Path:
        meta = {
            "title": title or path.rsplit("/", 1)[-1].title(),
            "created": created,
            "updated": updated or created,
        }
        meta.update(fields)
        file_path = content_dir / f"{path}.md"
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(
            "---\n" + yaml.safe_dump(meta, sort_keys=False) + "---\n" + body + "\n",
            encoding="utf-8",
        )
        return file_path

    return _write


@pytest.fixture
def app_config(content_dir: Path) -> AppConfig:
    cfg = AppConfig()
    cfg.site.url = SITE_URL
    cfg.site.title = "Example Blog"
    cfg.site.description = "Notes"
    cfg.site.content_dir = str(content_dir)
    cfg.webmention.timeout_seconds = 2.0
    cfg.webmention.retries = 0
    cfg.webmention.workers = 2
    cfg.webmention.bucket_refill_per_second = 1000.0
    return cfg


@pytest.fixture
def store() -> WebmentionStore:
    store = WebmentionStore(create_store_engine("sqlite://"), retries=1, backoff_seconds=0)
    yield store
    store.close()
