"""Tests for the Site facade and its typed views."""

from __future__ import annotations

import asyncio
import shutil
from datetime import date

import httpx
import pytest

from wolog.core.types import MentionStatus, OutboundStatus, SortType, WebmentionRecord
from wolog.errors import ArticleNotFound, QueryValidationError
from wolog.site import Site, parse_query_date


@pytest.fixture
def site(app_config, store, write_article) -> Site:
    write_article("blog/a", title="Alpha", created="2023-01-01", tags=["x"])
    write_article("blog/b", title="beta", created="2023-06-01", updated="2024-02-01", tags=["y"])
    write_article("blog/c", title="Gamma", created="2024-01-01", tags=["x", "y"])
    write_article("about", title="About", created="2022-01-01", hidden=True)
    site = Site(app_config, store=store)
    site.reload()
    return site


def test_search_parses_query_string_values(site: Site) -> None:
    view = site.search(path_prefix="/blog", created_since="2023-03-01", sort_type="CreateAsc")

    assert view.sort_type is SortType.CREATE_ASC
    assert view.path_prefix == "blog"
    assert [r.path for r in view.results] == ["blog/b", "blog/c"]
    assert view.results[0].url == "https://blog.example/blog/b"
    assert view.generation == 1


def test_search_rejects_bad_input(site: Site) -> None:
    with pytest.raises(QueryValidationError):
        site.search(sort_type="Sideways")
    with pytest.raises(QueryValidationError):
        site.search(created_since="yesterday")
    with pytest.raises(QueryValidationError):
        site.search(created_since="2024-01-02", created_before="2024-01-01")


def test_tags_is_union_newest_first(site: Site) -> None:
    view = site.tags("y,x")

    assert view.tags == ("x", "y")
    assert [a.path for a in view.articles] == ["blog/c", "blog/b", "blog/a"]
    with pytest.raises(QueryValidationError):
        site.tags([])


def test_tag_directory_and_homepage(site: Site) -> None:
    assert site.tag_directory().counts == {"x": 2, "y": 2}

    home = site.homepage()
    assert home.title == "Example Blog"
    assert [a.path for a in home.recent] == ["blog/c", "blog/b", "blog/a"]


def test_article_includes_hidden_and_verified_mentioners(site: Site, store) -> None:
    record = WebmentionRecord.received("https://blog.example/blog/a", "https://fan.example/")
    store.upsert(record.advance(MentionStatus.VERIFYING).advance(MentionStatus.VERIFIED))

    view = site.article("blog/a")
    assert view.title == "Alpha"
    assert view.template == "article"
    assert view.mentioners == ["https://fan.example/"]

    assert site.article("about").title == "About"
    with pytest.raises(ArticleNotFound):
        site.article("blog/nope")


def test_feed_for_prefix(site: Site) -> None:
    document = site.feed("blog", limit=2)
    assert document.count("<item>") == 2
    assert "https://blog.example/blog/c" in document
    assert "https://blog.example/about" not in document


def test_failed_reload_keeps_serving(site: Site, content_dir) -> None:
    shutil.rmtree(content_dir)

    assert site.reload() is None
    assert site.article("blog/a").title == "Alpha"
    assert site.needs_reload()


def test_needs_reload_follows_content_changes(site: Site, write_article) -> None:
    assert not site.needs_reload()

    write_article("blog/d", created="2024-03-01")
    assert site.needs_reload()

    site.reload()
    assert not site.needs_reload()

    site.force_refresh()
    assert site.needs_reload()


def test_refresh_notifies_links_in_changed_articles(app_config, store, write_article) -> None:
    write_article("blog/old", body="[existing](https://other.example/old)")
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(202)
        return httpx.Response(200, html='<link rel="webmention" href="/wm">')

    site = Site(app_config, store=store, transport=httpx.MockTransport(handler))

    async def scenario():
        await site.start()
        try:
            write_article("blog/new", body="[fresh](https://other.example/new)")
            await site.refresh()
            await site.webmentions.join()
        finally:
            await site.stop()

    asyncio.run(scenario())

    assert store.outbound_for("https://blog.example/blog/old") == []
    attempts = store.outbound_for("https://blog.example/blog/new")
    assert [(a.target_url, a.status) for a in attempts] == [
        ("https://other.example/new", OutboundStatus.SENT),
    ]


def test_receive_webmention_refuses_unknown_target(site: Site) -> None:
    async def scenario():
        await site.webmentions.start()
        try:
            return await site.receive_webmention("https://fan.example/", "https://blog.example/blog/zzz")
        finally:
            await site.webmentions.stop()

    response = asyncio.run(scenario())
    assert not response.accepted
    assert response.reason == "InvalidTarget"


def test_parse_query_date() -> None:
    assert parse_query_date("d", "2024-02-29") == date(2024, 2, 29)
    assert parse_query_date("d", "") is None
    assert parse_query_date("d", date(2024, 1, 1)) == date(2024, 1, 1)
