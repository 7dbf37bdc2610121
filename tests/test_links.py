"""Tests for link extraction and webmention endpoint discovery."""

from __future__ import annotations

from wolog.core.urls import article_path_from_url, canonical_url, normalize_url
from wolog.webmention.links import (
    discover_endpoint,
    endpoint_from_link_header,
    extract_links,
    links_to,
)


def test_extract_links_resolves_relative_and_drops_fragments() -> None:
    html = """
    <p><a href="/local">local</a>
    <a href="https://other.example/post#comments">remote</a>
    <a href="https://other.example/post">again</a>
    <a href="mailto:me@example.org">mail</a></p>
    """

    links = extract_links(html, "https://blog.example/blog/post")

    assert links == ["https://blog.example/local", "https://other.example/post"]


def test_links_to_ignores_trailing_slash_and_encoding() -> None:
    html = '<a href="https://BLOG.example/blog/hello%20world/">you</a>'
    assert links_to(html, "https://source.example/", "https://blog.example/blog/hello world")
    assert not links_to(html, "https://source.example/", "https://blog.example/blog/other")


def test_links_to_respects_base_element() -> None:
    html = '<head><base href="https://blog.example/blog/"></head><a href="post">x</a>'
    assert links_to(html, "https://source.example/page", "https://blog.example/blog/post")


def test_link_header_wins_over_html() -> None:
    endpoint = discover_endpoint(
        "https://other.example/post",
        '<https://other.example/a>; rel="other", </webmention>; rel="webmention"',
        '<link rel="webmention" href="/from-html">',
    )
    assert endpoint == "https://other.example/webmention"


def test_first_html_endpoint_in_document_order() -> None:
    html = """
    <a rel="webmention" href="/from-anchor">x</a>
    <link rel="webmention" href="/from-link">
    """
    assert discover_endpoint("https://other.example/post", None, html) == "https://other.example/from-anchor"


def test_empty_href_means_the_page_itself() -> None:
    html = '<link rel="webmention" href="">'
    assert discover_endpoint("https://other.example/post", None, html) == "https://other.example/post"


def test_no_endpoint() -> None:
    assert discover_endpoint("https://other.example/post", None, "<p>nothing</p>") is None
    assert endpoint_from_link_header("https://other.example/", '<https://x>; rel="me"') is None


def test_unquoted_rel_with_multiple_values() -> None:
    assert (
        endpoint_from_link_header("https://other.example/post", "</wm>; rel=webmention")
        == "https://other.example/wm"
    )
    assert (
        endpoint_from_link_header("https://other.example/post", '</wm>; rel="me webmention"')
        == "https://other.example/wm"
    )


def test_article_path_from_url() -> None:
    site = "https://blog.example"
    assert article_path_from_url(site, "https://blog.example/blog/hello%20world") == "blog/hello world"
    assert article_path_from_url(site, "/blog/post.md") == "blog/post"
    assert article_path_from_url(site, "https://elsewhere.example/blog/post") is None
    assert article_path_from_url("https://host.example/site", "https://host.example/other/post") is None
    assert article_path_from_url("https://host.example/site", "https://host.example/site/post") == "post"


def test_canonical_url_round_trips_through_normalization() -> None:
    url = canonical_url("https://blog.example/", "blog/hello world")
    assert url == "https://blog.example/blog/hello%20world"
    assert normalize_url(url) == normalize_url("https://blog.example/blog/hello world/#top")
