"""
Hyperlink extraction and webmention endpoint discovery using BeautifulSoup.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..core.urls import normalize_url
from .fetcher import is_http_url


# One entry of an HTTP Link header: <url>; param=value; ...
LINK_ENTRY_RE = re.compile(r"<([^>]*)>((?:\s*;\s*[^;,]+)*)")
REL_PARAM_RE = re.compile(r"""rel\s*=\s*(?:"([^"]*)"|([^\s;,]+))""", re.IGNORECASE)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _document_base(soup: BeautifulSoup, page_url: str) -> str:
    base = soup.find("base", href=True)
    if base is not None:
        return urljoin(page_url, base["href"])
    return page_url


def extract_links(html: str, base_url: str) -> list[str]:
    """Absolute http(s) targets of every <a href> in html, first occurrence order.

    Args:
        html: Rendered HTML
        base_url: URL the document lives at, for resolving relative links

    Returns:
        Deduplicated absolute URLs with fragments removed
    """
    soup = _soup(html)
    base = _document_base(soup, base_url)
    links: list[str] = []
    seen: set[str] = set()
    for anchor in soup.find_all(["a", "area"], href=True):
        url = urljoin(base, anchor["href"].strip()).split("#", 1)[0]
        if not is_http_url(url) or url in seen:
            continue
        seen.add(url)
        links.append(url)
    return links


def links_to(html: str, page_url: str, target_url: str) -> bool:
    """Whether html contains a hyperlink resolving to target_url.

    Comparison is on normalized URLs: fragment dropped, host case and
    percent-encoding of the path ignored, trailing slash insignificant.
    """
    wanted = normalize_url(target_url)
    return any(normalize_url(url) == wanted for url in extract_links(html, page_url))


def _rel_tokens(params: str) -> list[str]:
    match = REL_PARAM_RE.search(params)
    if not match:
        return []
    value = match.group(1) if match.group(1) is not None else match.group(2)
    return value.lower().split()


def endpoint_from_link_header(page_url: str, link_header: str | None) -> str | None:
    """Endpoint advertised in an HTTP Link header, resolved against page_url.

    Example:
        >>> endpoint_from_link_header("https://a.example/post", '</wm>; rel="webmention"')
        'https://a.example/wm'
    """
    if not link_header:
        return None
    for match in LINK_ENTRY_RE.finditer(link_header):
        if "webmention" in _rel_tokens(match.group(2)):
            return urljoin(page_url, match.group(1).strip())
    return None


def discover_endpoint(page_url: str, link_header: str | None, html: str | None) -> str | None:
    """Find the webmention endpoint a page advertises.

    The HTTP Link header wins; otherwise the first <link> or <a> element with
    rel="webmention" in document order. An empty href means the page itself.

    Returns:
        Absolute endpoint URL, or None if the page advertises none
    """
    endpoint = endpoint_from_link_header(page_url, link_header)
    if endpoint:
        return endpoint
    if not html:
        return None

    soup = _soup(html)
    base = _document_base(soup, page_url)
    for element in soup.find_all(["link", "a"], href=True):
        rel = element.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "webmention" in (token.lower() for token in rel):
            endpoint = urljoin(base, element["href"].strip())
            if is_http_url(endpoint):
                return endpoint
    return None
