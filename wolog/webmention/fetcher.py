"""
HTTP fetching for webmention verification and notification.

Both helpers return result objects instead of raising, the way the rest of
the pipeline reports network outcomes. Transient failures (timeouts,
connection errors, 5xx, 429) are retried with a linear backoff; everything
else is returned immediately.
"""

from __future__ import annotations

from dataclasses import dataclass
import asyncio
from urllib.parse import urlsplit

import httpx

from ..core.types import RejectReason


RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass
class FetchResult:
    """Result of an HTTP fetch operation.

    Either text will be populated (success) or error and reason will be
    populated (failure), but never both. status_code may be None for
    network-level failures.

    Attributes:
        url: The URL that was requested
        status_code: HTTP status code, or None if no response arrived
        text: The decoded response body, or None on error
        error: Error message if the fetch failed, None on success
        reason: Failure classification, None on success
        final_url: URL after redirects; relative links resolve against it
        link_header: Raw HTTP Link header, if any
        attempts: Number of requests made
    """
    url: str
    status_code: int | None
    text: str | None
    error: str | None
    reason: RejectReason | None = None
    final_url: str | None = None
    link_header: str | None = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.reason is None

    @property
    def transient(self) -> bool:
        if self.reason == RejectReason.TIMEOUT:
            return True
        if self.reason == RejectReason.UNREACHABLE:
            return self.status_code is None or self.status_code in RETRYABLE_STATUS
        return False


def is_http_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    timeout: float,
    max_bytes: int,
    retries: int,
    backoff: float = 0.5,
) -> FetchResult:
    """Fetch a page, bounded in time and size.

    The whole request, body included, must finish within timeout seconds;
    the body is streamed and abandoned once it exceeds max_bytes.

    Args:
        client: Shared HTTP client
        url: The URL to fetch
        timeout: Overall deadline per attempt, in seconds
        max_bytes: Largest body that will be read
        retries: Number of retry attempts after a transient failure
        backoff: Base delay; attempt n waits backoff * n seconds

    Returns:
        FetchResult with text on success or error and reason on failure
    """
    if not is_http_url(url):
        return FetchResult(
            url=url,
            status_code=None,
            text=None,
            error="not an http(s) URL",
            reason=RejectReason.MALFORMED,
            attempts=0,
        )

    result: FetchResult | None = None
    for attempt in range(retries + 1):
        try:
            result = await asyncio.wait_for(_get(client, url, max_bytes), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            result = FetchResult(
                url=url,
                status_code=None,
                text=None,
                error=f"TimeoutError: {exc}" if str(exc) else "TimeoutError",
                reason=RejectReason.TIMEOUT,
            )
        except httpx.HTTPError as exc:
            result = FetchResult(
                url=url,
                status_code=None,
                text=None,
                error=f"{type(exc).__name__}: {exc}",
                reason=RejectReason.UNREACHABLE,
            )
        result.attempts = attempt + 1
        if not result.transient:
            return result
        if attempt < retries:
            # Linear backoff: 0.5s, 1.0s, 1.5s...
            await asyncio.sleep(backoff * (attempt + 1))

    return result


async def _get(client: httpx.AsyncClient, url: str, max_bytes: int) -> FetchResult:
    async with client.stream("GET", url, headers={"Accept": "text/html, */*;q=0.5"}) as resp:
        common = {
            "url": url,
            "status_code": resp.status_code,
            "final_url": str(resp.url),
            "link_header": resp.headers.get("link"),
        }
        if resp.status_code >= 400:
            return FetchResult(
                text=None,
                error=f"HTTP {resp.status_code}",
                reason=RejectReason.UNREACHABLE,
                **common,
            )

        body = bytearray()
        async for chunk in resp.aiter_bytes():
            body.extend(chunk)
            if len(body) > max_bytes:
                return FetchResult(
                    text=None,
                    error=f"response larger than {max_bytes} bytes",
                    reason=RejectReason.MALFORMED,
                    **common,
                )

        try:
            text = bytes(body).decode(resp.charset_encoding or "utf-8")
        except (UnicodeDecodeError, LookupError) as exc:
            return FetchResult(
                text=None,
                error=f"undecodable body: {exc}",
                reason=RejectReason.MALFORMED,
                **common,
            )
        return FetchResult(text=text, error=None, **common)


async def post_notification(
    client: httpx.AsyncClient,
    endpoint: str,
    source: str,
    target: str,
    timeout: float,
    retries: int,
    backoff: float = 0.5,
) -> FetchResult:
    """POST a webmention (form-encoded source and target) to endpoint.

    Any 2xx answer counts as delivered. Retries follow the same rules as
    fetch_page.
    """
    result: FetchResult | None = None
    for attempt in range(retries + 1):
        try:
            resp = await asyncio.wait_for(
                client.post(endpoint, data={"source": source, "target": target}),
                timeout=timeout,
            )
            if 200 <= resp.status_code < 300:
                result = FetchResult(url=endpoint, status_code=resp.status_code, text=resp.text, error=None)
            else:
                result = FetchResult(
                    url=endpoint,
                    status_code=resp.status_code,
                    text=None,
                    error=f"HTTP {resp.status_code}",
                    reason=RejectReason.UNREACHABLE,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            result = FetchResult(
                url=endpoint,
                status_code=None,
                text=None,
                error=f"TimeoutError: {exc}" if str(exc) else "TimeoutError",
                reason=RejectReason.TIMEOUT,
            )
        except httpx.HTTPError as exc:
            result = FetchResult(
                url=endpoint,
                status_code=None,
                text=None,
                error=f"{type(exc).__name__}: {exc}",
                reason=RejectReason.UNREACHABLE,
            )
        result.attempts = attempt + 1
        if not result.transient:
            return result
        if attempt < retries:
            await asyncio.sleep(backoff * (attempt + 1))

    return result
