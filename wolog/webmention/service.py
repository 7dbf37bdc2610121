"""
Webmention receiving, verification and sending.

Components:
- WebmentionService: Accepts claims, verifies them in the background,
  rechecks accepted mentions and notifies sites our articles link to
- ClaimResponse: Immediate answer to a claim, given before any fetch

All network work runs on a fixed pool of worker tasks fed by a bounded
queue. Every source fetch also takes a token from a shared bucket, so a
burst of claims cannot turn the site into a request amplifier.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

import httpx

from ..config import SiteConfig, WebmentionConfig
from ..core.index import ArticleIndex
from ..core.types import (
    Article,
    MentionStatus,
    OutboundAttempt,
    OutboundStatus,
    RejectReason,
    WebmentionRecord,
)
from ..core.urls import article_path_from_url, canonical_url, same_host
from ..errors import StoreError, WebmentionVerifyError
from ..logging_utils import log_event
from .fetcher import fetch_page, post_notification
from .links import discover_endpoint, extract_links, links_to
from .ratelimit import TokenBucket
from .store import WebmentionStore


logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]

INVALID_TARGET = "InvalidTarget"
UNAVAILABLE = "Unavailable"
QUEUE_FULL = "QueueFull"

# Source answers that mean the page is gone rather than temporarily failing
GONE_STATUS = {404, 410}


@dataclass
class ClaimResponse:
    """Answer to an inbound claim.

    Attributes:
        accepted: True when the claim was queued for verification
        reason: Why it was refused, e.g. "InvalidTarget"
        target_url: Canonical URL of the mentioned article when accepted
    """
    accepted: bool
    reason: str | None = None
    target_url: str | None = None


class WebmentionService:
    def __init__(
        self,
        config: WebmentionConfig,
        site: SiteConfig,
        index: ArticleIndex,
        store: WebmentionStore,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.site = site
        self.index = index
        self.store = store
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._queue: asyncio.Queue[Job] | None = None
        self._workers: list[asyncio.Task] = []
        self._bucket: TokenBucket | None = None
        self._fetch_slots: asyncio.Semaphore | None = None

    # Lifecycle

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """Create the HTTP client and worker pool on the running loop."""
        if self.running:
            return
        self._client = httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            headers={"User-Agent": self.config.user_agent},
            follow_redirects=True,
            trust_env=self.config.trust_env,
            transport=self._transport,
        )
        self._queue = asyncio.Queue(maxsize=self.config.queue_size)
        self._bucket = TokenBucket(self.config.bucket_capacity, self.config.bucket_refill_per_second)
        self._fetch_slots = asyncio.Semaphore(self.config.workers)
        self._workers = [
            asyncio.create_task(self._worker(), name=f"webmention-worker-{number}")
            for number in range(self.config.workers)
        ]
        log_event(logger, "Webmention workers started", event="webmention_started", workers=self.config.workers)
        await self.resume_pending()

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._queue = None

    def try_submit(self, job: Job) -> bool:
        """Queue job without waiting. Returns False if it was dropped."""
        if self._queue is None:
            raise RuntimeError("WebmentionService is not running")
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            return False
        return True

    async def _worker(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                await job()
            except Exception:
                logger.exception("Webmention job failed")
            finally:
                queue.task_done()

    # Inbound

    def resolve_target(self, target: str) -> Article | None:
        path = article_path_from_url(self.site.url, target)
        if path is None:
            return None
        return self.index.get(path)

    async def receive(self, source: str, target: str) -> ClaimResponse:
        """Accept a claim that source links to target.

        The target is checked against the active snapshot before anything is
        fetched. An accepted claim restarts verification for its key, whatever
        its earlier state.
        """
        article = self.resolve_target(target)
        if article is None:
            log_event(
                logger,
                "Refused webmention for unknown target",
                event="webmention_invalid_target",
                source=source,
                target=target,
            )
            return ClaimResponse(accepted=False, reason=INVALID_TARGET)

        if not self.running:
            return ClaimResponse(accepted=False, reason=UNAVAILABLE)

        target_url = canonical_url(self.site.url, article.path)
        record = WebmentionRecord.received(target_url, source)
        # The queue slot is taken before the row is written; the job waits for
        # the write so Verifying never lands before Received.
        persisted = asyncio.get_running_loop().create_future()
        if not self.try_submit(lambda: self._verify_after(persisted, record)):
            log_event(
                logger,
                "Refused webmention, verification queue full",
                level=logging.WARNING,
                event="webmention_queue_full",
                source=source,
                target=target_url,
            )
            return ClaimResponse(accepted=False, reason=QUEUE_FULL)
        try:
            await self._save(record)
        finally:
            if not persisted.done():
                persisted.set_result(None)
        log_event(logger, "Webmention received", event="webmention_received", source=source, target=target_url)
        return ClaimResponse(accepted=True, target_url=target_url)

    async def _verify_after(self, persisted: asyncio.Future, record: WebmentionRecord) -> WebmentionRecord:
        await persisted
        return await self.verify(record)

    async def resume_pending(self) -> int:
        """Queue verification for claims a previous run left unsettled.

        Rows still Received or Verifying start over from Received. Returns the
        number of claims queued.
        """
        try:
            pending = await asyncio.to_thread(self.store.records_with_status, MentionStatus.RECEIVED)
            pending += await asyncio.to_thread(self.store.records_with_status, MentionStatus.VERIFYING)
        except StoreError as exc:
            log_event(logger, "Could not resume pending webmentions", level=logging.ERROR, event="store_read_failed", error=str(exc))
            return 0

        queued = 0
        for row in pending:
            record = WebmentionRecord.received(row.target_url, row.source_url)
            if not self.try_submit(lambda record=record: self.verify(record)):
                break
            queued += 1
        if pending:
            log_event(
                logger,
                "Resumed pending webmentions",
                event="webmention_resumed",
                pending=len(pending),
                queued=queued,
            )
        return queued

    async def verify(self, record: WebmentionRecord) -> WebmentionRecord:
        """Fetch the source of a received claim and settle it."""
        record = record.advance(MentionStatus.VERIFYING)
        await self._save(record)
        try:
            await self._check_backlink(record.source_url, record.target_url)
        except WebmentionVerifyError as exc:
            record = record.advance(MentionStatus.REJECTED, reason=exc.reason)
            log_event(
                logger,
                "Webmention rejected",
                event="webmention_rejected",
                source=record.source_url,
                target=record.target_url,
                reason=exc.reason.value,
                error=exc.detail,
            )
        else:
            record = record.advance(MentionStatus.VERIFIED)
            log_event(
                logger,
                "Webmention verified",
                event="webmention_verified",
                source=record.source_url,
                target=record.target_url,
            )
        await self._save(record)
        return record

    async def recheck(self, record: WebmentionRecord) -> WebmentionRecord:
        """Re-verify an accepted mention.

        The stored row stays Verified while the check runs. A source that is
        gone or no longer links to us revokes the mention; a source that is
        merely unreachable right now keeps it.
        """
        checking = record.advance(MentionStatus.VERIFYING)
        try:
            await self._check_backlink(record.source_url, record.target_url)
        except WebmentionVerifyError as exc:
            gone = exc.reason == RejectReason.NO_BACKLINK_FOUND or exc.status_code in GONE_STATUS
            if not gone:
                log_event(
                    logger,
                    "Recheck inconclusive, keeping mention",
                    level=logging.WARNING,
                    event="webmention_recheck_inconclusive",
                    source=record.source_url,
                    target=record.target_url,
                    reason=exc.reason.value,
                )
                return record
            updated = checking.advance(MentionStatus.REVOKED)
            log_event(
                logger,
                "Webmention revoked",
                event="webmention_revoked",
                source=record.source_url,
                target=record.target_url,
                reason=exc.reason.value,
            )
        else:
            updated = checking.advance(MentionStatus.VERIFIED)
        await self._save(updated)
        return updated

    async def recheck_all(self) -> list[WebmentionRecord]:
        """Recheck every Verified record. Returns the records after the sweep."""
        try:
            records = await asyncio.to_thread(self.store.records_with_status, MentionStatus.VERIFIED)
        except StoreError as exc:
            log_event(logger, "Recheck sweep skipped", level=logging.ERROR, event="store_read_failed", error=str(exc))
            return []
        results = await asyncio.gather(*(self.recheck(record) for record in records))
        log_event(
            logger,
            "Recheck sweep finished",
            event="webmention_recheck_sweep",
            checked=len(results),
            revoked=sum(1 for r in results if r.status == MentionStatus.REVOKED),
        )
        return list(results)

    def mentions_of(self, path: str) -> list[str]:
        """Source URLs of verified mentions of the article at path.

        Raises:
            StoreError: If the store cannot be read
        """
        records = self.store.verified_for(canonical_url(self.site.url, path))
        return [record.source_url for record in records]

    async def _check_backlink(self, source_url: str, target_url: str) -> None:
        if source_url.strip() == target_url:
            raise WebmentionVerifyError(RejectReason.MALFORMED, "source and target are the same")
        page = await self._fetch(source_url)
        if not page.ok:
            raise WebmentionVerifyError(page.reason, page.error or "", page.status_code)
        if not links_to(page.text, page.final_url or source_url, target_url):
            raise WebmentionVerifyError(RejectReason.NO_BACKLINK_FOUND, "no link to target", page.status_code)

    async def _fetch(self, url: str):
        if self._client is None or self._fetch_slots is None or self._bucket is None:
            raise RuntimeError("WebmentionService is not running")
        async with self._fetch_slots:
            await self._bucket.acquire()
            return await fetch_page(
                self._client,
                url,
                timeout=self.config.timeout_seconds,
                max_bytes=self.config.max_response_bytes,
                retries=self.config.retries,
            )

    async def _save(self, record: WebmentionRecord) -> bool:
        try:
            await asyncio.to_thread(self.store.upsert, record)
        except StoreError as exc:
            log_event(
                logger,
                "Failed to persist webmention state",
                level=logging.ERROR,
                event="store_write_failed",
                source=record.source_url,
                target=record.target_url,
                status=record.status.value,
                error=str(exc),
            )
            return False
        return True

    # Outbound

    def notify(self, articles: Iterable[Article]) -> int:
        """Queue a notification for every external link in articles.

        Never waits: when the queue is full the notification is dropped and
        logged, so publishing is never held up by slow remote sites.

        Returns:
            Number of notifications queued
        """
        if not self.config.outbound_enabled:
            return 0
        queued = 0
        for article in articles:
            if article.hidden:
                continue
            source_url = canonical_url(self.site.url, article.path)
            for target_url in self.external_links(article):
                job = _bind(self.send, source_url, target_url)
                if self.try_submit(job):
                    queued += 1
                else:
                    log_event(
                        logger,
                        "Notification queue full, dropping",
                        level=logging.WARNING,
                        event="webmention_send_dropped",
                        source=source_url,
                        target=target_url,
                    )
        return queued

    def external_links(self, article: Article) -> list[str]:
        source_url = canonical_url(self.site.url, article.path)
        return [
            url for url in extract_links(article.rendered_content, source_url)
            if not same_host(url, self.site.url)
        ]

    async def send_for(self, article: Article) -> list[OutboundAttempt]:
        """Notify every site article links to and wait for the outcomes."""
        source_url = canonical_url(self.site.url, article.path)
        return list(
            await asyncio.gather(*(self.send(source_url, target) for target in self.external_links(article)))
        )

    async def send(self, source_url: str, target_url: str) -> OutboundAttempt:
        """Discover target_url's endpoint and post a webmention to it."""
        page = await self._fetch(target_url)
        if not page.ok:
            attempt = OutboundAttempt(
                source_url=source_url,
                target_url=target_url,
                status=OutboundStatus.FAILED,
                error=page.error,
                attempts=page.attempts,
            )
        else:
            endpoint = discover_endpoint(page.final_url or target_url, page.link_header, page.text)
            if endpoint is None:
                attempt = OutboundAttempt(
                    source_url=source_url,
                    target_url=target_url,
                    status=OutboundStatus.NO_ENDPOINT,
                )
            else:
                async with self._fetch_slots:
                    await self._bucket.acquire()
                    result = await post_notification(
                        self._client,
                        endpoint,
                        source_url,
                        target_url,
                        timeout=self.config.timeout_seconds,
                        retries=self.config.retries,
                    )
                attempt = OutboundAttempt(
                    source_url=source_url,
                    target_url=target_url,
                    status=OutboundStatus.SENT if result.ok else OutboundStatus.FAILED,
                    endpoint=endpoint,
                    error=result.error,
                    attempts=result.attempts,
                )

        log_event(
            logger,
            "Webmention send finished",
            level=logging.INFO if attempt.status != OutboundStatus.FAILED else logging.WARNING,
            event="webmention_sent",
            source=source_url,
            target=target_url,
            status=attempt.status.value,
            endpoint=attempt.endpoint,
            error=attempt.error,
        )
        try:
            await asyncio.to_thread(self.store.record_outbound, attempt)
        except StoreError as exc:
            log_event(
                logger,
                "Failed to persist notification attempt",
                level=logging.ERROR,
                event="store_write_failed",
                source=source_url,
                target=target_url,
                error=str(exc),
            )
        return attempt


def _bind(fn: Callable[[str, str], Awaitable[object]], source_url: str, target_url: str) -> Job:
    return lambda: fn(source_url, target_url)
