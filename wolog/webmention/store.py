"""
Durable webmention state on SQLAlchemy.

Records are keyed by (target_url, source_url) and written with a dialect
upsert, so a repeated claim replaces its row rather than adding one. Writes
to the same key are serialized; writes to different keys are not, except on
an in-memory SQLite database where all callers share one connection.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
import threading
import time
from datetime import datetime, timezone
from typing import Callable, TypeVar

from sqlalchemy import create_engine, event, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import StoreConfig, get_database_url
from ..core.types import (
    MentionStatus,
    OutboundAttempt,
    OutboundStatus,
    RejectReason,
    WebmentionRecord,
)
from ..errors import StoreError
from ..logging_utils import log_event
from .tables import OutboundMentionTable, ReceivedMentionTable, WologBase


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Per-key write serialization uses a fixed pool of locks.
LOCK_STRIPES = 64


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///") or ":memory:" in url or "mode=memory" in url


def create_store_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for url.

    SQLite connections may be used from worker threads; an in-memory database
    is pinned to a single connection so every session sees the same data.
    File databases run in WAL mode.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    memory = _is_memory_sqlite(url)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if memory:
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        if not memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    return engine


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands datetimes back without tzinfo
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _record_from_row(row: ReceivedMentionTable) -> WebmentionRecord:
    return WebmentionRecord(
        target_url=row.target_url,
        source_url=row.source_url,
        status=MentionStatus(row.status),
        reason=RejectReason(row.reason) if row.reason else None,
        verified_at=_as_utc(row.verified_at),
        updated_at=_as_utc(row.updated_at),
    )


def _attempt_from_row(row: OutboundMentionTable) -> OutboundAttempt:
    return OutboundAttempt(
        source_url=row.source_url,
        target_url=row.target_url,
        status=OutboundStatus(row.status),
        endpoint=row.endpoint,
        error=row.error,
        attempts=row.attempts,
        attempted_at=_as_utc(row.attempted_at),
    )


class WebmentionStore:
    """Repository for received mentions and outbound notification attempts.

    Args:
        engine: SQLAlchemy engine, see create_store_engine
        retries: Retry attempts for an operation failing on a transient
            database error
        backoff_seconds: Base delay; attempt n waits backoff_seconds * n
    """

    def __init__(
        self,
        engine: Engine,
        retries: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.engine = engine
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        self._shared_connection = isinstance(engine.pool, StaticPool)
        self._global_lock = threading.RLock()
        self._key_locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))
        WologBase.metadata.create_all(engine)

    @classmethod
    def from_config(cls, cfg: StoreConfig) -> WebmentionStore:
        url = get_database_url(cfg)
        return cls(create_store_engine(url), retries=cfg.retries, backoff_seconds=cfg.backoff_seconds)

    def close(self) -> None:
        self.engine.dispose()

    # Locking

    def _lock_for(self, key: tuple[str, str]):
        if self._shared_connection:
            return self._global_lock
        # Equal keys always share a stripe; unrelated keys occasionally do.
        return self._key_locks[hash(key) % LOCK_STRIPES]

    def _read_lock(self):
        if self._shared_connection:
            return self._global_lock
        return nullcontext()

    def _run(self, operation: str, fn: Callable[[], T]) -> T:
        last_exc: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                return fn()
            except (OperationalError, InterfaceError) as exc:
                last_exc = exc
                log_event(
                    logger,
                    "Store operation failed",
                    level=logging.WARNING,
                    event="store_retry",
                    operation=operation,
                    attempt=attempt + 1,
                    error=str(exc),
                )
                if attempt < self.retries:
                    self._sleep(self.backoff_seconds * (attempt + 1))
            except SQLAlchemyError as exc:
                raise StoreError(f"{operation} failed: {exc}") from exc
        raise StoreError(f"{operation} failed after {self.retries + 1} attempts: {last_exc}") from last_exc

    def _insert(self):
        if self.engine.dialect.name == "postgresql":
            return pg_insert
        if self.engine.dialect.name == "sqlite":
            return sqlite_insert
        raise StoreError(f"Unsupported database dialect: {self.engine.dialect.name}")

    # Received mentions

    def upsert(self, record: WebmentionRecord) -> None:
        """Insert or replace the row for record.key.

        Raises:
            StoreError: If the write keeps failing after all retries
        """
        values = {
            "target_url": record.target_url,
            "source_url": record.source_url,
            "status": record.status.value,
            "reason": record.reason.value if record.reason else None,
            "verified_at": record.verified_at,
            "updated_at": record.updated_at,
        }
        stmt = self._insert()(ReceivedMentionTable).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["target_url", "source_url"],
            set_={
                "status": stmt.excluded.status,
                "reason": stmt.excluded.reason,
                "verified_at": stmt.excluded.verified_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        def write() -> None:
            with self._sessions.begin() as session:
                session.execute(stmt)

        with self._lock_for(record.key):
            self._run("upsert", write)

    def get(self, target_url: str, source_url: str) -> WebmentionRecord | None:
        def read() -> WebmentionRecord | None:
            with self._sessions() as session:
                row = session.scalars(
                    select(ReceivedMentionTable).where(
                        ReceivedMentionTable.target_url == target_url,
                        ReceivedMentionTable.source_url == source_url,
                    )
                ).first()
                return _record_from_row(row) if row else None

        with self._read_lock():
            return self._run("get", read)

    def verified_for(self, target_url: str) -> list[WebmentionRecord]:
        """Verified mentions of target_url, oldest verification first."""
        def read() -> list[WebmentionRecord]:
            with self._sessions() as session:
                rows = session.scalars(
                    select(ReceivedMentionTable)
                    .where(
                        ReceivedMentionTable.target_url == target_url,
                        ReceivedMentionTable.status == MentionStatus.VERIFIED.value,
                    )
                    .order_by(ReceivedMentionTable.verified_at, ReceivedMentionTable.source_url)
                ).all()
                return [_record_from_row(row) for row in rows]

        with self._read_lock():
            return self._run("verified_for", read)

    def records_with_status(self, status: MentionStatus) -> list[WebmentionRecord]:
        def read() -> list[WebmentionRecord]:
            with self._sessions() as session:
                rows = session.scalars(
                    select(ReceivedMentionTable)
                    .where(ReceivedMentionTable.status == status.value)
                    .order_by(ReceivedMentionTable.target_url, ReceivedMentionTable.source_url)
                ).all()
                return [_record_from_row(row) for row in rows]

        with self._read_lock():
            return self._run("records_with_status", read)

    # Outbound notifications

    def record_outbound(self, attempt: OutboundAttempt) -> None:
        values = {
            "source_url": attempt.source_url,
            "target_url": attempt.target_url,
            "status": attempt.status.value,
            "endpoint": attempt.endpoint,
            "error": attempt.error,
            "attempts": attempt.attempts,
            "attempted_at": attempt.attempted_at,
        }
        stmt = self._insert()(OutboundMentionTable).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_url", "target_url"],
            set_={
                "status": stmt.excluded.status,
                "endpoint": stmt.excluded.endpoint,
                "error": stmt.excluded.error,
                "attempts": stmt.excluded.attempts,
                "attempted_at": stmt.excluded.attempted_at,
            },
        )

        def write() -> None:
            with self._sessions.begin() as session:
                session.execute(stmt)

        with self._lock_for((attempt.source_url, attempt.target_url)):
            self._run("record_outbound", write)

    def outbound_for(self, source_url: str) -> list[OutboundAttempt]:
        def read() -> list[OutboundAttempt]:
            with self._sessions() as session:
                rows = session.scalars(
                    select(OutboundMentionTable)
                    .where(OutboundMentionTable.source_url == source_url)
                    .order_by(OutboundMentionTable.target_url)
                ).all()
                return [_attempt_from_row(row) for row in rows]

        with self._read_lock():
            return self._run("outbound_for", read)
