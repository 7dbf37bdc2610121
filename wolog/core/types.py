"""
Core data types for the publishing core.

This module defines the fundamental data structures shared by every stage:
- Article: One published Markdown document with normalized metadata
- SortType / SearchQuery: Search request shape
- MentionStatus / RejectReason / WebmentionRecord: Inbound webmention state
- OutboundAttempt: Result of notifying another site about a link
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from ..errors import InvalidTransition, QueryValidationError


@dataclass(frozen=True)
class Article:
    """A single published article.

    Articles are replaced wholesale on every corpus reload, never mutated.

    Attributes:
        path: Relative identifier, the file path without its ".md" suffix
        title: The article headline
        blurb: Short summary used in listings and feeds
        tags: Deduplicated tags, sorted
        created: Creation date
        updated: Last update date, never before created
        rendered_content: HTML produced by the Markdown converter
        template: Name of the page template the renderer should use
        hidden: Resolvable by path but excluded from every listing
        exclude_from_rss: Excluded from feeds and the homepage
        extra: Remaining front-matter keys, passed through to the renderer
    """
    path: str
    title: str
    blurb: str
    tags: tuple[str, ...]
    created: date
    updated: date
    rendered_content: str
    template: str = "article"
    hidden: bool = False
    exclude_from_rss: bool = False
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if self.updated < self.created:
            raise ValueError(f"updated {self.updated} is before created {self.created}")
        object.__setattr__(self, "tags", tuple(sorted(set(self.tags))))

    def has_any_tag(self, tags) -> bool:
        return any(tag in self.tags for tag in tags)


class SortType(str, Enum):
    CREATE_ASC = "CreateAsc"
    CREATE_DESC = "CreateDesc"
    UPDATE_ASC = "UpdateAsc"
    UPDATE_DESC = "UpdateDesc"
    NAME_ASC = "NameAsc"
    NAME_DESC = "NameDesc"

    @classmethod
    def parse(cls, value: str | SortType | None) -> SortType:
        """Parse a sort type name, defaulting to newest-created first.

        Raises:
            QueryValidationError: If the name is not one of the six sort types
        """
        if value is None:
            return cls.CREATE_DESC
        if isinstance(value, SortType):
            return value
        try:
            return cls(value)
        except ValueError:
            raise QueryValidationError(f"Unknown sort type: {value!r}") from None

    @property
    def descending(self) -> bool:
        return self.value.endswith("Desc")

    @property
    def order_key(self) -> str:
        """Which precomputed snapshot order this sort reads: created, updated or name."""
        if self in (SortType.CREATE_ASC, SortType.CREATE_DESC):
            return "created"
        if self in (SortType.UPDATE_ASC, SortType.UPDATE_DESC):
            return "updated"
        return "name"


@dataclass(frozen=True)
class SearchQuery:
    """A multi-criteria article search.

    Date bounds are inclusive. tags uses union semantics: an article matches
    when it carries at least one of them.
    """
    path_prefix: str = ""
    title_filter: str | None = None
    created_since: date | None = None
    created_before: date | None = None
    updated_since: date | None = None
    updated_before: date | None = None
    tags: frozenset[str] = frozenset()
    sort_type: SortType = SortType.CREATE_DESC

    def with_sort(self, sort_type: SortType) -> SearchQuery:
        return replace(self, sort_type=sort_type)


class MentionStatus(str, Enum):
    RECEIVED = "received"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    REJECTED = "rejected"
    REVOKED = "revoked"


class RejectReason(str, Enum):
    UNREACHABLE = "Unreachable"
    TIMEOUT = "Timeout"
    NO_BACKLINK_FOUND = "NoBacklinkFound"
    MALFORMED = "Malformed"


# Edges of the webmention record state machine. Rejected and Revoked are
# terminal; only a fresh claim (WebmentionRecord.received) leaves them.
_TRANSITIONS: dict[MentionStatus, frozenset[MentionStatus]] = {
    MentionStatus.RECEIVED: frozenset({MentionStatus.VERIFYING}),
    MentionStatus.VERIFYING: frozenset(
        {MentionStatus.VERIFIED, MentionStatus.REJECTED, MentionStatus.REVOKED}
    ),
    MentionStatus.VERIFIED: frozenset({MentionStatus.VERIFYING}),
    MentionStatus.REJECTED: frozenset(),
    MentionStatus.REVOKED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WebmentionRecord:
    """State of one (target, source) webmention claim.

    Attributes:
        target_url: Canonical URL of the mentioned article
        source_url: URL of the page claiming to link to it
        status: Current state machine position
        reason: Why the claim was rejected; only set when status is REJECTED
        verified_at: Time of the last successful verification
        updated_at: Time of the last state change
        was_verified: True while a recheck of a verified record is in flight
    """
    target_url: str
    source_url: str
    status: MentionStatus
    reason: RejectReason | None = None
    verified_at: datetime | None = None
    updated_at: datetime | None = None
    was_verified: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.target_url, self.source_url)

    @classmethod
    def received(cls, target_url: str, source_url: str, now: datetime | None = None) -> WebmentionRecord:
        """A fresh claim. Restarts the state machine regardless of any prior record."""
        return cls(
            target_url=target_url,
            source_url=source_url,
            status=MentionStatus.RECEIVED,
            updated_at=now or _utcnow(),
        )

    def advance(
        self,
        status: MentionStatus,
        reason: RejectReason | None = None,
        now: datetime | None = None,
    ) -> WebmentionRecord:
        """Return the record moved to status.

        Revoked is only reachable from a recheck, i.e. a Verifying record that
        was previously Verified.

        Raises:
            InvalidTransition: If the state machine has no such edge
        """
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransition(f"{self.status.value} -> {status.value}")
        if status == MentionStatus.REVOKED and not self.was_verified:
            raise InvalidTransition("only a previously verified mention can be revoked")
        if status == MentionStatus.REJECTED and self.was_verified:
            raise InvalidTransition("a recheck ends in verified or revoked")
        if status == MentionStatus.REJECTED and reason is None:
            raise InvalidTransition("a rejection needs a reason")

        now = now or _utcnow()
        return replace(
            self,
            status=status,
            reason=reason if status == MentionStatus.REJECTED else None,
            verified_at=now if status == MentionStatus.VERIFIED else self.verified_at,
            updated_at=now,
            was_verified=(
                self.status == MentionStatus.VERIFIED
                if status == MentionStatus.VERIFYING
                else False
            ),
        )


class OutboundStatus(str, Enum):
    SENT = "sent"
    NO_ENDPOINT = "no_endpoint"
    FAILED = "failed"


@dataclass(frozen=True)
class OutboundAttempt:
    """Outcome of notifying a linked page that one of our articles mentions it."""
    source_url: str
    target_url: str
    status: OutboundStatus
    endpoint: str | None = None
    error: str | None = None
    attempts: int = 1
    attempted_at: datetime = field(default_factory=_utcnow)
