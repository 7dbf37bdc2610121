"""Declarative tables for durable webmention state.

* ``received_mentions`` — one row per (target_url, source_url) claim.
* ``outbound_mentions`` — the latest notification attempt per (source_url, target_url).
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Integer, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class WologBase(DeclarativeBase):
    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime(timezone=True),
    }


class ReceivedMentionTable(WologBase):
    __tablename__ = "received_mentions"
    __table_args__ = (UniqueConstraint("target_url", "source_url", name="uq_received_mentions_key"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    target_url: Mapped[str] = mapped_column(nullable=False, index=True)
    source_url: Mapped[str] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(nullable=False, index=True)
    reason: Mapped[str | None] = mapped_column(nullable=True)
    verified_at: Mapped[datetime.datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime.datetime | None] = mapped_column(nullable=True)


class OutboundMentionTable(WologBase):
    __tablename__ = "outbound_mentions"
    __table_args__ = (UniqueConstraint("source_url", "target_url", name="uq_outbound_mentions_key"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    source_url: Mapped[str] = mapped_column(nullable=False, index=True)
    target_url: Mapped[str] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(nullable=False)
    endpoint: Mapped[str | None] = mapped_column(nullable=True)
    error: Mapped[str | None] = mapped_column(nullable=True)
    attempts: Mapped[int] = mapped_column(nullable=False, default=1)
    attempted_at: Mapped[datetime.datetime] = mapped_column(nullable=False)
