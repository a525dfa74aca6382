"""SQLAlchemy schemas for persisted research records."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Return UTC datetime for default timestamps."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Declarative base."""


class HypothesisCardRecord(Base):
    """One hypothesis version."""

    __tablename__ = "hypothesis_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    version_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    base_id: Mapped[str] = mapped_column(String(128), index=True)
    version: Mapped[int] = mapped_column(Integer)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    statement: Mapped[str] = mapped_column(Text)
    mechanism: Mapped[str] = mapped_column(Text, default="")
    predictions_if_true: Mapped[list[str]] = mapped_column(JSON, default=list)
    predictions_if_false: Mapped[list[str]] = mapped_column(JSON, default=list)
    parent_version: Mapped[str | None] = mapped_column(String(128), nullable=True)
    evolution_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(128), default="system")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class ConfidencePointRecord(Base):
    """Append-only belief history row."""

    __tablename__ = "confidence_points"
    __table_args__ = (UniqueConstraint("version_id", "position"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    version_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("hypothesis_cards.version_id"), index=True
    )
    position: Mapped[int] = mapped_column(Integer)
    confidence: Mapped[int] = mapped_column(Integer)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    reason: Mapped[str] = mapped_column(Text, default="")
    evidence_id: Mapped[str | None] = mapped_column(String(128), nullable=True)


class EvidenceEntryRecord(Base):
    """Frozen evidence entry."""

    __tablename__ = "evidence_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    evidence_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    session_id: Mapped[str] = mapped_column(String(64), index=True)
    hypothesis_version: Mapped[str] = mapped_column(
        String(128), ForeignKey("hypothesis_cards.version_id"), index=True
    )
    sequence: Mapped[int] = mapped_column(Integer)
    test_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    prediction_if_true: Mapped[str] = mapped_column(Text)
    prediction_if_false: Mapped[str] = mapped_column(Text)
    result: Mapped[str] = mapped_column(String(16))
    observation: Mapped[str] = mapped_column(Text)
    source: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence_before: Mapped[int] = mapped_column(Integer)
    confidence_after: Mapped[int] = mapped_column(Integer)
    interpretation: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    recorded_by: Mapped[str] = mapped_column(String(128), default="system")


class DeltaRecord(Base):
    """Accepted delta in a session thread."""

    __tablename__ = "deltas"
    __table_args__ = (UniqueConstraint("thread_id", "sequence"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[str] = mapped_column(String(128), index=True)
    delta_id: Mapped[str] = mapped_column(String(256))
    sequence: Mapped[int] = mapped_column(Integer)
    role: Mapped[str] = mapped_column(String(64))
    author: Mapped[str | None] = mapped_column(String(128), nullable=True)
    section: Mapped[str] = mapped_column(String(64))
    operation: Mapped[str] = mapped_column(String(16))
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    rationale: Mapped[str] = mapped_column(Text, default="")
