"""Hypothesis card models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class ConfidencePoint(BaseModel):
    """One step of a card's belief history."""

    model_config = ConfigDict(frozen=True)

    confidence: int = Field(ge=1, le=99)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    reason: str
    evidence_id: str | None = None


class HypothesisCard(BaseModel):
    """Immutable snapshot of one hypothesis version.

    The store swaps in a new snapshot whenever belief changes; a changed
    statement or prediction set is a new version with its own id.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    base_id: str
    version: int = Field(ge=1)
    session_id: str | None = None
    statement: str = Field(min_length=1)
    mechanism: str = ""
    predictions_if_true: tuple[str, ...] = Field(min_length=1)
    predictions_if_false: tuple[str, ...] = ()
    confidence_history: tuple[ConfidencePoint, ...] = Field(min_length=1)
    parent_version: str | None = None
    evolution_reason: str | None = None
    created_by: str = "system"
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def current_confidence(self) -> int:
        return self.confidence_history[-1].confidence

    @property
    def seed_confidence(self) -> int:
        return self.confidence_history[0].confidence
