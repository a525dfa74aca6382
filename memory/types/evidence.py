"""Evidence entry models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


TestType = Literal[
    "natural_experiment",
    "controlled_study",
    "cross_context",
    "mechanism_block",
    "dose_response",
    "temporal_analysis",
    "observation",
    "literature",
]
EvidenceResult = Literal["supports", "challenges", "inconclusive"]


class TestDescription(BaseModel):
    """The test behind an observation."""

    __test__ = False
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    description: str = Field(min_length=1)
    type: TestType
    discriminative_power: int = Field(ge=1, le=5, strict=True)


class EvidenceEntry(BaseModel):
    """One recorded observation and the confidence transition it caused."""

    model_config = ConfigDict(frozen=True)

    id: str
    session_id: str
    hypothesis_version: str
    sequence: int = Field(ge=1)
    test: TestDescription
    prediction_if_true: str
    prediction_if_false: str
    result: EvidenceResult
    observation: str
    source: str | None = None
    confidence_before: int = Field(ge=1, le=99)
    confidence_after: int = Field(ge=1, le=99)
    interpretation: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    recorded_by: str = "system"

    @property
    def delta(self) -> int:
        return self.confidence_after - self.confidence_before


class EvidenceWarning(BaseModel):
    """Non-fatal quality note about an evidence entry."""

    model_config = ConfigDict(frozen=True)

    code: str
    field: str
    message: str
