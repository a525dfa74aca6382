"""Artifact sections, key prefixes and payload schemas."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

HYPOTHESIS_SLATE = "hypothesis_slate"
PREDICTIONS_TABLE = "predictions_table"
DISCRIMINATIVE_TESTS = "discriminative_tests"
ASSUMPTION_LEDGER = "assumption_ledger"
ANOMALY_REGISTER = "anomaly_register"
ADVERSARIAL_CRITIQUE = "adversarial_critique"

SECTIONS = (
    HYPOTHESIS_SLATE,
    PREDICTIONS_TABLE,
    DISCRIMINATIVE_TESTS,
    ASSUMPTION_LEDGER,
    ANOMALY_REGISTER,
    ADVERSARIAL_CRITIQUE,
)

SECTION_PREFIXES = {
    HYPOTHESIS_SLATE: "H",
    PREDICTIONS_TABLE: "P",
    DISCRIMINATIVE_TESTS: "T",
    ASSUMPTION_LEDGER: "A",
    ANOMALY_REGISTER: "X",
    ADVERSARIAL_CRITIQUE: "C",
}

OPERATIONS = ("ADD", "UPDATE", "REMOVE")


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str | None = None


class HypothesisPayload(_Payload):
    name: str = Field(min_length=1)
    claim: str = Field(min_length=1)
    mechanism: str = Field(min_length=1)
    anchors: list[str] = Field(default_factory=list)
    third_alternative: bool = False


class PredictionPayload(_Payload):
    condition: str = Field(min_length=1)
    predictions: dict[str, str] = Field(min_length=1)


class TestScore(BaseModel):
    """Evidence-per-week rubric, 0-3 per dimension."""

    __test__ = False
    model_config = ConfigDict(extra="forbid", frozen=True)

    likelihood_ratio: int = Field(default=0, ge=0, le=3)
    cost: int = Field(default=0, ge=0, le=3)
    speed: int = Field(default=0, ge=0, le=3)
    ambiguity: int = Field(default=0, ge=0, le=3)

    @property
    def total(self) -> int:
        return self.likelihood_ratio + self.cost + self.speed + self.ambiguity


class TestPayload(_Payload):
    __test__ = False

    name: str = Field(min_length=1)
    procedure: str = Field(min_length=1)
    discriminates: str = Field(min_length=1)
    expected_outcomes: dict[str, str] = Field(min_length=1)
    potency_check: str = Field(min_length=1)
    feasibility: str | None = None
    score: TestScore | None = None


class AssumptionPayload(_Payload):
    name: str = Field(min_length=1)
    statement: str = Field(min_length=1)
    load: str = Field(min_length=1)
    test: str = Field(min_length=1)
    status: Literal["unchecked", "verified", "falsified"] = "unchecked"
    scale_check: bool = False
    calculation: str | None = None


class AnomalyPayload(_Payload):
    name: str = Field(min_length=1)
    observation: str = Field(min_length=1)
    conflicts_with: list[str] = Field(default_factory=list)
    status: Literal["active", "resolved", "deferred"] = "active"
    resolution_plan: str | None = None


class CritiquePayload(_Payload):
    name: str = Field(min_length=1)
    attack: str = Field(min_length=1)
    evidence: str = Field(min_length=1)
    current_status: str = Field(min_length=1)
    real_third_alternative: bool = False


class RemovePayload(_Payload):
    id: str
    reason: str | None = None


SECTION_SCHEMAS: dict[str, type[_Payload]] = {
    HYPOTHESIS_SLATE: HypothesisPayload,
    PREDICTIONS_TABLE: PredictionPayload,
    DISCRIMINATIVE_TESTS: TestPayload,
    ASSUMPTION_LEDGER: AssumptionPayload,
    ANOMALY_REGISTER: AnomalyPayload,
    ADVERSARIAL_CRITIQUE: CritiquePayload,
}


def key_pattern(section: str) -> re.Pattern[str]:
    return re.compile(rf"^{SECTION_PREFIXES[section]}(\d+)$")


def key_number(section: str, key: str) -> int | None:
    """Numeric part of ``key`` if it carries this section's prefix."""
    match = key_pattern(section).match(key)
    return int(match.group(1)) if match else None
