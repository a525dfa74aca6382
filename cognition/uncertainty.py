"""Uncertainty reasoning helpers built on the confidence update engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from cognition.belief_updater import (
    CHALLENGES,
    DEFAULT_CONFIG,
    INCONCLUSIVE,
    SUPPORTS,
    ConfidenceUpdate,
    ConfidenceUpdateConfig,
    update_confidence,
    validate_confidence,
)

CONFIDENCE_BANDS = (
    (80, "High", "Strong confidence - hypothesis has survived serious testing"),
    (60, "Moderate-High", "Good confidence - hypothesis is holding up well"),
    (40, "Moderate", "Uncertain - more discriminative testing needed"),
    (20, "Low", "Weak confidence - hypothesis is under pressure"),
    (0, "Very Low", "Hypothesis is nearly falsified - consider alternatives"),
)


@dataclass
class BatchUpdate:
    """Sequential fold of several observations over one starting belief."""

    starting_confidence: int
    final_confidence: int
    updates: list[ConfidenceUpdate] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def total_delta(self) -> int:
        return self.final_confidence - self.starting_confidence


@dataclass(frozen=True)
class WhatIfAnalysis:
    """Projected beliefs for every possible outcome of a planned test."""

    current_confidence: int
    if_supports: ConfidenceUpdate
    if_challenges: ConfidenceUpdate
    if_inconclusive: ConfidenceUpdate
    max_impact: int
    information_value: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_confidence": self.current_confidence,
            "if_supports": self.if_supports.to_dict(),
            "if_challenges": self.if_challenges.to_dict(),
            "if_inconclusive": self.if_inconclusive.to_dict(),
            "max_impact": self.max_impact,
            "information_value": self.information_value,
        }


def uncertainty_from_confidence(confidence: float) -> float:
    """Map a percentage confidence to residual doubt in [0, 1]."""
    return max(0.0, min(1.0, 1.0 - confidence / 100.0))


def assess_confidence(confidence: float) -> dict[str, str]:
    """Label a confidence level for display."""
    for floor, label, description in CONFIDENCE_BANDS:
        if confidence >= floor:
            return {"label": label, "description": description}
    return {"label": CONFIDENCE_BANDS[-1][1], "description": CONFIDENCE_BANDS[-1][2]}


def compute_batch_update(
    starting_confidence: int,
    observations: list[tuple[int, str]],
    config: ConfidenceUpdateConfig = DEFAULT_CONFIG,
) -> BatchUpdate:
    """Apply ``(power, result)`` observations in order, each from the previous belief."""
    validate_confidence(starting_confidence, config)
    summary = {SUPPORTS: 0, CHALLENGES: 0, INCONCLUSIVE: 0, "significant_changes": 0}
    current = starting_confidence
    updates: list[ConfidenceUpdate] = []
    for power, result in observations:
        update = update_confidence(current, power, result, config)
        updates.append(update)
        summary[update.result] += 1
        if update.significant:
            summary["significant_changes"] += 1
        current = update.new_confidence
    return BatchUpdate(
        starting_confidence=starting_confidence,
        final_confidence=current,
        updates=updates,
        summary=summary,
    )


def analyze_what_if(
    current: int,
    power: int,
    config: ConfidenceUpdateConfig = DEFAULT_CONFIG,
) -> WhatIfAnalysis:
    """Project all three outcomes of a test before running it.

    ``information_value`` is the spread between the supporting and the
    challenging outcome; tests with a wider spread are worth more.
    """
    if_supports = update_confidence(current, power, SUPPORTS, config)
    if_challenges = update_confidence(current, power, CHALLENGES, config)
    if_inconclusive = update_confidence(current, power, INCONCLUSIVE, config)
    return WhatIfAnalysis(
        current_confidence=if_supports.previous_confidence,
        if_supports=if_supports,
        if_challenges=if_challenges,
        if_inconclusive=if_inconclusive,
        max_impact=max(abs(if_supports.delta), abs(if_challenges.delta)),
        information_value=abs(if_supports.new_confidence - if_challenges.new_confidence),
    )
