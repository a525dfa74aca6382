"""Confidence update engine.

Belief is carried in log-odds form so that successive updates compose
additively and never reach 0 or 100. A test of discriminative power ``k``
carries a likelihood ratio of ``likelihood_base ** k``; challenging results
move belief ``asymmetry`` times further than supporting ones.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from core.errors import InvalidConfidenceInput

SUPPORTS = "supports"
CHALLENGES = "challenges"
INCONCLUSIVE = "inconclusive"
VALID_RESULTS = (SUPPORTS, CHALLENGES, INCONCLUSIVE)

POWER_LABELS = {
    1: "weak",
    2: "moderate-low",
    3: "moderate",
    4: "high",
    5: "decisive",
}


@dataclass(frozen=True)
class ConfidenceUpdateConfig:
    """Locked constants for the update rule."""

    likelihood_base: float = 2.0
    asymmetry: float = 1.5
    min_confidence: int = 1
    max_confidence: int = 99
    major_threshold: int = 10
    notable_threshold: int = 5

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> ConfidenceUpdateConfig:
        """Build config from the ``confidence`` block of the runtime config."""
        cfg = data or {}
        config = cls(
            likelihood_base=float(cfg.get("likelihood_base", cls.likelihood_base)),
            asymmetry=float(cfg.get("asymmetry", cls.asymmetry)),
            min_confidence=int(cfg.get("min_confidence", cls.min_confidence)),
            max_confidence=int(cfg.get("max_confidence", cls.max_confidence)),
            major_threshold=int(cfg.get("major_threshold", cls.major_threshold)),
            notable_threshold=int(cfg.get("notable_threshold", cls.notable_threshold)),
        )
        if config.likelihood_base <= 1.0:
            raise ValueError("confidence.likelihood_base must be greater than 1.")
        if config.asymmetry <= 1.0:
            raise ValueError("confidence.asymmetry must be greater than 1.")
        if not 0 < config.min_confidence < config.max_confidence < 100:
            raise ValueError("confidence bounds must satisfy 0 < min < max < 100.")
        return config


DEFAULT_CONFIG = ConfidenceUpdateConfig()


@dataclass(frozen=True)
class ConfidenceUpdate:
    """Outcome of a single belief revision."""

    previous_confidence: int
    new_confidence: int
    delta: int
    log_odds_delta: float
    significance: str
    explanation: str
    discriminative_power: int
    result: str

    @property
    def significant(self) -> bool:
        return self.significance != "none"

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous_confidence": self.previous_confidence,
            "new_confidence": self.new_confidence,
            "delta": self.delta,
            "log_odds_delta": self.log_odds_delta,
            "significance": self.significance,
            "significant": self.significant,
            "explanation": self.explanation,
            "discriminative_power": self.discriminative_power,
            "result": self.result,
        }


def star_rating(power: int) -> str:
    """Render discriminative power as five stars."""
    return "★" * power + "☆" * (5 - power)


def validate_confidence(value: Any, config: ConfidenceUpdateConfig = DEFAULT_CONFIG) -> float:
    """Return ``value`` as a float or raise for non-finite or out-of-range input."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfidenceInput(f"Confidence must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidConfidenceInput(f"Confidence must be finite, got {value!r}")
    if not config.min_confidence <= value <= config.max_confidence:
        raise InvalidConfidenceInput(
            f"Confidence must be within [{config.min_confidence}, {config.max_confidence}], got {value!r}"
        )
    return float(value)


def validate_power(value: Any) -> int:
    """Return ``value`` if it is an integer star rating from 1 to 5."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfidenceInput(f"Discriminative power must be an integer 1-5, got {value!r}")
    if not 1 <= value <= 5:
        raise InvalidConfidenceInput(f"Discriminative power must be within [1, 5], got {value!r}")
    return value


def validate_result(value: Any) -> str:
    if value not in VALID_RESULTS:
        raise InvalidConfidenceInput(
            f"Result must be one of {', '.join(VALID_RESULTS)}, got {value!r}"
        )
    return str(value)


def to_log_odds(confidence: float) -> float:
    return math.log(confidence / (100.0 - confidence))


def from_log_odds(log_odds: float) -> float:
    return 100.0 / (1.0 + math.exp(-log_odds))


def log_odds_shift(
    power: int, result: str, config: ConfidenceUpdateConfig = DEFAULT_CONFIG
) -> float:
    """Signed log-odds movement for one observation, before clamping."""
    magnitude = power * math.log(config.likelihood_base)
    if result == SUPPORTS:
        return magnitude
    if result == CHALLENGES:
        return -magnitude * config.asymmetry
    return 0.0


def classify_significance(delta: float, config: ConfidenceUpdateConfig = DEFAULT_CONFIG) -> str:
    """Bucket a confidence movement into major, notable or none."""
    size = abs(delta)
    if size >= config.major_threshold:
        return "major"
    if size >= config.notable_threshold:
        return "notable"
    return "none"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_delta(delta: int) -> str:
    """Signed percentage-point change, e.g. ``+15%`` or ``-46%``."""
    if delta > 0:
        return f"+{delta}%"
    return f"{delta}%"


def explain_update(
    previous: int,
    new: int,
    power: int,
    result: str,
    significance: str,
) -> str:
    """Deterministic one-sentence explanation of a confidence change."""
    label = POWER_LABELS[power]
    stars = star_rating(power)
    delta = new - previous
    if result == INCONCLUSIVE:
        return (
            f"Inconclusive result from a {label} test ({stars}); "
            f"confidence holds at {previous}%."
        )
    verb = "supports" if result == SUPPORTS else "challenges"
    if delta > 0:
        movement = f"rises from {previous}% to {new}% ({format_delta(delta)})"
    elif delta < 0:
        movement = f"falls from {previous}% to {new}% ({format_delta(delta)})"
    else:
        movement = f"stays at {previous}% (already at its bound)"
    sentence = f"A {label} test ({stars}) {verb} the hypothesis; confidence {movement}."
    if significance == "major":
        sentence += " This is a major shift in belief."
    elif significance == "notable":
        sentence += " This is a notable shift in belief."
    return sentence


def update_confidence(
    current: Any,
    power: Any,
    result: Any,
    config: ConfidenceUpdateConfig = DEFAULT_CONFIG,
) -> ConfidenceUpdate:
    """Revise belief in a hypothesis after one observation.

    ``current`` is a percentage within the configured bounds, ``power`` the
    test's 1-5 discriminative power and ``result`` one of ``supports``,
    ``challenges`` or ``inconclusive``. Inconclusive results never move belief.
    """
    p = validate_confidence(current, config)
    k = validate_power(power)
    kind = validate_result(result)

    shift = log_odds_shift(k, kind, config)
    previous = _round_half_up(p)
    if kind == INCONCLUSIVE:
        new = previous
    else:
        projected = from_log_odds(to_log_odds(p) + shift)
        new = _round_half_up(projected)
        new = max(config.min_confidence, min(config.max_confidence, new))

    delta = new - previous
    significance = classify_significance(delta, config)
    return ConfidenceUpdate(
        previous_confidence=previous,
        new_confidence=new,
        delta=delta,
        log_odds_delta=shift,
        significance=significance,
        explanation=explain_update(previous, new, k, kind, significance),
        discriminative_power=k,
        result=kind,
    )
