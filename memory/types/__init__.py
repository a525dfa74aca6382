"""Typed research records."""

from memory.types.evidence import (
    EvidenceEntry,
    EvidenceResult,
    EvidenceWarning,
    TestDescription,
    TestType,
)
from memory.types.hypothesis import ConfidencePoint, HypothesisCard

__all__ = [
    "ConfidencePoint",
    "EvidenceEntry",
    "EvidenceResult",
    "EvidenceWarning",
    "HypothesisCard",
    "TestDescription",
    "TestType",
]
