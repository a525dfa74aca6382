"""Fold ordered delta streams into canonical, versioned artifacts."""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from artifacts.delta import Delta, coerce_delta, validate_payload
from artifacts.sections import (
    ADVERSARIAL_CRITIQUE,
    ASSUMPTION_LEDGER,
    DISCRIMINATIVE_TESTS,
    HYPOTHESIS_SLATE,
    PREDICTIONS_TABLE,
    SECTION_PREFIXES,
    SECTIONS,
    TestScore,
    key_number,
)
from core.errors import (
    DeltaValidationError,
    DuplicateKeyError,
    HypothesisLedgerError,
    SectionLimitError,
    SequenceOrderError,
    UnknownTargetError,
)

logger = logging.getLogger("hl.compiler")


@dataclass(frozen=True)
class CompilerSettings:
    """Section limits and health thresholds."""

    section_limits: dict[str, int] = field(default_factory=lambda: {HYPOTHESIS_SLATE: 6})
    minimum_counts: dict[str, int] = field(
        default_factory=lambda: {
            HYPOTHESIS_SLATE: 3,
            PREDICTIONS_TABLE: 3,
            DISCRIMINATIVE_TESTS: 2,
            ASSUMPTION_LEDGER: 3,
            ADVERSARIAL_CRITIQUE: 2,
        }
    )
    transcript_sections: int | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> CompilerSettings:
        cfg = data or {}
        defaults = cls()
        limits = {**defaults.section_limits, **{k: int(v) for k, v in cfg.get("section_limits", {}).items()}}
        minimums = {**defaults.minimum_counts, **{k: int(v) for k, v in cfg.get("minimum_counts", {}).items()}}
        for name in (*limits, *minimums):
            if name not in SECTIONS:
                raise ValueError(f"Unknown artifact section in compiler config: {name}")
        transcript = cfg.get("transcript_sections")
        return cls(
            section_limits=limits,
            minimum_counts=minimums,
            transcript_sections=int(transcript) if transcript is not None else None,
        )


@dataclass
class Artifact:
    """Canonical state of one section, built only by applying deltas."""

    name: str
    version: int = 0
    entries: dict[str, dict[str, Any]] = field(default_factory=dict)
    removed: dict[str, dict[str, Any]] = field(default_factory=dict)
    last_sequence: int | None = None
    contributors: list[str] = field(default_factory=list)
    applied: list[str] = field(default_factory=list)

    def keys(self) -> list[str]:
        return list(self.entries)

    def get(self, key: str) -> dict[str, Any] | None:
        entry = self.entries.get(key)
        return copy.deepcopy(entry) if entry is not None else None

    def next_key(self) -> str:
        """Next unused ``<prefix><n>``; retired keys are never handed out again."""
        used = [key_number(self.name, key) or 0 for key in (*self.entries, *self.removed)]
        return f"{SECTION_PREFIXES[self.name]}{max(used, default=0) + 1}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "entries": [copy.deepcopy(entry) for entry in self.entries.values()],
            "removed": {key: dict(value) for key, value in self.removed.items()},
            "last_sequence": self.last_sequence,
            "contributors": list(self.contributors),
            "applied": list(self.applied),
        }

    def canonical_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False, separators=(",", ":"))

    def digest(self) -> str:
        return hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class RejectedDelta:
    delta_id: str | None
    section: str | None
    sequence: int | None
    error: str
    error_type: str


@dataclass
class CompileResult:
    """Artifacts per section plus anything lenient mode skipped."""

    artifacts: dict[str, Artifact]
    rejected: list[RejectedDelta] = field(default_factory=list)
    last_sequence: int | None = None

    def __getitem__(self, section: str) -> Artifact:
        return self.artifacts[section]

    def digest(self) -> str:
        combined = "".join(self.artifacts[name].digest() for name in sorted(self.artifacts))
        return hashlib.sha256(combined.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifacts": {name: art.to_dict() for name, art in self.artifacts.items()},
            "rejected": [vars(item) for item in self.rejected],
            "last_sequence": self.last_sequence,
            "digest": self.digest(),
        }


def empty_artifacts() -> dict[str, Artifact]:
    return {name: Artifact(name=name) for name in SECTIONS}


class DeltaCompiler:
    """Applies ADD / UPDATE / REMOVE deltas strictly in sequence order.

    Each delta is applied to a copy of its artifact, so a rejected delta
    never leaves a partial change behind.
    """

    def __init__(self, settings: CompilerSettings | None = None) -> None:
        self.settings = settings or CompilerSettings()

    def compile(self, deltas: Iterable[Delta | dict[str, Any]], strict: bool = True) -> CompileResult:
        """Build every artifact from an empty state."""
        return self._fold(empty_artifacts(), None, deltas, strict)

    def apply(
        self,
        previous: CompileResult,
        deltas: Iterable[Delta | dict[str, Any]],
        strict: bool = True,
    ) -> CompileResult:
        """Continue from an earlier result; ``previous`` is not modified."""
        artifacts = {name: copy.deepcopy(art) for name, art in previous.artifacts.items()}
        for name in SECTIONS:
            artifacts.setdefault(name, Artifact(name=name))
        result = self._fold(artifacts, previous.last_sequence, deltas, strict)
        result.rejected[:0] = previous.rejected
        return result

    def apply_delta(self, artifact: Artifact, delta: Delta | dict[str, Any]) -> Artifact:
        """Return a new artifact with ``delta`` applied; ``artifact`` is left as is."""
        item = coerce_delta(delta)
        if item.section != artifact.name:
            raise DeltaValidationError(
                f"Delta targets {item.section}, artifact is {artifact.name}",
                section=item.section,
                delta_id=item.id,
                sequence=item.sequence,
            )
        if artifact.last_sequence is not None and item.sequence <= artifact.last_sequence:
            raise SequenceOrderError(
                f"Delta {item.id} has sequence {item.sequence}, artifact is at {artifact.last_sequence}"
            )
        entry = validate_payload(item)
        updated = copy.deepcopy(artifact)
        key = entry.get("id")

        if item.operation == "ADD":
            key = key or updated.next_key()
            if key in updated.entries or key in updated.removed:
                raise DuplicateKeyError(item.section, key, item.id)
            limit = self.settings.section_limits.get(item.section)
            if limit is not None and len(updated.entries) >= limit:
                raise SectionLimitError(
                    f"{item.section} already holds {limit} live entries",
                    section=item.section,
                    delta_id=item.id,
                    sequence=item.sequence,
                )
            entry["id"] = key
            updated.entries[key] = entry
        elif item.operation == "UPDATE":
            if key not in updated.entries:
                raise UnknownTargetError(item.section, key, item.id)
            updated.entries[key] = entry
        elif key in updated.entries:
            del updated.entries[key]
            updated.removed[key] = {
                "reason": entry.get("reason"),
                "removed_by": item.contributor,
                "sequence": item.sequence,
            }
        else:
            logger.debug("REMOVE %s in %s is a no-op", key, item.section)

        updated.version += 1
        updated.last_sequence = item.sequence
        updated.applied.append(item.id)
        if item.contributor not in updated.contributors:
            updated.contributors = sorted([*updated.contributors, item.contributor])
        return updated

    def _fold(
        self,
        artifacts: dict[str, Artifact],
        start_sequence: int | None,
        deltas: Iterable[Delta | dict[str, Any]],
        strict: bool,
    ) -> CompileResult:
        result = CompileResult(artifacts=artifacts, last_sequence=start_sequence)
        ordered = self._order(deltas, strict, result)
        for item in ordered:
            if result.last_sequence is not None and item.sequence <= result.last_sequence:
                self._reject(
                    result,
                    item,
                    SequenceOrderError(
                        f"Delta {item.id} has sequence {item.sequence}, thread is at {result.last_sequence}"
                    ),
                    strict,
                )
                continue
            result.last_sequence = item.sequence
            if item.section not in result.artifacts:
                self._reject(
                    result,
                    item,
                    DeltaValidationError(
                        f"Unknown section {item.section!r}",
                        section=item.section,
                        delta_id=item.id,
                        sequence=item.sequence,
                    ),
                    strict,
                )
                continue
            try:
                result.artifacts[item.section] = self.apply_delta(result.artifacts[item.section], item)
            except HypothesisLedgerError as exc:
                self._reject(result, item, exc, strict)
                continue
            logger.debug("Applied %s %s to %s", item.id, item.operation, item.section)

        logger.info(
            "Compiled %d deltas into %d artifacts (%d rejected)",
            len(ordered),
            len(result.artifacts),
            len(result.rejected),
        )
        return result

    def _order(
        self, deltas: Iterable[Delta | dict[str, Any]], strict: bool, result: CompileResult
    ) -> list[Delta]:
        items: list[Delta] = []
        for raw in deltas:
            try:
                items.append(coerce_delta(raw))
            except DeltaValidationError as exc:
                if strict:
                    raise
                result.rejected.append(
                    RejectedDelta(exc.delta_id, exc.section, exc.sequence, str(exc), type(exc).__name__)
                )
        items.sort(key=lambda d: d.sequence)
        seen: set[int] = set()
        ordered: list[Delta] = []
        for item in items:
            if item.sequence in seen:
                self._reject(
                    result,
                    item,
                    SequenceOrderError(f"Duplicate sequence {item.sequence} on delta {item.id}"),
                    strict,
                )
                continue
            seen.add(item.sequence)
            ordered.append(item)
        return ordered

    @staticmethod
    def _reject(result: CompileResult, item: Delta, exc: HypothesisLedgerError, strict: bool) -> None:
        if strict:
            raise exc
        logger.warning("Rejected delta %s (%s): %s", item.id, item.section, exc)
        result.rejected.append(
            RejectedDelta(item.id, item.section, item.sequence, str(exc), type(exc).__name__)
        )


def ranked_tests(artifact: Artifact) -> list[dict[str, Any]]:
    """Discriminative tests ordered by total rubric score, highest first."""
    if artifact.name != DISCRIMINATIVE_TESTS:
        raise ValueError(f"ranked_tests expects {DISCRIMINATIVE_TESTS}, got {artifact.name}")

    def total(entry: dict[str, Any]) -> int:
        score = entry.get("score")
        return TestScore.model_validate(score).total if score else 0

    ordered = sorted(artifact.entries.values(), key=lambda e: (-total(e), key_number(artifact.name, e["id"]) or 0))
    return [{**copy.deepcopy(entry), "total_score": total(entry)} for entry in ordered]
