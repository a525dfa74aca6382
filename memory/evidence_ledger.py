"""Append-only evidence ledger; the only writer of confidence transitions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from cognition.belief_updater import (
    DEFAULT_CONFIG,
    ConfidenceUpdate,
    ConfidenceUpdateConfig,
    update_confidence,
)
from core.errors import DomainValidationError, LedgerChainError, StalePriorError
from core.event_bus import EventBus
from memory.hypothesis_store import HypothesisCardStore, utc_now
from memory.types.evidence import EvidenceEntry, EvidenceWarning, TestDescription
from memory.types.hypothesis import ConfidencePoint

ModelT = TypeVar("ModelT", bound=BaseModel)
Updater = Callable[[Any, Any, Any, ConfidenceUpdateConfig], ConfidenceUpdate]

logger = logging.getLogger("hl.ledger")


def make_evidence_id(session_id: str, sequence: int) -> str:
    """Return ``EV-<session>-001`` style ids."""
    if sequence < 1:
        raise DomainValidationError(f"Evidence sequence must be positive, got {sequence}")
    return f"EV-{session_id}-{sequence:03d}"


def _validated(model: type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first.get("loc", ())) or model.__name__
        raise DomainValidationError(f"Invalid {model.__name__} at {where}: {first['msg']}") from exc


def evidence_warnings(entry: EvidenceEntry) -> list[EvidenceWarning]:
    """Quality notes worth surfacing to whoever recorded the entry."""
    warnings: list[EvidenceWarning] = []
    if entry.test.discriminative_power < 3:
        warnings.append(
            EvidenceWarning(
                code="LOW_DISCRIMINATIVE_POWER",
                field="test.discriminative_power",
                message="Low discriminative power tests provide weak evidence.",
            )
        )
    if not entry.source:
        warnings.append(
            EvidenceWarning(
                code="NO_SOURCE",
                field="source",
                message="Consider adding a source citation for traceability.",
            )
        )
    if entry.result != "inconclusive" and abs(entry.delta) < 1:
        warnings.append(
            EvidenceWarning(
                code="SMALL_CONFIDENCE_CHANGE",
                field="confidence_after",
                message="Confidence barely moved; the hypothesis may be pinned at a bound.",
            )
        )
    return warnings


class EvidenceLedger:
    """Records observations against hypothesis versions.

    Reading the prior, running the update engine and appending both the
    entry and the card's history point happen under the card's lock, so
    concurrent recordings against one hypothesis are serialized.
    """

    def __init__(
        self,
        store: HypothesisCardStore,
        config: ConfidenceUpdateConfig = DEFAULT_CONFIG,
        updater: Updater = update_confidence,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = utc_now,
        default_session: str = "S",
    ) -> None:
        self.store = store
        self.config = config
        self.updater = updater
        self.event_bus = event_bus
        self.clock = clock
        self.default_session = default_session
        self._entries: dict[str, list[EvidenceEntry]] = {}
        self._by_id: dict[str, EvidenceEntry] = {}
        self._sequences: dict[str, int] = {}
        self._ids_lock = threading.Lock()

    def record_evidence(
        self,
        hypothesis_version: str,
        test: TestDescription | dict[str, Any],
        prediction_if_true: str,
        prediction_if_false: str,
        observation: str,
        result: str,
        interpretation: str | None = None,
        source: str | None = None,
        session_id: str | None = None,
        recorded_by: str = "system",
        expected_prior: int | None = None,
    ) -> EvidenceEntry:
        """Append one evidence entry and the matching confidence transition.

        ``expected_prior`` lets a caller assert the confidence it reasoned
        from; a mismatch aborts with :class:`StalePriorError`.
        """
        test_desc = test if isinstance(test, TestDescription) else _validated(TestDescription, test)
        if not isinstance(observation, str) or not observation.strip():
            raise DomainValidationError("Observation text must not be empty.")

        with self.store.lock_for(hypothesis_version):
            card = self.store.get(hypothesis_version)
            prior = card.current_confidence
            if expected_prior is not None and expected_prior != prior:
                raise StalePriorError(hypothesis_version, expected_prior, prior)

            outcome = self.updater(prior, test_desc.discriminative_power, result, self.config)
            session = session_id or card.session_id or self.default_session
            # The id is reserved only once the entry has validated.
            draft = _validated(
                EvidenceEntry,
                {
                    "id": make_evidence_id(session, 1),
                    "session_id": session,
                    "hypothesis_version": hypothesis_version,
                    "sequence": len(self._entries.get(hypothesis_version, [])) + 1,
                    "test": test_desc,
                    "prediction_if_true": prediction_if_true,
                    "prediction_if_false": prediction_if_false,
                    "result": result,
                    "observation": observation.strip(),
                    "source": source,
                    "confidence_before": prior,
                    "confidence_after": outcome.new_confidence,
                    "interpretation": interpretation or outcome.explanation,
                    "created_at": self.clock(),
                    "recorded_by": recorded_by,
                },
            )
            entry = draft.model_copy(
                update={"id": make_evidence_id(session, self._reserve_sequence(session))}
            )
            self._commit(entry)

        logger.info(
            "Recorded %s on %s: %s %s%% -> %s%%",
            entry.id,
            hypothesis_version,
            entry.result,
            entry.confidence_before,
            entry.confidence_after,
        )
        self._emit("evidence_recorded", entry, outcome.significance)
        return entry

    def replay_entry(self, entry: EvidenceEntry) -> EvidenceEntry:
        """Re-admit a persisted entry after checking it against the live state."""
        with self.store.lock_for(entry.hypothesis_version):
            card = self.store.get(entry.hypothesis_version)
            if entry.confidence_before != card.current_confidence:
                raise StalePriorError(
                    entry.hypothesis_version, entry.confidence_before, card.current_confidence
                )
            expected_sequence = len(self._entries.get(entry.hypothesis_version, [])) + 1
            if entry.sequence != expected_sequence:
                raise LedgerChainError(
                    f"{entry.id} has sequence {entry.sequence}, expected {expected_sequence}"
                )
            if entry.id in self._by_id:
                raise LedgerChainError(f"Evidence {entry.id} is already recorded.")
            self._check_engine(entry)
            self._commit(entry)
        return entry

    def entries_for(self, hypothesis_version: str) -> list[EvidenceEntry]:
        return list(self._entries.get(hypothesis_version, []))

    def all_entries(self) -> list[EvidenceEntry]:
        return sorted(self._by_id.values(), key=lambda e: (e.created_at, e.id))

    def verify_chain(self, hypothesis_version: str) -> int:
        """Re-check ordering and engine agreement; return the entry count."""
        card = self.store.get(hypothesis_version)
        entries = self._entries.get(hypothesis_version, [])
        expected_before = card.seed_confidence
        for entry in entries:
            if entry.confidence_before != expected_before:
                raise LedgerChainError(
                    f"{entry.id} starts at {entry.confidence_before}%, previous entry ended at {expected_before}%"
                )
            self._check_engine(entry)
            expected_before = entry.confidence_after

        history = [point.confidence for point in card.confidence_history]
        chain = [card.seed_confidence, *(entry.confidence_after for entry in entries)]
        if history != chain:
            raise LedgerChainError(f"History of {hypothesis_version} diverges from its evidence.")
        return len(entries)

    def _check_engine(self, entry: EvidenceEntry) -> None:
        outcome = self.updater(
            entry.confidence_before, entry.test.discriminative_power, entry.result, self.config
        )
        if outcome.new_confidence != entry.confidence_after:
            raise LedgerChainError(
                f"{entry.id} records {entry.confidence_after}%, engine gives {outcome.new_confidence}%"
            )

    def _reserve_sequence(self, session_id: str) -> int:
        with self._ids_lock:
            sequence = self._sequences.get(session_id, 0) + 1
            self._sequences[session_id] = sequence
            return sequence

    def _commit(self, entry: EvidenceEntry) -> None:
        # Caller holds the card lock.
        with self._ids_lock:
            if entry.id in self._by_id:
                raise LedgerChainError(f"Evidence id {entry.id} already used.")
            number = int(entry.id.rsplit("-", 1)[1])
            self._sequences[entry.session_id] = max(self._sequences.get(entry.session_id, 0), number)
            self._entries.setdefault(entry.hypothesis_version, []).append(entry)
            self._by_id[entry.id] = entry
        self.store._append_confidence(
            entry.hypothesis_version,
            ConfidencePoint(
                confidence=entry.confidence_after,
                timestamp=entry.created_at,
                reason=f"{entry.result} ({entry.test.id}, {entry.id})",
                evidence_id=entry.id,
            ),
        )

    def _emit(self, event_name: str, entry: EvidenceEntry, significance: str) -> None:
        if self.event_bus is None:
            return
        self.event_bus.emit(
            event_name,
            {
                "evidence_id": entry.id,
                "hypothesis_version": entry.hypothesis_version,
                "result": entry.result,
                "confidence_before": entry.confidence_before,
                "confidence_after": entry.confidence_after,
                "significance": significance,
            },
        )
