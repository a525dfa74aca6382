"""Versioned in-memory store of hypothesis cards."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from cognition.belief_updater import DEFAULT_CONFIG, ConfidenceUpdateConfig, validate_confidence
from core.errors import DomainValidationError, UnknownHypothesisError
from memory.types.hypothesis import ConfidencePoint, HypothesisCard

VERSION_ID_RE = re.compile(r"^(?P<base>HC-(?:.+-)?\d{3,})-v(?P<version>\d+)$")

logger = logging.getLogger("hl.hypotheses")


def utc_now() -> datetime:
    return datetime.now(UTC)


def make_base_id(sequence: int, session_id: str | None = None) -> str:
    """Return ``HC-001`` or ``HC-<session>-001``."""
    if session_id:
        return f"HC-{session_id}-{sequence:03d}"
    return f"HC-{sequence:03d}"


def make_version_id(base_id: str, version: int) -> str:
    return f"{base_id}-v{version}"


def split_version_id(version_id: str) -> tuple[str, int]:
    """Split ``HC-001-v2`` into ``("HC-001", 2)``."""
    match = VERSION_ID_RE.match(version_id)
    if not match:
        raise DomainValidationError(f"Malformed hypothesis version id: {version_id!r}")
    return match.group("base"), int(match.group("version"))


def _clean_predictions(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(v.strip() for v in values if v and v.strip())


class HypothesisCardStore:
    """Holds every version of every hypothesis card.

    Cards are immutable snapshots. Confidence history grows only through
    :class:`memory.evidence_ledger.EvidenceLedger`, which holds the
    per-card lock returned by :meth:`lock_for` while it writes.
    """

    def __init__(
        self,
        config: ConfidenceUpdateConfig = DEFAULT_CONFIG,
        default_seed: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.default_seed = default_seed
        self.clock = clock
        self._cards: dict[str, HypothesisCard] = {}
        self._versions: dict[str, list[str]] = {}
        self._sequences: dict[str | None, int] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def propose(
        self,
        statement: str,
        predictions_if_true: Iterable[str],
        predictions_if_false: Iterable[str] = (),
        mechanism: str = "",
        seed: int | None = None,
        session_id: str | None = None,
        created_by: str = "system",
        reason: str = "Initial proposal",
    ) -> HypothesisCard:
        """Create version 1 of a new hypothesis with a seeded history."""
        seed_value = self._seed(seed)
        with self._registry_lock:
            sequence = self._sequences.get(session_id, 0) + 1
            base_id = make_base_id(sequence, session_id)
            card = self._build(
                base_id=base_id,
                version=1,
                session_id=session_id,
                statement=statement,
                mechanism=mechanism,
                predictions_if_true=predictions_if_true,
                predictions_if_false=predictions_if_false,
                seed=seed_value,
                reason=reason,
                created_by=created_by,
            )
            self._sequences[session_id] = sequence
            self._insert(card)
        logger.info("Proposed %s at %s%%", card.id, seed_value)
        return card

    def evolve(
        self,
        version_id: str,
        reason: str,
        statement: str | None = None,
        mechanism: str | None = None,
        predictions_if_true: Iterable[str] | None = None,
        predictions_if_false: Iterable[str] | None = None,
        seed: int | None = None,
        created_by: str = "system",
    ) -> HypothesisCard:
        """Create the next version of a card; the parent is left untouched.

        The new history is seeded with the parent's current confidence
        unless ``seed`` is given.
        """
        if not reason or not reason.strip():
            raise DomainValidationError("An evolution reason is required.")
        parent = self.get(version_id)
        with self._registry_lock:
            latest = self._cards[self._versions[parent.base_id][-1]]
            seed_value = self._seed(seed if seed is not None else parent.current_confidence)
            card = self._build(
                base_id=parent.base_id,
                version=latest.version + 1,
                session_id=parent.session_id,
                statement=statement if statement is not None else parent.statement,
                mechanism=mechanism if mechanism is not None else parent.mechanism,
                predictions_if_true=(
                    predictions_if_true if predictions_if_true is not None else parent.predictions_if_true
                ),
                predictions_if_false=(
                    predictions_if_false
                    if predictions_if_false is not None
                    else parent.predictions_if_false
                ),
                seed=seed_value,
                reason=f"Evolved from {parent.id}: {reason.strip()}",
                created_by=created_by,
                parent_version=parent.id,
                evolution_reason=reason.strip(),
            )
            self._insert(card)
        logger.info("Evolved %s into %s", parent.id, card.id)
        return card

    def get(self, version_id: str) -> HypothesisCard:
        card = self._cards.get(version_id)
        if card is None:
            raise UnknownHypothesisError(f"Unknown hypothesis version: {version_id}")
        return card

    def latest(self, base_id: str) -> HypothesisCard:
        """Return the newest version of a hypothesis."""
        ids = self._versions.get(base_id)
        if not ids:
            raise UnknownHypothesisError(f"Unknown hypothesis: {base_id}")
        return self._cards[ids[-1]]

    def versions(self, base_id: str) -> list[HypothesisCard]:
        return [self._cards[vid] for vid in self._versions.get(base_id, [])]

    def list_cards(self) -> list[HypothesisCard]:
        return [self._cards[vid] for ids in self._versions.values() for vid in ids]

    def __contains__(self, version_id: object) -> bool:
        return version_id in self._cards

    def lock_for(self, version_id: str) -> threading.Lock:
        """Single-writer lock for one hypothesis version."""
        self.get(version_id)
        with self._registry_lock:
            return self._locks.setdefault(version_id, threading.Lock())

    def restore(self, card: HypothesisCard) -> None:
        """Re-admit a persisted card, keeping id sequences ahead of it."""
        if card.id in self._cards:
            raise DomainValidationError(f"Hypothesis {card.id} is already loaded.")
        base_id, version = split_version_id(card.id)
        if base_id != card.base_id or version != card.version:
            raise DomainValidationError(f"Card id {card.id} disagrees with its version fields.")
        sequence = int(base_id.rsplit("-", 1)[1])
        with self._registry_lock:
            self._insert(card)
            self._sequences[card.session_id] = max(self._sequences.get(card.session_id, 0), sequence)

    def _append_confidence(self, version_id: str, point: ConfidencePoint) -> HypothesisCard:
        # Callers must hold lock_for(version_id).
        card = self.get(version_id)
        updated = card.model_copy(update={"confidence_history": (*card.confidence_history, point)})
        self._cards[version_id] = updated
        return updated

    def _seed(self, seed: int | None) -> int:
        value = self.default_seed if seed is None else seed
        validate_confidence(value, self.config)
        if isinstance(value, float) and not value.is_integer():
            raise DomainValidationError(f"Seed confidence must be a whole number, got {value!r}")
        return int(value)

    def _build(
        self,
        base_id: str,
        version: int,
        session_id: str | None,
        statement: str,
        mechanism: str,
        predictions_if_true: Iterable[str],
        predictions_if_false: Iterable[str],
        seed: int,
        reason: str,
        created_by: str,
        parent_version: str | None = None,
        evolution_reason: str | None = None,
    ) -> HypothesisCard:
        statement = (statement or "").strip()
        if not statement:
            raise DomainValidationError("Hypothesis statement must not be empty.")
        if_true = _clean_predictions(predictions_if_true)
        if not if_true:
            raise DomainValidationError("At least one prediction-if-true is required.")
        now = self.clock()
        return HypothesisCard(
            id=make_version_id(base_id, version),
            base_id=base_id,
            version=version,
            session_id=session_id,
            statement=statement,
            mechanism=mechanism.strip(),
            predictions_if_true=if_true,
            predictions_if_false=_clean_predictions(predictions_if_false),
            confidence_history=(ConfidencePoint(confidence=seed, timestamp=now, reason=reason),),
            parent_version=parent_version,
            evolution_reason=evolution_reason,
            created_by=created_by,
            created_at=now,
        )

    def _insert(self, card: HypothesisCard) -> None:
        self._cards[card.id] = card
        ids = self._versions.setdefault(card.base_id, [])
        ids.append(card.id)
        ids.sort(key=lambda vid: self._cards[vid].version)
