"""Persistence boundary for hypothesis cards, evidence and delta threads."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select

from artifacts.delta import Delta
from cognition.belief_updater import DEFAULT_CONFIG, ConfidenceUpdateConfig
from core.errors import ConsistencyError, LedgerChainError, SequenceOrderError
from core.event_bus import EventBus
from memory.evidence_ledger import EvidenceLedger
from memory.hypothesis_store import HypothesisCardStore
from memory.schemas import ConfidencePointRecord, DeltaRecord, EvidenceEntryRecord, HypothesisCardRecord
from memory.stores.sql_store import SQLStore
from memory.types.evidence import EvidenceEntry, TestDescription
from memory.types.hypothesis import ConfidencePoint, HypothesisCard

logger = logging.getLogger("hl.repository")


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class ResearchRepository:
    """Saves and reloads research state; every write is append-only."""

    def __init__(self, sql_store: SQLStore) -> None:
        self.sql_store = sql_store
        self.sql_store.create_all()

    def save_card(self, card: HypothesisCard) -> None:
        """Insert the card if new and append any history points not yet stored."""
        with self.sql_store.session() as sess:
            row = sess.scalar(select(HypothesisCardRecord).where(HypothesisCardRecord.version_id == card.id))
            if row is None:
                sess.add(
                    HypothesisCardRecord(
                        version_id=card.id,
                        base_id=card.base_id,
                        version=card.version,
                        session_id=card.session_id,
                        statement=card.statement,
                        mechanism=card.mechanism,
                        predictions_if_true=list(card.predictions_if_true),
                        predictions_if_false=list(card.predictions_if_false),
                        parent_version=card.parent_version,
                        evolution_reason=card.evolution_reason,
                        created_by=card.created_by,
                        created_at=card.created_at,
                    )
                )
                sess.flush()
            stored = list(
                sess.scalars(
                    select(ConfidencePointRecord)
                    .where(ConfidencePointRecord.version_id == card.id)
                    .order_by(ConfidencePointRecord.position)
                )
            )
            if len(stored) > len(card.confidence_history):
                raise ConsistencyError(f"Stored history of {card.id} is longer than the live card.")
            for position, record in enumerate(stored):
                if record.confidence != card.confidence_history[position].confidence:
                    raise ConsistencyError(f"Stored history of {card.id} diverges at position {position}.")
            for position in range(len(stored), len(card.confidence_history)):
                point = card.confidence_history[position]
                sess.add(
                    ConfidencePointRecord(
                        version_id=card.id,
                        position=position,
                        confidence=point.confidence,
                        timestamp=point.timestamp,
                        reason=point.reason,
                        evidence_id=point.evidence_id,
                    )
                )

    def save_evidence(self, entry: EvidenceEntry) -> bool:
        """Insert an entry; returns ``False`` when it was already stored."""
        with self.sql_store.session() as sess:
            existing = sess.scalar(
                select(EvidenceEntryRecord).where(EvidenceEntryRecord.evidence_id == entry.id)
            )
            if existing is not None:
                if existing.confidence_after != entry.confidence_after:
                    raise ConsistencyError(f"Evidence {entry.id} is stored with a different outcome.")
                return False
            sess.add(
                EvidenceEntryRecord(
                    evidence_id=entry.id,
                    session_id=entry.session_id,
                    hypothesis_version=entry.hypothesis_version,
                    sequence=entry.sequence,
                    test_json=entry.test.model_dump(mode="json"),
                    prediction_if_true=entry.prediction_if_true,
                    prediction_if_false=entry.prediction_if_false,
                    result=entry.result,
                    observation=entry.observation,
                    source=entry.source,
                    confidence_before=entry.confidence_before,
                    confidence_after=entry.confidence_after,
                    interpretation=entry.interpretation,
                    created_at=entry.created_at,
                    recorded_by=entry.recorded_by,
                )
            )
        return True

    def save_ledger(self, store: HypothesisCardStore, ledger: EvidenceLedger) -> None:
        """Persist every card version and evidence entry."""
        for card in store.list_cards():
            self.save_card(card)
        for entry in ledger.all_entries():
            self.save_evidence(entry)

    def load_ledger(
        self,
        config: ConfidenceUpdateConfig = DEFAULT_CONFIG,
        event_bus: EventBus | None = None,
    ) -> tuple[HypothesisCardStore, EvidenceLedger]:
        """Rebuild a store and ledger, re-verifying every stored transition."""
        store = HypothesisCardStore(config=config)
        ledger = EvidenceLedger(store=store, config=config, event_bus=event_bus)
        with self.sql_store.session() as sess:
            cards = list(sess.scalars(select(HypothesisCardRecord).order_by(HypothesisCardRecord.id)))
            points: dict[str, list[ConfidencePointRecord]] = {}
            for record in sess.scalars(
                select(ConfidencePointRecord).order_by(
                    ConfidencePointRecord.version_id, ConfidencePointRecord.position
                )
            ):
                points.setdefault(record.version_id, []).append(record)
            entries = list(
                sess.scalars(
                    select(EvidenceEntryRecord).order_by(
                        EvidenceEntryRecord.hypothesis_version, EvidenceEntryRecord.sequence
                    )
                )
            )

        for row in cards:
            history = points.get(row.version_id, [])
            if not history:
                raise LedgerChainError(f"Card {row.version_id} has no stored seed confidence.")
            seed = history[0]
            store.restore(
                HypothesisCard(
                    id=row.version_id,
                    base_id=row.base_id,
                    version=row.version,
                    session_id=row.session_id,
                    statement=row.statement,
                    mechanism=row.mechanism,
                    predictions_if_true=tuple(row.predictions_if_true),
                    predictions_if_false=tuple(row.predictions_if_false),
                    confidence_history=(
                        ConfidencePoint(
                            confidence=seed.confidence,
                            timestamp=_aware(seed.timestamp),
                            reason=seed.reason,
                            evidence_id=seed.evidence_id,
                        ),
                    ),
                    parent_version=row.parent_version,
                    evolution_reason=row.evolution_reason,
                    created_by=row.created_by,
                    created_at=_aware(row.created_at),
                )
            )

        for row in entries:
            ledger.replay_entry(
                EvidenceEntry(
                    id=row.evidence_id,
                    session_id=row.session_id,
                    hypothesis_version=row.hypothesis_version,
                    sequence=row.sequence,
                    test=TestDescription.model_validate(row.test_json),
                    prediction_if_true=row.prediction_if_true,
                    prediction_if_false=row.prediction_if_false,
                    result=row.result,
                    observation=row.observation,
                    source=row.source,
                    confidence_before=row.confidence_before,
                    confidence_after=row.confidence_after,
                    interpretation=row.interpretation,
                    created_at=_aware(row.created_at),
                    recorded_by=row.recorded_by,
                )
            )

        for version_id, history in points.items():
            rebuilt = [p.confidence for p in store.get(version_id).confidence_history]
            if rebuilt != [p.confidence for p in history]:
                raise LedgerChainError(f"Stored history of {version_id} does not match its evidence.")
        logger.info("Loaded %d cards and %d evidence entries", len(cards), len(entries))
        return store, ledger

    def save_deltas(self, thread_id: str, deltas: list[Delta]) -> int:
        """Append deltas not yet stored; returns how many were written."""
        written = 0
        with self.sql_store.session() as sess:
            stored = {
                row.sequence: row.delta_id
                for row in sess.scalars(select(DeltaRecord).where(DeltaRecord.thread_id == thread_id))
            }
            for delta in deltas:
                if delta.sequence in stored:
                    if stored[delta.sequence] != delta.id:
                        raise SequenceOrderError(
                            f"Sequence {delta.sequence} of {thread_id} is already taken by {stored[delta.sequence]}"
                        )
                    continue
                sess.add(
                    DeltaRecord(
                        thread_id=thread_id,
                        delta_id=delta.id,
                        sequence=delta.sequence,
                        role=delta.role,
                        author=delta.author,
                        section=delta.section,
                        operation=delta.operation,
                        payload=dict(delta.payload),
                        rationale=delta.rationale,
                    )
                )
                written += 1
        return written

    def load_deltas(self, thread_id: str) -> list[Delta]:
        with self.sql_store.session() as sess:
            rows = list(
                sess.scalars(
                    select(DeltaRecord).where(DeltaRecord.thread_id == thread_id).order_by(DeltaRecord.sequence)
                )
            )
        return [
            Delta(
                id=row.delta_id,
                role=row.role,
                author=row.author,
                section=row.section,
                operation=row.operation,
                payload=dict(row.payload),
                sequence=row.sequence,
                rationale=row.rationale,
            )
            for row in rows
        ]

    def list_threads(self) -> list[str]:
        with self.sql_store.session() as sess:
            return sorted(set(sess.scalars(select(DeltaRecord.thread_id))))
