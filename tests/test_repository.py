"""Persistence round-trip tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import select, update

from artifacts.delta_compiler import DeltaCompiler
from artifacts.thread import DeltaThread
from core.errors import ConsistencyError, LedgerChainError, SequenceOrderError
from memory.evidence_ledger import EvidenceLedger
from memory.hypothesis_store import HypothesisCardStore
from memory.research_repository import ResearchRepository
from memory.schemas import ConfidencePointRecord, EvidenceEntryRecord
from memory.stores.sql_store import SQLStore


def build_repository(tmp_path: Path) -> ResearchRepository:
    return ResearchRepository(sql_store=SQLStore(db_path=tmp_path / "research.db"))


def seed_ledger() -> tuple[HypothesisCardStore, EvidenceLedger]:
    store = HypothesisCardStore()
    ledger = EvidenceLedger(store)
    card = store.propose("Cells count divisions", ["Telomere length tracks divisions"], session_id="RS1")
    for index, (power, result) in enumerate([(3, "supports"), (2, "challenges"), (1, "inconclusive")], start=1):
        ledger.record_evidence(
            card.id,
            test={"id": f"T{index}", "description": "Graft", "type": "controlled_study", "discriminative_power": power},
            prediction_if_true="Timing follows donor",
            prediction_if_false="Timing follows host",
            observation=f"Observation {index}",
            result=result,
            source="Lab notebook",
        )
    store.evolve(card.id, reason="Narrowed to stem cells", statement="Stem cells count divisions")
    return store, ledger


def test_ledger_round_trip(tmp_path: Path) -> None:
    repository = build_repository(tmp_path)
    store, ledger = seed_ledger()
    repository.save_ledger(store, ledger)

    loaded_store, loaded_ledger = repository.load_ledger()

    assert [c.id for c in loaded_store.list_cards()] == ["HC-RS1-001-v1", "HC-RS1-001-v2"]
    assert loaded_store.get("HC-RS1-001-v1").confidence_history == store.get("HC-RS1-001-v1").confidence_history
    assert loaded_store.get("HC-RS1-001-v2").seed_confidence == store.get("HC-RS1-001-v1").current_confidence
    assert loaded_ledger.entries_for("HC-RS1-001-v1") == ledger.entries_for("HC-RS1-001-v1")
    assert loaded_ledger.verify_chain("HC-RS1-001-v1") == 3

    nxt = loaded_ledger.record_evidence(
        "HC-RS1-001-v2",
        test={"id": "T4", "description": "Clone", "type": "observation", "discriminative_power": 2},
        prediction_if_true="a",
        prediction_if_false="b",
        observation="Clones diverged",
        result="supports",
    )
    assert nxt.id == "EV-RS1-004"
    assert loaded_store.propose("Another", ["p"], session_id="RS1").id == "HC-RS1-002-v1"


def test_saving_twice_is_a_no_op(tmp_path: Path) -> None:
    repository = build_repository(tmp_path)
    store, ledger = seed_ledger()
    repository.save_ledger(store, ledger)
    repository.save_ledger(store, ledger)

    _, loaded = repository.load_ledger()

    assert len(loaded.all_entries()) == 3
    assert repository.save_evidence(ledger.all_entries()[0]) is False


def test_tampered_evidence_is_detected_on_load(tmp_path: Path) -> None:
    repository = build_repository(tmp_path)
    store, ledger = seed_ledger()
    repository.save_ledger(store, ledger)

    with repository.sql_store.session() as sess:
        sess.execute(
            update(EvidenceEntryRecord)
            .where(EvidenceEntryRecord.evidence_id == "EV-RS1-001")
            .values(confidence_after=97)
        )

    with pytest.raises(LedgerChainError):
        repository.load_ledger()


def test_tampered_history_is_detected_on_load(tmp_path: Path) -> None:
    repository = build_repository(tmp_path)
    store, ledger = seed_ledger()
    repository.save_ledger(store, ledger)

    with repository.sql_store.session() as sess:
        point = sess.scalar(
            select(ConfidencePointRecord).where(
                ConfidencePointRecord.version_id == "HC-RS1-001-v1", ConfidencePointRecord.position == 2
            )
        )
        point.confidence = 12

    with pytest.raises(LedgerChainError):
        repository.load_ledger()


def test_diverging_card_history_is_refused(tmp_path: Path) -> None:
    repository = build_repository(tmp_path)
    store, ledger = seed_ledger()
    repository.save_ledger(store, ledger)

    other_store = HypothesisCardStore()
    other_ledger = EvidenceLedger(other_store)
    card = other_store.propose("Cells count divisions", ["Telomere length tracks divisions"], session_id="RS1")
    other_ledger.record_evidence(
        card.id,
        test={"id": "T9", "description": "Other", "type": "literature", "discriminative_power": 5},
        prediction_if_true="a",
        prediction_if_false="b",
        observation="Contradicting paper",
        result="challenges",
    )

    with pytest.raises(ConsistencyError):
        repository.save_card(other_store.get(card.id))


def test_delta_threads_persist_in_sequence(tmp_path: Path) -> None:
    repository = build_repository(tmp_path)
    thread = DeltaThread("RS-1")
    thread.submit("hypothesis_generator", "hypothesis_slate", "ADD", {"name": "A", "claim": "c", "mechanism": "m"})
    thread.submit("adversarial_critic", "anomaly_register", "ADD", {"name": "Odd", "observation": "o"})

    assert repository.save_deltas("RS-1", thread.deltas) == 2
    assert repository.save_deltas("RS-1", thread.deltas) == 0

    restored = DeltaThread("RS-1")
    restored.restore(repository.load_deltas("RS-1"))
    compiler = DeltaCompiler()
    assert compiler.compile(restored.deltas).digest() == compiler.compile(thread.deltas).digest()
    assert repository.list_threads() == ["RS-1"]

    clash = DeltaThread("RS-1")
    clash.submit("test_designer", "hypothesis_slate", "ADD", {"name": "B", "claim": "c", "mechanism": "m"})
    with pytest.raises(SequenceOrderError):
        repository.save_deltas("RS-1", clash.deltas)
