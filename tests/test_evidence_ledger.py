"""Evidence ledger tests."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from cognition.belief_updater import ConfidenceUpdate, ConfidenceUpdateConfig
from core.errors import DomainValidationError, LedgerChainError, StalePriorError, UnknownHypothesisError
from core.event_bus import EventBus
from memory.evidence_ledger import EvidenceLedger, evidence_warnings
from memory.hypothesis_store import HypothesisCardStore
from memory.types.evidence import EvidenceEntry


def scripted_updater(script: dict[tuple[int, str], int]):
    """Updater that returns fixed outcomes so chains can be written out by hand."""

    def updater(current: Any, power: Any, result: Any, config: ConfidenceUpdateConfig) -> ConfidenceUpdate:
        new = script[(int(current), result)]
        return ConfidenceUpdate(
            previous_confidence=int(current),
            new_confidence=new,
            delta=new - int(current),
            log_odds_delta=0.0,
            significance="major",
            explanation=f"scripted {current} -> {new}",
            discriminative_power=power,
            result=result,
        )

    return updater


def make_test(test_id: str = "T1", power: int = 3) -> dict[str, Any]:
    return {
        "id": test_id,
        "description": "Compare division counts across tissues",
        "type": "cross_context",
        "discriminative_power": power,
    }


def record(ledger: EvidenceLedger, version_id: str, result: str, **kwargs: Any) -> EvidenceEntry:
    return ledger.record_evidence(
        version_id,
        test=kwargs.pop("test", make_test()),
        prediction_if_true="Counts differ",
        prediction_if_false="Counts match",
        observation="Counts differed by 40%",
        result=result,
        **kwargs,
    )


def test_entries_chain_confidence_in_order() -> None:
    store = HypothesisCardStore()
    ledger = EvidenceLedger(
        store,
        updater=scripted_updater({(50, "supports"): 65, (65, "challenges"): 58, (58, "supports"): 71}),
    )
    card = store.propose("Cells count divisions", ["Telomere length tracks divisions"])

    entries = [
        record(ledger, card.id, "supports", source="Smith 2021"),
        record(ledger, card.id, "challenges", test=make_test("T2")),
        record(ledger, card.id, "supports", test=make_test("T3")),
    ]

    assert [(e.confidence_before, e.confidence_after) for e in entries] == [(50, 65), (65, 58), (58, 71)]
    assert [e.id for e in entries] == ["EV-S-001", "EV-S-002", "EV-S-003"]
    assert [e.sequence for e in entries] == [1, 2, 3]
    history = store.get(card.id).confidence_history
    assert [p.confidence for p in history] == [50, 65, 58, 71]
    assert [p.evidence_id for p in history] == [None, "EV-S-001", "EV-S-002", "EV-S-003"]
    assert history[1].reason == "supports (T1, EV-S-001)"
    assert entries[0].interpretation == "scripted 50 -> 65"
    assert ledger.verify_chain(card.id) == 3


def test_real_engine_drives_card_history() -> None:
    store = HypothesisCardStore()
    ledger = EvidenceLedger(store)
    card = store.propose("Claim", ["p"], session_id="RS1")

    entry = record(ledger, card.id, "challenges", interpretation="Division counts do not track age")

    assert entry.id == "EV-RS1-001"
    assert entry.confidence_after == 4
    assert entry.delta == -46
    assert entry.interpretation == "Division counts do not track age"
    assert store.get(card.id).current_confidence == 4


def test_stale_prior_writes_nothing() -> None:
    store = HypothesisCardStore()
    ledger = EvidenceLedger(store)
    card = store.propose("Claim", ["p"])

    with pytest.raises(StalePriorError) as excinfo:
        record(ledger, card.id, "supports", expected_prior=60)

    assert excinfo.value.actual == 50
    assert ledger.entries_for(card.id) == []
    assert store.get(card.id).current_confidence == 50
    assert record(ledger, card.id, "supports", expected_prior=50).id == "EV-S-001"


def test_invalid_input_writes_nothing() -> None:
    store = HypothesisCardStore()
    ledger = EvidenceLedger(store)
    card = store.propose("Claim", ["p"])

    with pytest.raises(ValueError):
        record(ledger, card.id, "proves")
    with pytest.raises(ValueError):
        record(ledger, card.id, "supports", test=make_test(power=9))
    with pytest.raises(UnknownHypothesisError):
        record(ledger, "HC-999-v1", "supports")
    with pytest.raises(DomainValidationError, match="prediction_if_true"):
        ledger.record_evidence(
            card.id,
            test=make_test(),
            prediction_if_true=None,
            prediction_if_false="Counts match",
            observation="Counts differed",
            result="supports",
        )
    with pytest.raises(DomainValidationError, match="TestDescription"):
        record(ledger, card.id, "supports", test={"id": "T1", "type": "observation"})

    assert ledger.all_entries() == []
    assert len(store.get(card.id).confidence_history) == 1
    assert record(ledger, card.id, "supports").id == "EV-S-001"


def test_concurrent_recordings_form_one_chain() -> None:
    store = HypothesisCardStore()
    ledger = EvidenceLedger(store)
    card = store.propose("Claim", ["p"])
    results = ["supports", "challenges"] * 10
    errors: list[Exception] = []

    def worker(result: str, index: int) -> None:
        try:
            record(ledger, card.id, result, test=make_test(f"T{index}", power=1))
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(r, i)) for i, r in enumerate(results)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    entries = ledger.entries_for(card.id)
    assert len(entries) == 20
    assert len({e.id for e in entries}) == 20
    assert [e.sequence for e in entries] == list(range(1, 21))
    for previous, current in zip(entries, entries[1:]):
        assert current.confidence_before == previous.confidence_after
    assert ledger.verify_chain(card.id) == 20


def test_replay_rejects_tampered_entries() -> None:
    store = HypothesisCardStore()
    ledger = EvidenceLedger(store)
    card = store.propose("Claim", ["p"])
    original = record(ledger, card.id, "supports")

    fresh_store = HypothesisCardStore()
    fresh_store.restore(card)
    fresh = EvidenceLedger(fresh_store)

    with pytest.raises(LedgerChainError):
        fresh.replay_entry(original.model_copy(update={"confidence_after": 99}))
    with pytest.raises(StalePriorError):
        fresh.replay_entry(original.model_copy(update={"confidence_before": 60}))

    assert fresh.replay_entry(original) == original
    assert fresh_store.get(card.id).current_confidence == original.confidence_after


def test_warnings_flag_weak_entries() -> None:
    store = HypothesisCardStore()
    ledger = EvidenceLedger(store)
    card = store.propose("Claim", ["p"], seed=99)

    entry = record(ledger, card.id, "supports", test=make_test(power=1))
    codes = {warning.code for warning in evidence_warnings(entry)}

    assert codes == {"LOW_DISCRIMINATIVE_POWER", "NO_SOURCE", "SMALL_CONFIDENCE_CHANGE"}

    solid = record(ledger, card.id, "challenges", source="Lab notebook 4")
    assert evidence_warnings(solid) == []


def test_recording_emits_event() -> None:
    store = HypothesisCardStore()
    bus = EventBus(keep_history=True)
    ledger = EvidenceLedger(store, event_bus=bus)
    card = store.propose("Claim", ["p"])

    record(ledger, card.id, "challenges")

    assert bus.events("evidence_recorded") == [
        {
            "evidence_id": "EV-S-001",
            "hypothesis_version": card.id,
            "result": "challenges",
            "confidence_before": 50,
            "confidence_after": 4,
            "significance": "major",
        }
    ]
