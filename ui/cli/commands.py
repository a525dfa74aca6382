"""Typer command handlers."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import typer

from artifacts.health import artifact_warnings
from cognition.belief_updater import update_confidence
from cognition.uncertainty import analyze_what_if, assess_confidence
from core.errors import HypothesisLedgerError
from core.orchestrator import Orchestrator, RuntimeBundle
from memory.evidence_ledger import evidence_warnings
from protocol.kickoff import SessionConfig
from protocol.roles import Roster

PACKAGE_ROOT = Path(__file__).resolve().parents[2]


def _runtime() -> RuntimeBundle:
    env_root = os.environ.get("HL_ROOT")
    root = Path(env_root) if env_root else Path.cwd()
    config_root = root if (root / "config").is_dir() else PACKAGE_ROOT
    return Orchestrator(root=root).build(config_root=config_root)


def _echo(payload: object) -> None:
    typer.echo(json.dumps(_json_safe(payload), indent=2, ensure_ascii=False))


def _fail(exc: Exception) -> None:
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=1)


def _pairs(values: list[str] | None, flag: str) -> list[tuple[str, str]]:
    pairs = []
    for value in values or []:
        name, sep, target = value.partition("=")
        if not sep or not name.strip() or not target.strip():
            raise typer.BadParameter(f"{flag} expects NAME=VALUE, got {value!r}")
        pairs.append((name.strip(), target.strip()))
    return pairs


def config_show() -> None:
    """Show effective runtime config."""
    bundle = _runtime()
    _echo(bundle.config)


def confidence_update(current: float, power: int, result: str) -> None:
    bundle = _runtime()
    try:
        outcome = update_confidence(current, power, result, bundle.confidence)
    except HypothesisLedgerError as exc:
        _fail(exc)
        return
    _echo({**outcome.to_dict(), "assessment": assess_confidence(outcome.new_confidence)})


def confidence_what_if(current: float, power: int) -> None:
    bundle = _runtime()
    try:
        analysis = analyze_what_if(current, power, bundle.confidence)
    except HypothesisLedgerError as exc:
        _fail(exc)
        return
    _echo(analysis.to_dict())


def hypothesis_propose(
    statement: str,
    if_true: list[str],
    if_false: list[str],
    mechanism: str,
    seed: int | None,
    session: str | None,
    author: str,
) -> None:
    bundle = _runtime()
    try:
        card = bundle.store.propose(
            statement=statement,
            predictions_if_true=if_true,
            predictions_if_false=if_false,
            mechanism=mechanism,
            seed=seed,
            session_id=session,
            created_by=author,
        )
    except HypothesisLedgerError as exc:
        _fail(exc)
        return
    bundle.repository.save_card(card)
    _echo(card.model_dump(mode="json"))


def hypothesis_evolve(
    version_id: str,
    reason: str,
    statement: str | None,
    if_true: list[str] | None,
    if_false: list[str] | None,
    author: str,
) -> None:
    bundle = _runtime()
    try:
        card = bundle.store.evolve(
            version_id,
            reason=reason,
            statement=statement,
            predictions_if_true=if_true or None,
            predictions_if_false=if_false or None,
            created_by=author,
        )
    except HypothesisLedgerError as exc:
        _fail(exc)
        return
    bundle.repository.save_card(card)
    _echo(card.model_dump(mode="json"))


def hypothesis_show(version_id: str) -> None:
    bundle = _runtime()
    try:
        card = bundle.store.get(version_id)
    except HypothesisLedgerError as exc:
        _fail(exc)
        return
    _echo(
        {
            **card.model_dump(mode="json"),
            "current_confidence": card.current_confidence,
            "assessment": assess_confidence(card.current_confidence),
            "evidence": [entry.id for entry in bundle.ledger.entries_for(version_id)],
        }
    )


def hypothesis_list() -> None:
    bundle = _runtime()
    _echo(
        [
            {
                "id": card.id,
                "statement": card.statement,
                "current_confidence": card.current_confidence,
                "evidence_count": len(bundle.ledger.entries_for(card.id)),
            }
            for card in bundle.store.list_cards()
        ]
    )


def evidence_record(
    version_id: str,
    test: dict[str, Any],
    if_true: str,
    if_false: str,
    observation: str,
    result: str,
    interpretation: str | None,
    source: str | None,
    session: str | None,
    author: str,
    expected_prior: int | None,
) -> None:
    bundle = _runtime()
    try:
        entry = bundle.ledger.record_evidence(
            version_id,
            test=test,
            prediction_if_true=if_true,
            prediction_if_false=if_false,
            observation=observation,
            result=result,
            interpretation=interpretation,
            source=source,
            session_id=session,
            recorded_by=author,
            expected_prior=expected_prior,
        )
    except (HypothesisLedgerError, ValueError) as exc:
        _fail(exc)
        return
    bundle.persist()
    _echo(
        {
            "entry": entry.model_dump(mode="json"),
            "warnings": [w.model_dump() for w in evidence_warnings(entry)],
        }
    )


def evidence_list(version_id: str) -> None:
    bundle = _runtime()
    _echo([entry.model_dump(mode="json") for entry in bundle.ledger.entries_for(version_id)])


def delta_ingest(thread_id: str, message_file: Path, role: str, author: str | None) -> None:
    """Accept every delta block found in an agent reply."""
    bundle = _runtime()
    thread = bundle.thread(thread_id)
    body = message_file.read_text(encoding="utf-8")
    accepted, refused = thread.submit_message(body, role=role, author=author)
    bundle.repository.save_deltas(thread_id, accepted)
    _echo(
        {
            "accepted": [delta.model_dump() for delta in accepted],
            "refused": [{"error": item.error, "raw": item.raw} for item in refused],
        }
    )


def delta_compile(thread_id: str, lenient: bool) -> None:
    bundle = _runtime()
    thread = bundle.thread(thread_id)
    try:
        result = thread.compile(strict=not lenient)
    except HypothesisLedgerError as exc:
        _fail(exc)
        return
    warnings = artifact_warnings(result.artifacts, bundle.compiler.settings)
    bundle.event_bus.emit(
        "artifacts_compiled",
        {
            "thread_id": thread_id,
            "digest": result.digest(),
            "last_sequence": result.last_sequence,
            "rejected": len(result.rejected),
        },
    )
    _echo({**result.to_dict(), "warnings": [w.to_dict() for w in warnings]})


def session_kickoff(
    thread_id: str,
    question: str,
    context: str,
    excerpt: str,
    recipients: list[str],
    role_map: list[str] | None,
    preset: str | None,
    operators: list[str] | None,
    constraints: str | None,
    seeds: str | None,
) -> None:
    bundle = _runtime()
    try:
        roster = None
        if role_map:
            roster = Roster.from_mapping(dict(_pairs(role_map, "--role")))
        elif preset:
            roster = bundle.roles.apply_preset(preset, recipients)
        selection: dict[str, list[str]] = {}
        for role, label in _pairs(operators, "--operator"):
            selection.setdefault(role, []).append(label)
        config = SessionConfig(
            thread_id=thread_id,
            research_question=question,
            context=context,
            excerpt=excerpt,
            recipients=tuple(recipients),
            roster=roster,
            constraints=constraints,
            initial_hypotheses=seeds,
            operator_selection={role: tuple(labels) for role, labels in selection.items()},
        )
        session = bundle.kickoff(config)
        messages = session.run()
    except HypothesisLedgerError as exc:
        _fail(exc)
        return
    _echo(
        {
            "state": session.state,
            "messages": [message.to_dict() for message in messages],
            "fallbacks": [vars(notice) for notice in session.fallbacks],
        }
    )


def _json_safe(payload: object) -> object:
    """Convert datetimes to strings for JSON output."""
    if isinstance(payload, dict):
        return {k: _json_safe(v) for k, v in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_json_safe(v) for v in payload]
    if isinstance(payload, Path):
        return str(payload)
    if hasattr(payload, "isoformat"):
        return payload.isoformat()
    return payload
