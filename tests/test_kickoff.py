"""Session kickoff protocol tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import DomainValidationError, ProtocolStateError, RosterCoverageError
from core.event_bus import EventBus
from core.policy_runtime import load_effective_config
from protocol.kickoff import (
    DISPATCHED,
    PROMPTS_COMPOSED,
    ROLES_RESOLVED,
    KickoffSession,
    SessionConfig,
    compose_unified_kickoff,
    kickoff_subject,
)
from protocol.resources import PromptResources
from protocol.roles import RoleRegistry, Roster

ROOT = Path(__file__).resolve().parents[1]
QUESTION = "How do cells keep time across sixty divisions without a central clock?"


def build_session(
    config: SessionConfig | None = None,
    resources: PromptResources | None = None,
    event_bus: EventBus | None = None,
) -> KickoffSession:
    effective = load_effective_config(ROOT)
    return KickoffSession(
        config or build_config(),
        RoleRegistry.from_mapping(effective["roles"]),
        resources if resources is not None else PromptResources.from_config(effective),
        event_bus=event_bus,
    )


def build_config(**overrides: object) -> SessionConfig:
    values: dict[str, object] = {
        "thread_id": "RS-20261019",
        "research_question": QUESTION,
        "context": "Clonal lineages diverge in timing.",
        "excerpt": "§12: division counts plateau.",
        "recipients": ("codex", "claude", "gemini"),
    }
    values.update(overrides)
    return SessionConfig(**values)  # type: ignore[arg-type]


def test_every_recipient_gets_exactly_one_message() -> None:
    messages = build_session().run()

    assert [m.to for m in messages] == ["codex", "claude", "gemini"]
    assert [m.role.role for m in messages] == ["hypothesis_generator", "test_designer", "adversarial_critic"]
    assert all(m.ack_required for m in messages)
    assert {m.subject for m in messages} == {kickoff_subject("RS-20261019", QUESTION)}


def test_equal_inputs_compose_identical_messages() -> None:
    first = build_session().run()
    second = build_session().run()

    assert [m.to_dict() for m in first] == [m.to_dict() for m in second]


def test_subject_truncates_long_questions() -> None:
    assert kickoff_subject("T1", QUESTION) == f"KICKOFF: [T1] {QUESTION[:60]}..."
    assert kickoff_subject("T1", "Short?") == "KICKOFF: [T1] Short?"
    assert kickoff_subject("T1", "x" * 60) == "KICKOFF: [T1] " + "x" * 60


def test_body_sections_appear_in_order() -> None:
    config = build_config(
        memory_context="Earlier run favoured H2.",
        constraints="No animal work.",
        initial_hypotheses="H1 counter, H2 clock",
        operator_selection={"test_designer": ("✂ Exclusion-Test", "potency-check")},
    )
    messages = build_session(config=config).run()
    body = messages[1].body
    headings = [line for line in body.splitlines() if line.startswith("## ")]

    assert body.startswith("# Research Session: RS-20261019\n")
    assert body.endswith("\n")
    assert headings == [
        "## Shared Kernel",
        "## Your Role: Test Designer",
        "## Operator Focus (selected)",
        "## Research Question",
        "## Context",
        "## Transcript Excerpt",
        "## Memory Context",
        "## Constraints",
        "## Initial Hypotheses (Seed)",
        "## Requested Outputs",
        "## Response Format",
    ]
    assert "### ✂ Exclusion-Test (exclusion-test)" in body
    assert "### 🎭 Potency-Check (potency-check)" in body
    assert "DELTA[TEST]: <description>" in body
    assert "Operator Focus" not in messages[0].body


def test_reply_tags_follow_roles() -> None:
    messages = build_session().run()

    assert ["DELTA[HYP]", "DELTA[TEST]", "DELTA[CRIT]"] == [
        next(tag for tag in ("DELTA[HYP]", "DELTA[TEST]", "DELTA[CRIT]") if tag in m.body) for m in messages
    ]


def test_explicit_roster_summary_is_included() -> None:
    roster = Roster.from_mapping({"BlueLake": "adversarial_critic", "RedForest": "hypothesis_generator"})
    config = build_config(recipients=("BlueLake", "RedForest"), roster=roster)

    messages = build_session(config=config).run()

    assert messages[0].role.role == "adversarial_critic"
    assert "## Roster (explicit)\n- BlueLake: Adversarial Critic\n- RedForest: Hypothesis Generator" in messages[0].body


def test_roster_gap_stops_before_any_message() -> None:
    roster = Roster.from_mapping({"BlueLake": "adversarial_critic"})
    session = build_session(config=build_config(recipients=("BlueLake", "RedForest"), roster=roster))

    with pytest.raises(RosterCoverageError):
        session.run()
    assert session.messages == ()


def test_steps_must_run_in_order() -> None:
    session = build_session()

    with pytest.raises(ProtocolStateError):
        session.compose()
    session.resolve_roles()
    assert session.state == ROLES_RESOLVED
    with pytest.raises(ProtocolStateError):
        session.dispatch()
    session.compose()
    assert session.state == PROMPTS_COMPOSED
    with pytest.raises(ProtocolStateError) as excinfo:
        session.resolve_roles()
    assert str(excinfo.value) == "Cannot resolve roles from state prompts_composed"
    session.dispatch()
    assert session.state == DISPATCHED


def test_missing_resources_fall_back_visibly() -> None:
    bus = EventBus(keep_history=True)
    config = build_config(operator_selection={"hypothesis_generator": ("⊘ Level-Split",)})
    session = build_session(config=config, resources=PromptResources(), event_bus=bus)

    messages = session.run()

    assert len(messages) == 3
    assert "## Shared Kernel" not in messages[0].body
    assert "Cite transcript anchors (§n)" in messages[0].body
    assert "### ⊘ Level-Split" in messages[0].body
    resources = [(n.recipient, n.resource) for n in session.fallbacks]
    assert ("codex", "kernel") in resources
    assert ("codex", "role_prompt:hypothesis_generator") in resources
    assert ("codex", "operator_cards") in resources
    assert len(bus.events("resource_fallback")) == len(session.fallbacks)
    assert bus.events("session_dispatched")[0]["fallbacks"] == len(session.fallbacks)


def test_unknown_operator_is_reported() -> None:
    config = build_config(operator_selection={"adversarial_critic": ("† Theory-Kill", "Mind Reading")})
    session = build_session(config=config)

    session.run()

    assert [(n.recipient, n.detail) for n in session.fallbacks] == [("gemini", "Unknown operators: Mind Reading")]


def test_config_validation() -> None:
    with pytest.raises(DomainValidationError):
        build_config(research_question="  ")
    with pytest.raises(DomainValidationError):
        build_config(operator_selection={"librarian": ("⊘",)})


def test_unified_kickoff_lists_every_role_tag() -> None:
    effective = load_effective_config(ROOT)
    message = compose_unified_kickoff(
        build_config(operator_selection={"test_designer": ("✂ Exclusion-Test",)}),
        RoleRegistry.from_mapping(effective["roles"]),
        PromptResources.from_config(effective),
    )

    assert message["subject"] == kickoff_subject("RS-20261019", QUESTION)
    assert "- Test Designer: ✂ Exclusion-Test" in message["body"]
    assert "Hypothesis Generator → `HYP`" in message["body"]
    assert "Adversarial Critic → `CRIT`" in message["body"]
