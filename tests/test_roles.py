"""Role resolution, roster and operator catalog tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import RosterCoverageError, RosterError
from core.policy_runtime import load_effective_config
from protocol.operators import OperatorCatalog
from protocol.roles import RoleRegistry, Roster, RosterEntry, roster_problems

ROOT = Path(__file__).resolve().parents[1]


def build_registry() -> RoleRegistry:
    return RoleRegistry.from_mapping(load_effective_config(ROOT)["roles"])


@pytest.mark.parametrize(
    ("recipient", "role", "source"),
    [
        ("Codex", "hypothesis_generator", "alias"),
        ("claude-code", "test_designer", "alias"),
        ("GEMINI-CLI", "adversarial_critic", "alias"),
        ("gpt-4o-runner", "hypothesis_generator", "keyword"),
        ("my-claude-agent", "test_designer", "keyword"),
        ("opus-reviewer", "test_designer", "keyword"),
        ("BlueLake", "hypothesis_generator", "default"),
    ],
)
def test_heuristic_resolution(recipient: str, role: str, source: str) -> None:
    assignment = build_registry().heuristic(recipient)

    assert assignment.config.role == role
    assert assignment.source == source


def test_default_role_uses_collaborator_display() -> None:
    assignment = build_registry().heuristic("BlueLake")

    assert assignment.config.display_name == "Research Collaborator"
    assert assignment.config.operators == ("⊘ Level-Split", "⊕ Cross-Domain")
    assert assignment.config.reply_tag == "HYP"


def test_explicit_roster_is_authoritative() -> None:
    registry = build_registry()
    roster = Roster.from_mapping({"codex": "adversarial_critic", "BlueLake": "test_designer"})

    assignments = registry.resolve(["Codex", "bluelake"], roster)

    assert [(a.recipient, a.config.role, a.source) for a in assignments] == [
        ("Codex", "adversarial_critic", "roster"),
        ("bluelake", "test_designer", "roster"),
    ]


def test_roster_gap_is_an_error_not_a_fallback() -> None:
    registry = build_registry()
    roster = Roster.from_mapping({"codex": "hypothesis_generator"})

    with pytest.raises(RosterCoverageError) as excinfo:
        registry.resolve(["codex", "gemini", "GreenCastle"], roster)

    assert excinfo.value.missing == ["gemini", "GreenCastle"]
    assert str(excinfo.value) == "Missing recipient role mapping for: gemini, GreenCastle"


def test_recipient_list_must_be_non_empty_and_unique() -> None:
    registry = build_registry()

    with pytest.raises(RosterError):
        registry.resolve([])
    with pytest.raises(RosterError):
        registry.resolve(["codex", "CODEX"])


def test_roster_validation() -> None:
    assert roster_problems([]) == ["Roster must have at least one entry"]
    problems = roster_problems(
        [
            RosterEntry(agent_name="a", role="hypothesis_generator"),
            RosterEntry(agent_name="A", role="test_designer"),
            RosterEntry(agent_name=" ", role="test_designer"),
            RosterEntry(agent_name="b", role="librarian"),
        ]
    )
    assert problems == [
        "Duplicate agent in roster: A",
        "Roster entry has empty agent_name",
        "Invalid role for b: librarian",
    ]
    with pytest.raises(RosterError):
        Roster.from_mapping({"a": "librarian"})


def test_presets_pair_agents_in_order() -> None:
    registry = build_registry()

    roster = registry.apply_preset("hypothesis-critique", ["BlueLake", "RedForest", "GreenCastle"])

    assert roster.name == "Hypothesis + Critique"
    assert [(e.agent_name, e.role) for e in roster.entries] == [
        ("BlueLake", "hypothesis_generator"),
        ("RedForest", "adversarial_critic"),
        ("GreenCastle", "hypothesis_generator"),
    ]
    assert "| BlueLake | hypothesis_generator | codex-cli | GPT |" in roster.to_markdown()
    with pytest.raises(RosterError):
        registry.apply_preset("five-agent", ["a"])


def test_registry_rejects_incomplete_role_tables() -> None:
    with pytest.raises(ValueError):
        RoleRegistry.from_mapping({"roles": {"hypothesis_generator": {"display_name": "HG"}}})


def test_operator_catalog_lookup() -> None:
    catalog = OperatorCatalog.from_mapping(load_effective_config(ROOT)["operators"])

    assert len(catalog) == 10
    assert catalog.resolve("level-split").symbol == "⊘"
    assert catalog.resolve("⊘ Level-Split").canonical_tag == "level-split"
    assert catalog.resolve("ΔE").title == "Exception-Quarantine"
    assert catalog.resolve("scale check").symbol == "⊞"
    assert catalog.resolve("Telepathy") is None
    assert catalog.resolve("  ") is None

    card = catalog.get("potency-check").to_markdown()
    assert card.startswith("### 🎭 Potency-Check (potency-check)")
    assert "**Transcript anchors**:" in card
