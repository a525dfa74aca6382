"""CLI smoke tests."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from ui.cli.cli import app

runner = CliRunner()

REPLY = """\
Two candidates below.

```delta
{"operation": "ADD", "section": "hypothesis_slate", "payload": {"name": "Counter", "claim": "Cells count divisions", "mechanism": "Telomeres"}}
```

```delta
{"operation": "ADD", "section": "hypothesis_slate", "payload": {"name": "Clock", "claim": "Cells read a clock", "mechanism": "Oscillator", "third_alternative": true}}
```
"""


def invoke(tmp_path: Path, *args: str):
    return runner.invoke(app, list(args), env={"HL_ROOT": str(tmp_path)})


def test_confidence_update_prints_json(tmp_path: Path) -> None:
    result = invoke(tmp_path, "confidence", "update", "50", "3", "challenges")

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["new_confidence"] == 4
    assert payload["delta"] == -46
    assert payload["assessment"]["label"] == "Very Low"


def test_invalid_power_exits_non_zero(tmp_path: Path) -> None:
    result = invoke(tmp_path, "confidence", "update", "50", "9", "supports")

    assert result.exit_code == 1


def test_what_if(tmp_path: Path) -> None:
    result = invoke(tmp_path, "confidence", "what-if", "50", "3")

    assert result.exit_code == 0
    assert json.loads(result.stdout)["information_value"] == 85


def test_hypothesis_and_evidence_flow_persists(tmp_path: Path) -> None:
    proposed = invoke(tmp_path, "hypothesis", "propose", "Cells count divisions", "--if-true", "Telomeres shorten")
    assert proposed.exit_code == 0
    card_id = json.loads(proposed.stdout)["id"]
    assert card_id == "HC-001-v1"

    recorded = invoke(
        tmp_path,
        "evidence",
        "record",
        card_id,
        "--test-id",
        "T1",
        "--description",
        "Graft old tissue into young host",
        "--test-type",
        "controlled_study",
        "--power",
        "3",
        "--if-true",
        "Timing follows donor",
        "--if-false",
        "Timing follows host",
        "--observation",
        "Timing followed donor",
        "--result",
        "supports",
    )
    assert recorded.exit_code == 0
    body = json.loads(recorded.stdout)
    assert body["entry"]["confidence_after"] == 89
    assert [w["code"] for w in body["warnings"]] == ["NO_SOURCE"]

    shown = json.loads(invoke(tmp_path, "hypothesis", "show", card_id).stdout)
    assert shown["current_confidence"] == 89
    assert shown["evidence"] == ["EV-S-001"]

    listed = json.loads(invoke(tmp_path, "evidence", "list", card_id).stdout)
    assert [e["id"] for e in listed] == ["EV-S-001"]

    stale = invoke(
        tmp_path,
        "evidence",
        "record",
        card_id,
        "--test-id",
        "T2",
        "--description",
        "Repeat",
        "--power",
        "2",
        "--if-true",
        "a",
        "--if-false",
        "b",
        "--observation",
        "o",
        "--result",
        "challenges",
        "--expected-prior",
        "50",
    )
    assert stale.exit_code == 1

    evolved = invoke(tmp_path, "hypothesis", "evolve", card_id, "--reason", "Narrowed scope")
    assert json.loads(evolved.stdout)["id"] == "HC-001-v2"
    assert len(json.loads(invoke(tmp_path, "hypothesis", "list").stdout)) == 2


def test_delta_ingest_and_compile(tmp_path: Path) -> None:
    reply = tmp_path / "reply.md"
    reply.write_text(REPLY, encoding="utf-8")

    ingested = invoke(tmp_path, "delta", "ingest", "RS-1", str(reply), "--role", "hypothesis_generator", "--author", "BlueLake")
    assert ingested.exit_code == 0
    assert [d["sequence"] for d in json.loads(ingested.stdout)["accepted"]] == [1, 2]

    compiled = invoke(tmp_path, "delta", "compile", "RS-1")
    assert compiled.exit_code == 0
    payload = json.loads(compiled.stdout)
    slate = payload["artifacts"]["hypothesis_slate"]
    assert [e["id"] for e in slate["entries"]] == ["H1", "H2"]
    assert "NO_THIRD_ALTERNATIVE" not in [w["code"] for w in payload["warnings"]]

    events = [json.loads(line)["event"] for line in (tmp_path / "logs" / "audit.jsonl").read_text().splitlines()]
    assert events == ["artifacts_compiled"]


def test_session_kickoff(tmp_path: Path) -> None:
    result = invoke(
        tmp_path,
        "session",
        "kickoff",
        "--thread",
        "RS-2",
        "--question",
        "Why do clones diverge?",
        "--to",
        "codex",
        "--to",
        "gemini",
        "--operator",
        "adversarial_critic=⊞ Scale-Check",
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["state"] == "dispatched"
    assert [m["role"]["role"] for m in payload["messages"]] == ["hypothesis_generator", "adversarial_critic"]
    assert payload["messages"][0]["subject"] == "KICKOFF: [RS-2] Why do clones diverge?"
    assert payload["fallbacks"] == []


def test_session_kickoff_with_incomplete_roster_fails(tmp_path: Path) -> None:
    result = invoke(
        tmp_path,
        "session",
        "kickoff",
        "--thread",
        "RS-3",
        "--question",
        "Q",
        "--to",
        "codex",
        "--to",
        "BlueLake",
        "--role",
        "codex=test_designer",
    )

    assert result.exit_code == 1
