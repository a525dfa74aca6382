"""CLI entrypoint for hypothesis-ledger."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from ui.cli import commands

app = typer.Typer(help="Hypothesis ledger and multi-agent research sessions")
config_app = typer.Typer(help="Configuration commands")
confidence_app = typer.Typer(help="Confidence engine commands")
hypothesis_app = typer.Typer(help="Hypothesis card commands")
evidence_app = typer.Typer(help="Evidence ledger commands")
delta_app = typer.Typer(help="Delta thread commands")
session_app = typer.Typer(help="Research session commands")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@config_app.command("show")
def config_show_cmd() -> None:
    """Show effective configuration."""
    commands.config_show()


@confidence_app.command("update")
def confidence_update_cmd(
    current: float = typer.Argument(..., help="Current confidence, 1-99"),
    power: int = typer.Argument(..., help="Discriminative power, 1-5"),
    result: str = typer.Argument(..., help="supports, challenges or inconclusive"),
) -> None:
    """Compute one confidence update."""
    commands.confidence_update(current=current, power=power, result=result)


@confidence_app.command("what-if")
def confidence_what_if_cmd(
    current: float = typer.Argument(...),
    power: int = typer.Argument(...),
) -> None:
    """Show the outcome of each possible result before running a test."""
    commands.confidence_what_if(current=current, power=power)


@hypothesis_app.command("propose")
def hypothesis_propose_cmd(
    statement: str = typer.Argument(..., help="The claim being proposed"),
    if_true: list[str] = typer.Option(..., "--if-true", help="Prediction if the hypothesis holds"),
    if_false: list[str] = typer.Option([], "--if-false", help="Prediction if it does not"),
    mechanism: str = typer.Option("", help="Proposed mechanism"),
    seed: int | None = typer.Option(None, help="Seed confidence, 1-99"),
    session: str | None = typer.Option(None, help="Session id used in the card id"),
    author: str = typer.Option("cli", help="Who proposed the card"),
) -> None:
    """Create a new hypothesis card."""
    commands.hypothesis_propose(
        statement=statement,
        if_true=if_true,
        if_false=if_false,
        mechanism=mechanism,
        seed=seed,
        session=session,
        author=author,
    )


@hypothesis_app.command("evolve")
def hypothesis_evolve_cmd(
    version_id: str = typer.Argument(...),
    reason: str = typer.Option(..., help="Why the card is being revised"),
    statement: str | None = typer.Option(None),
    if_true: list[str] = typer.Option([], "--if-true"),
    if_false: list[str] = typer.Option([], "--if-false"),
    author: str = typer.Option("cli"),
) -> None:
    """Create the next version of a card."""
    commands.hypothesis_evolve(
        version_id=version_id,
        reason=reason,
        statement=statement,
        if_true=if_true,
        if_false=if_false,
        author=author,
    )


@hypothesis_app.command("show")
def hypothesis_show_cmd(version_id: str = typer.Argument(...)) -> None:
    """Show one card with its confidence history."""
    commands.hypothesis_show(version_id=version_id)


@hypothesis_app.command("list")
def hypothesis_list_cmd() -> None:
    """List every card version."""
    commands.hypothesis_list()


@evidence_app.command("record")
def evidence_record_cmd(
    version_id: str = typer.Argument(..., help="Hypothesis version id"),
    test_id: str = typer.Option(..., "--test-id"),
    description: str = typer.Option(..., help="What the test does"),
    test_type: str = typer.Option("observation", "--test-type"),
    power: int = typer.Option(..., help="Discriminative power, 1-5"),
    if_true: str = typer.Option(..., "--if-true"),
    if_false: str = typer.Option(..., "--if-false"),
    observation: str = typer.Option(...),
    result: str = typer.Option(..., help="supports, challenges or inconclusive"),
    interpretation: str | None = typer.Option(None),
    source: str | None = typer.Option(None),
    session: str | None = typer.Option(None),
    author: str = typer.Option("cli"),
    expected_prior: int | None = typer.Option(None, "--expected-prior"),
) -> None:
    """Record an observation and update the card's confidence."""
    commands.evidence_record(
        version_id=version_id,
        test={
            "id": test_id,
            "description": description,
            "type": test_type,
            "discriminative_power": power,
        },
        if_true=if_true,
        if_false=if_false,
        observation=observation,
        result=result,
        interpretation=interpretation,
        source=source,
        session=session,
        author=author,
        expected_prior=expected_prior,
    )


@evidence_app.command("list")
def evidence_list_cmd(version_id: str = typer.Argument(...)) -> None:
    """List evidence recorded against a card."""
    commands.evidence_list(version_id=version_id)


@delta_app.command("ingest")
def delta_ingest_cmd(
    thread_id: str = typer.Argument(...),
    message_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Agent reply body"),
    role: str = typer.Option(..., help="Role the sender played"),
    author: str | None = typer.Option(None),
) -> None:
    """Parse delta blocks out of an agent reply and append them to a thread."""
    commands.delta_ingest(thread_id=thread_id, message_file=message_file, role=role, author=author)


@delta_app.command("compile")
def delta_compile_cmd(
    thread_id: str = typer.Argument(...),
    lenient: bool = typer.Option(False, "--lenient", help="Skip rejected deltas instead of failing"),
) -> None:
    """Compile a thread's deltas into artifacts."""
    commands.delta_compile(thread_id=thread_id, lenient=lenient)


@session_app.command("kickoff")
def session_kickoff_cmd(
    thread_id: str = typer.Option(..., "--thread"),
    question: str = typer.Option(...),
    recipients: list[str] = typer.Option(..., "--to", help="Recipient agent name"),
    context: str = typer.Option(""),
    excerpt: str = typer.Option(""),
    role_map: list[str] = typer.Option([], "--role", help="AGENT=ROLE roster entry"),
    preset: str | None = typer.Option(None, help="Named roster preset"),
    operators: list[str] = typer.Option([], "--operator", help="ROLE=OPERATOR focus"),
    constraints: str | None = typer.Option(None),
    seeds: str | None = typer.Option(None, "--initial-hypotheses"),
) -> None:
    """Compose and dispatch kickoff messages for a research session."""
    commands.session_kickoff(
        thread_id=thread_id,
        question=question,
        context=context,
        excerpt=excerpt,
        recipients=recipients,
        role_map=role_map,
        preset=preset,
        operators=operators,
        constraints=constraints,
        seeds=seeds,
    )


app.add_typer(config_app, name="config")
app.add_typer(confidence_app, name="confidence")
app.add_typer(hypothesis_app, name="hypothesis")
app.add_typer(evidence_app, name="evidence")
app.add_typer(delta_app, name="delta")
app.add_typer(session_app, name="session")


def main() -> None:
    """Console script entrypoint."""
    app()


if __name__ == "__main__":
    main()
