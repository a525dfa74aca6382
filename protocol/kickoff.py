"""Deterministic session kickoff: roles, per-recipient prompts, dispatch."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from core.errors import DomainValidationError, ProtocolStateError
from core.event_bus import EventBus
from protocol.resources import PromptResources
from protocol.roles import ROLES, RoleAssignment, RoleConfig, RoleRegistry, Roster

UNASSIGNED = "unassigned"
ROLES_RESOLVED = "roles_resolved"
PROMPTS_COMPOSED = "prompts_composed"
DISPATCHED = "dispatched"

SUBJECT_QUESTION_LIMIT = 60

logger = logging.getLogger("hl.kickoff")


@dataclass(frozen=True)
class SessionConfig:
    """Everything a kickoff depends on; equal configs compose equal messages."""

    thread_id: str
    research_question: str
    context: str
    excerpt: str
    recipients: tuple[str, ...]
    roster: Roster | None = None
    memory_context: str | None = None
    constraints: str | None = None
    initial_hypotheses: str | None = None
    requested_outputs: str | None = None
    operator_selection: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.thread_id.strip():
            raise DomainValidationError("thread_id must not be empty")
        if not self.research_question.strip():
            raise DomainValidationError("research_question must not be empty")
        unknown = [role for role in self.operator_selection if role not in ROLES]
        if unknown:
            raise DomainValidationError(f"Operator selection names unknown roles: {', '.join(unknown)}")


@dataclass(frozen=True)
class KickoffMessage:
    to: str
    subject: str
    body: str
    role: RoleConfig
    ack_required: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "to": self.to,
            "subject": self.subject,
            "body": self.body,
            "ack_required": self.ack_required,
            "role": self.role.to_dict(),
        }


@dataclass(frozen=True)
class FallbackNotice:
    """A shared resource was missing and role-default text was used instead."""

    recipient: str | None
    resource: str
    detail: str


def kickoff_subject(thread_id: str, question: str) -> str:
    truncated = question[:SUBJECT_QUESTION_LIMIT]
    suffix = "..." if len(question) > SUBJECT_QUESTION_LIMIT else ""
    return f"KICKOFF: [{thread_id}] {truncated}{suffix}"


def reply_subject(role: RoleConfig, description: str) -> str:
    """Subject an agent should use when replying with deltas."""
    return f"DELTA[{role.reply_tag}]: {description}"


def default_role_text(role: RoleConfig) -> str:
    """Built-in instructions used when no role prompt is configured."""
    lines = [role.description or f"Contribute as {role.display_name}."]
    if role.operators:
        lines.append(f"**Primary Operators**: {', '.join(role.operators)}")
    lines.append("Cite transcript anchors (§n) when referencing sources.")
    lines.append("Output structured ```delta blocks, not narrative prose.")
    return "\n".join(lines)


def compose_body(
    config: SessionConfig,
    assignment: RoleAssignment,
    resources: PromptResources,
    roster_summary: str | None = None,
) -> tuple[str, list[FallbackNotice]]:
    """Assemble one recipient's kickoff body and report any fallbacks taken."""
    role = assignment.config
    notices: list[FallbackNotice] = []
    sections: list[str] = [f"# Research Session: {config.thread_id}"]

    if roster_summary:
        sections.append(f"## Roster (explicit)\n{roster_summary}")

    kernel = resources.kernel_text()
    if kernel.found:
        sections.append(f"## Shared Kernel\n{kernel.value}")
    else:
        notices.append(FallbackNotice(assignment.recipient, kernel.resource, kernel.detail))

    role_text = resources.role_text(role.role)
    if role_text.found:
        body = role_text.value
    else:
        notices.append(FallbackNotice(assignment.recipient, role_text.resource, role_text.detail))
        body = default_role_text(role)
    sections.append(f"## Your Role: {role.display_name}\n{body}")

    selected = config.operator_selection.get(role.role, ())
    if selected:
        found = resources.operator_cards(selected)
        parts = [
            "## Operator Focus (selected)",
            "Apply these explicitly and name them in your rationales.",
            f"Selected: {', '.join(selected)}",
        ]
        parts.extend(card.to_markdown() for card in found.cards)
        if found.missing:
            detail = (
                "Operator catalog unavailable"
                if not found.catalog_available
                else f"Unknown operators: {', '.join(found.missing)}"
            )
            notices.append(FallbackNotice(assignment.recipient, "operator_cards", detail))
            parts.extend(f"### {label}" for label in found.missing)
        sections.append("\n\n".join(parts))

    sections.append(f"## Research Question\n{config.research_question}")
    sections.append(f"## Context\n{config.context}")
    sections.append(f"## Transcript Excerpt\n{config.excerpt}")
    if config.memory_context:
        sections.append(f"## Memory Context\n{config.memory_context.strip()}")
    if config.constraints:
        sections.append(f"## Constraints\n{config.constraints.strip()}")
    if config.initial_hypotheses:
        sections.append(f"## Initial Hypotheses (Seed)\n{config.initial_hypotheses.strip()}")

    if config.requested_outputs:
        outputs = config.requested_outputs.strip()
    else:
        outputs = "\n".join(f"- {item}" for item in role.requested_outputs) or "- Structured deltas"
    sections.append(f"## Requested Outputs\n{outputs}")

    sections.append(
        "## Response Format\n"
        f"Reply to this thread with subject `{reply_subject(role, '<description>')}`.\n"
        "Include your reasoning as prose, followed by `## Deltas` with your ```delta blocks."
    )
    return "\n\n".join(sections) + "\n", notices


class KickoffSession:
    """Walks one session through unassigned, roles resolved, prompts composed, dispatched.

    Each step runs once; calling a step from the wrong state raises
    :class:`ProtocolStateError`.
    """

    def __init__(
        self,
        config: SessionConfig,
        registry: RoleRegistry,
        resources: PromptResources,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.resources = resources
        self.event_bus = event_bus
        self.state = UNASSIGNED
        self.assignments: tuple[RoleAssignment, ...] = ()
        self.messages: tuple[KickoffMessage, ...] = ()
        self.fallbacks: list[FallbackNotice] = []

    def resolve_roles(self) -> tuple[RoleAssignment, ...]:
        self._require(UNASSIGNED, "resolve roles")
        self.assignments = self.registry.resolve(list(self.config.recipients), self.config.roster)
        self.state = ROLES_RESOLVED
        logger.info(
            "Resolved roles for %s: %s",
            self.config.thread_id,
            ", ".join(f"{a.recipient}={a.config.role}({a.source})" for a in self.assignments),
        )
        return self.assignments

    def compose(self) -> tuple[KickoffMessage, ...]:
        self._require(ROLES_RESOLVED, "compose prompts")
        subject = kickoff_subject(self.config.thread_id, self.config.research_question)
        messages: list[KickoffMessage] = []
        notices: list[FallbackNotice] = []
        roster_summary = None
        if self.config.roster is not None:
            roster_summary = "\n".join(f"- {a.recipient}: {a.config.display_name}" for a in self.assignments)
        for assignment in self.assignments:
            body, taken = compose_body(self.config, assignment, self.resources, roster_summary)
            notices.extend(taken)
            messages.append(KickoffMessage(to=assignment.recipient, subject=subject, body=body, role=assignment.config))
        self.messages = tuple(messages)
        self.fallbacks = notices
        for notice in notices:
            logger.warning("Fallback for %s: %s (%s)", notice.recipient, notice.resource, notice.detail)
            if self.event_bus is not None:
                self.event_bus.emit(
                    "resource_fallback",
                    {
                        "thread_id": self.config.thread_id,
                        "recipient": notice.recipient,
                        "resource": notice.resource,
                        "detail": notice.detail,
                    },
                )
        self.state = PROMPTS_COMPOSED
        return self.messages

    def dispatch(self) -> list[KickoffMessage]:
        """Hand the composed messages to the caller; delivery happens elsewhere."""
        self._require(PROMPTS_COMPOSED, "dispatch")
        self.state = DISPATCHED
        logger.info("Dispatched %d kickoff messages for %s", len(self.messages), self.config.thread_id)
        if self.event_bus is not None:
            self.event_bus.emit(
                "session_dispatched",
                {
                    "thread_id": self.config.thread_id,
                    "recipients": [m.to for m in self.messages],
                    "roles": [m.role.role for m in self.messages],
                    "fallbacks": len(self.fallbacks),
                },
            )
        return list(self.messages)

    def run(self) -> list[KickoffMessage]:
        self.resolve_roles()
        self.compose()
        return self.dispatch()

    def _require(self, expected: str, attempted: str) -> None:
        if self.state != expected:
            raise ProtocolStateError(self.state, attempted)


def compose_unified_kickoff(
    config: SessionConfig,
    registry: RoleRegistry,
    resources: PromptResources,
) -> dict[str, Any]:
    """One role-agnostic message for single-prompt sessions."""
    sections = [f"# Research Session: {config.thread_id}"]
    kernel = resources.kernel_text()
    if kernel.found:
        sections.append(f"## Shared Kernel\n{kernel.value}")
    if config.operator_selection:
        lines = ["## Role Operator Assignments"]
        for role in ROLES:
            operators = config.operator_selection.get(role, ())
            if operators:
                lines.append(f"- {registry.roles[role].display_name}: {', '.join(operators)}")
        sections.append("\n".join(lines))
    sections.append(f"## Research Question\n{config.research_question}")
    sections.append(f"## Context\n{config.context}")
    sections.append(f"## Transcript Excerpt\n{config.excerpt}")
    if config.memory_context:
        sections.append(f"## Memory Context\n{config.memory_context.strip()}")
    if config.constraints:
        sections.append(f"## Constraints\n{config.constraints.strip()}")
    if config.initial_hypotheses:
        sections.append(f"## Initial Hypotheses (Seed)\n{config.initial_hypotheses.strip()}")
    tags = ", ".join(f"{registry.roles[r].display_name} → `{registry.roles[r].reply_tag}`" for r in ROLES)
    sections.append(
        "## Response Format\n"
        "Reply with subject `DELTA[<tag>]: <description>` using the tag for your role.\n"
        f"Role tags: {tags}."
    )
    return {
        "subject": kickoff_subject(config.thread_id, config.research_question),
        "body": "\n\n".join(sections) + "\n",
        "ack_required": True,
    }
