"""Session roles, rosters and recipient-to-role resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from core.errors import RosterCoverageError, RosterError

HYPOTHESIS_GENERATOR = "hypothesis_generator"
TEST_DESIGNER = "test_designer"
ADVERSARIAL_CRITIC = "adversarial_critic"
ROLES = (HYPOTHESIS_GENERATOR, TEST_DESIGNER, ADVERSARIAL_CRITIC)

DEFAULT_REPLY_TAGS = {
    HYPOTHESIS_GENERATOR: "HYP",
    TEST_DESIGNER: "TEST",
    ADVERSARIAL_CRITIC: "CRIT",
}


def normalize_name(name: str) -> str:
    return name.strip().lower()


@dataclass(frozen=True)
class RoleConfig:
    """Display and prompt settings for one role."""

    role: str
    display_name: str
    operators: tuple[str, ...] = ()
    description: str = ""
    reply_tag: str = ""
    requested_outputs: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "display_name": self.display_name,
            "operators": list(self.operators),
            "description": self.description,
            "reply_tag": self.reply_tag,
        }


@dataclass(frozen=True)
class RosterEntry:
    agent_name: str
    role: str
    program: str = ""
    model: str = ""
    notes: str = ""


def roster_problems(entries: list[RosterEntry]) -> list[str]:
    """Every reason a roster cannot be used; empty when it is valid."""
    if not entries:
        return ["Roster must have at least one entry"]
    problems: list[str] = []
    seen: set[str] = set()
    for entry in entries:
        key = normalize_name(entry.agent_name or "")
        if not key:
            problems.append("Roster entry has empty agent_name")
            continue
        if key in seen:
            problems.append(f"Duplicate agent in roster: {entry.agent_name}")
        seen.add(key)
        if entry.role not in ROLES:
            problems.append(f"Invalid role for {entry.agent_name}: {entry.role}")
    return problems


@dataclass(frozen=True)
class Roster:
    """Authoritative recipient-to-role mapping for one session."""

    entries: tuple[RosterEntry, ...]
    name: str = ""
    mode: str = "role_separated"

    def __post_init__(self) -> None:
        problems = roster_problems(list(self.entries))
        if problems:
            raise RosterError("; ".join(problems))

    @classmethod
    def from_mapping(cls, mapping: dict[str, str], name: str = "") -> Roster:
        """Build from ``{recipient: role}``."""
        return cls(
            entries=tuple(RosterEntry(agent_name=agent, role=role) for agent, role in mapping.items()),
            name=name,
        )

    def role_for(self, recipient: str) -> str | None:
        key = normalize_name(recipient)
        for entry in self.entries:
            if normalize_name(entry.agent_name) == key:
                return entry.role
        return None

    def missing(self, recipients: list[str]) -> list[str]:
        return [r for r in recipients if self.role_for(r) is None]

    def to_markdown(self) -> str:
        lines = [
            "## Session Configuration",
            "",
            f"**Roster Mode**: {self.mode}",
        ]
        if self.name:
            lines.append(f"**Roster Name**: {self.name}")
        lines += ["", "| Agent | Role | Program | Model |", "|-------|------|---------|-------|"]
        for entry in self.entries:
            lines.append(
                f"| {entry.agent_name} | {entry.role} | {entry.program or '-'} | {entry.model or '-'} |"
            )
        return "\n".join(lines)


@dataclass(frozen=True)
class RoleAssignment:
    recipient: str
    config: RoleConfig
    source: str  # roster | alias | keyword | default


@dataclass
class RoleRegistry:
    """Injected role tables; nothing here is module-global."""

    roles: dict[str, RoleConfig]
    default: RoleConfig
    aliases: dict[str, str] = field(default_factory=dict)
    keywords: list[tuple[str, str]] = field(default_factory=list)
    presets: dict[str, dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        missing = [role for role in ROLES if role not in self.roles]
        if missing:
            raise ValueError(f"Role configuration missing for: {', '.join(missing)}")
        for target in (*self.aliases.values(), *(role for _, role in self.keywords)):
            if target not in ROLES:
                raise ValueError(f"Unknown role in role configuration: {target}")
        self.aliases = {normalize_name(k): v for k, v in self.aliases.items()}

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> RoleRegistry:
        """Build from the ``roles.yaml`` mapping."""
        cfg = data or {}
        roles: dict[str, RoleConfig] = {}
        for role, settings in (cfg.get("roles") or {}).items():
            roles[role] = RoleConfig(
                role=role,
                display_name=str(settings.get("display_name", role)),
                operators=tuple(settings.get("operators", [])),
                description=str(settings.get("description", "")),
                reply_tag=str(settings.get("reply_tag", DEFAULT_REPLY_TAGS.get(role, role.upper()))),
                requested_outputs=tuple(settings.get("requested_outputs", [])),
            )
        default_role = str(cfg.get("default_role", HYPOTHESIS_GENERATOR))
        if default_role not in roles:
            raise ValueError(f"default_role {default_role!r} is not a configured role")
        base = roles[default_role]
        default = RoleConfig(
            role=default_role,
            display_name=str(cfg.get("default_display_name", base.display_name)),
            operators=tuple(cfg.get("default_operators", base.operators)),
            description=str(cfg.get("default_description", base.description)),
            reply_tag=base.reply_tag,
            requested_outputs=base.requested_outputs,
        )
        keywords = [(str(pair[0]).lower(), str(pair[1])) for pair in cfg.get("keywords", [])]
        return cls(
            roles=roles,
            default=default,
            aliases=dict(cfg.get("aliases") or {}),
            keywords=keywords,
            presets=dict(cfg.get("presets") or {}),
        )

    def heuristic(self, recipient: str) -> RoleAssignment:
        """Alias match, then substring keyword, then the default role."""
        key = normalize_name(recipient)
        if key in self.aliases:
            return RoleAssignment(recipient, self.roles[self.aliases[key]], "alias")
        for keyword, role in self.keywords:
            if keyword in key:
                return RoleAssignment(recipient, self.roles[role], "keyword")
        return RoleAssignment(recipient, self.default, "default")

    def resolve(self, recipients: list[str], roster: Roster | None = None) -> tuple[RoleAssignment, ...]:
        """Assign exactly one role per recipient.

        An explicit roster is authoritative: any recipient it does not cover
        is an error and no heuristic is consulted.
        """
        if not recipients:
            raise RosterError("A session needs at least one recipient")
        seen: set[str] = set()
        for recipient in recipients:
            key = normalize_name(recipient)
            if not key:
                raise RosterError("Recipient names must not be empty")
            if key in seen:
                raise RosterError(f"Duplicate recipient: {recipient}")
            seen.add(key)

        if roster is None:
            return tuple(self.heuristic(r) for r in recipients)

        missing = roster.missing(recipients)
        if missing:
            raise RosterCoverageError(missing)
        return tuple(
            RoleAssignment(r, self.roles[roster.role_for(r) or ""], "roster") for r in recipients
        )

    def apply_preset(self, preset_id: str, agent_names: list[str]) -> Roster:
        """Pair agents with preset entries in order; extras reuse the first entry."""
        preset = self.presets.get(preset_id)
        if preset is None:
            raise RosterError(f"Unknown roster preset: {preset_id}")
        templates = preset.get("entries") or []
        if not templates:
            raise RosterError(f"Roster preset {preset_id} has no entries")
        entries = []
        for index, name in enumerate(agent_names):
            template = templates[index] if index < len(templates) else templates[0]
            entries.append(
                RosterEntry(
                    agent_name=name,
                    role=str(template.get("role", "")),
                    program=str(template.get("program", "")),
                    model=str(template.get("model", "")),
                    notes=str(template.get("notes", "")),
                )
            )
        return Roster(entries=tuple(entries), name=str(preset.get("name", preset_id)))
