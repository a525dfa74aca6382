"""Delta envelope and per-section payload validation."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from artifacts.sections import (
    SECTION_PREFIXES,
    SECTION_SCHEMAS,
    SECTIONS,
    RemovePayload,
    key_number,
)
from core.errors import DeltaValidationError


class Delta(BaseModel):
    """One agent-authored update to a single artifact section."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    role: str = Field(min_length=1)
    section: str
    operation: Literal["ADD", "UPDATE", "REMOVE"]
    payload: dict[str, Any] = Field(default_factory=dict)
    sequence: int = Field(ge=0)
    author: str | None = None
    rationale: str = ""

    @property
    def contributor(self) -> str:
        return self.author or self.role

    @property
    def key(self) -> str | None:
        value = self.payload.get("id")
        return value if isinstance(value, str) else None


def _error(delta: Delta, message: str) -> DeltaValidationError:
    return DeltaValidationError(message, section=delta.section, delta_id=delta.id, sequence=delta.sequence)


def coerce_delta(raw: Delta | dict[str, Any]) -> Delta:
    """Accept a ``Delta`` or its wire-shape dict."""
    if isinstance(raw, Delta):
        return raw
    try:
        return Delta.model_validate(raw)
    except ValidationError as exc:
        section = raw.get("section") if isinstance(raw, dict) else None
        delta_id = raw.get("id") if isinstance(raw, dict) else None
        raise DeltaValidationError(
            f"Malformed delta envelope: {exc.errors()[0]['msg']}",
            section=section if isinstance(section, str) else None,
            delta_id=delta_id if isinstance(delta_id, str) else None,
        ) from exc


def validate_payload(delta: Delta) -> dict[str, Any]:
    """Check ``delta.payload`` against its section schema and return the normalized entry.

    The returned mapping is what the artifact stores; fields left at their
    defaults are materialized so every replay stores the same shape.
    """
    if delta.section not in SECTIONS:
        raise _error(delta, f"Unknown section {delta.section!r}; expected one of {', '.join(SECTIONS)}")

    schema = RemovePayload if delta.operation == "REMOVE" else SECTION_SCHEMAS[delta.section]
    try:
        model = schema.model_validate(delta.payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        raise _error(delta, f"Invalid {delta.operation} payload at {where}: {first['msg']}") from exc

    key = model.id
    if delta.operation in ("UPDATE", "REMOVE") and not key:
        raise _error(delta, f"{delta.operation} requires payload.id")
    if key is not None and key_number(delta.section, key) is None:
        prefix = SECTION_PREFIXES[delta.section]
        raise _error(delta, f"Key {key!r} does not match section prefix {prefix!r}")
    return model.model_dump(mode="json")
