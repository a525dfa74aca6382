"""Extract delta blocks from agent reply bodies.

Agents reply in markdown with one JSON object per fenced block::

    ```delta
    {"operation": "ADD", "section": "hypothesis_slate", "target_id": null,
     "payload": {...}, "rationale": "..."}
    ```

``:::delta`` fences are accepted too. Legacy ``EDIT`` and ``KILL``
operations are translated to ``UPDATE`` and ``REMOVE`` with the
``target_id`` moved into ``payload.id``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from artifacts.sections import OPERATIONS, SECTIONS

DELTA_BLOCK_RE = re.compile(
    r"(`{3,})delta(?:[ \t][^\n]*)?\r?\n(.*?)\1|(:{3,})delta(?:[ \t][^\n]*)?\r?\n(.*?)\3",
    re.DOTALL,
)
COMMENT_RE = re.compile(r'("(?:[^"\\]|\\.)*")|(//[^\n]*)|(/\*.*?\*/)', re.DOTALL)
TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")

LEGACY_OPERATIONS = {"EDIT": "UPDATE", "KILL": "REMOVE"}


@dataclass(frozen=True)
class ParsedDelta:
    """One delta block; ``error`` is set when the block could not be used."""

    raw: str
    operation: str | None = None
    section: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    rationale: str = ""
    error: str | None = None

    @property
    def valid(self) -> bool:
        return self.error is None


@dataclass
class ParseResult:
    deltas: list[ParsedDelta] = field(default_factory=list)

    @property
    def valid(self) -> list[ParsedDelta]:
        return [d for d in self.deltas if d.valid]

    @property
    def invalid(self) -> list[ParsedDelta]:
        return [d for d in self.deltas if not d.valid]


def extract_delta_blocks(body: str) -> list[str]:
    blocks: list[str] = []
    for match in DELTA_BLOCK_RE.finditer(body or ""):
        content = (match.group(2) if match.group(2) is not None else match.group(4) or "").strip()
        if content:
            blocks.append(content)
    return blocks


def sanitize_json(text: str) -> str:
    """Drop ``//`` and ``/* */`` comments outside strings, then trailing commas."""
    cleaned = COMMENT_RE.sub(lambda m: m.group(1) if m.group(1) else "", text)
    return TRAILING_COMMA_RE.sub(r"\1", cleaned)


def _load(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return json.loads(sanitize_json(text))


def parse_delta_block(raw: str) -> ParsedDelta:
    try:
        data = _load(raw)
    except json.JSONDecodeError as exc:
        return ParsedDelta(raw=raw, error=f"Invalid JSON: {exc.msg}")
    if not isinstance(data, dict):
        return ParsedDelta(raw=raw, error="Delta is not an object")

    operation = data.get("operation")
    section = data.get("section")
    target_id = data.get("target_id")
    payload = data.get("payload")
    rationale = data.get("rationale") if isinstance(data.get("rationale"), str) else ""

    operation = LEGACY_OPERATIONS.get(operation, operation)
    if operation not in OPERATIONS:
        return ParsedDelta(raw=raw, error=f"Invalid operation: {data.get('operation')!r}")
    if section not in SECTIONS:
        return ParsedDelta(raw=raw, operation=operation, error=f"Invalid section: {section!r}")
    if payload is None and operation == "REMOVE":
        payload = {}
    if not isinstance(payload, dict):
        return ParsedDelta(raw=raw, operation=operation, section=section, error="payload must be an object")
    if target_id is not None and not isinstance(target_id, str):
        return ParsedDelta(raw=raw, operation=operation, section=section, error="target_id must be a string")

    payload = dict(payload)
    if operation == "ADD":
        if target_id is not None:
            return ParsedDelta(
                raw=raw, operation=operation, section=section, error="ADD must not carry a target_id"
            )
    else:
        payload_id = payload.get("id")
        if target_id and payload_id is not None and payload_id != target_id:
            return ParsedDelta(
                raw=raw,
                operation=operation,
                section=section,
                error=f"target_id {target_id!r} does not match payload id {payload_id!r}",
            )
        key = target_id or payload_id
        if not isinstance(key, str) or not key:
            return ParsedDelta(
                raw=raw, operation=operation, section=section, error=f"{operation} requires a target_id"
            )
        payload["id"] = key
        if operation == "REMOVE":
            payload = {"id": key, "reason": payload.get("reason")}

    return ParsedDelta(
        raw=raw,
        operation=operation,
        section=section,
        payload=payload,
        rationale=rationale,
    )


def parse_delta_message(body: str) -> ParseResult:
    """Parse every delta block in a reply; bad blocks are reported, not raised."""
    return ParseResult(deltas=[parse_delta_block(block) for block in extract_delta_blocks(body)])
