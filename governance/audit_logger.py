"""Structured JSONL audit log of ledger, compiler and session events."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from core.event_bus import EventBus

AUDITED_EVENTS = (
    "evidence_recorded",
    "artifacts_compiled",
    "session_dispatched",
    "resource_fallback",
)


class AuditLogger:
    """Appends one JSON line per audited event."""

    def __init__(self, log_path: Path, clock: Callable[[], datetime] | None = None) -> None:
        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.clock = clock or (lambda: datetime.now(UTC))
        self.logger = logging.getLogger("hl.audit")

    @staticmethod
    def _hash_payload(payload: dict[str, Any]) -> str:
        data = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(data).hexdigest()

    def log(self, event: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Append one JSONL audit event and return it."""
        record = {
            "timestamp": self.clock().isoformat(),
            "event": event,
            "payload": payload,
            "payload_hash": self._hash_payload(payload),
        }
        with self.log_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, ensure_ascii=True, default=str) + "\n")
        self.logger.info("%s %s", event, record["payload_hash"][:12])
        return record

    def attach(self, event_bus: EventBus, events: tuple[str, ...] = AUDITED_EVENTS) -> None:
        """Subscribe to ``events`` so every emission is written here."""
        for name in events:
            event_bus.subscribe(name, lambda payload, name=name: self.log(name, payload))

    def read(self) -> list[dict[str, Any]]:
        if not self.log_path.exists():
            return []
        with self.log_path.open("r", encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]
