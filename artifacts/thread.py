"""Per-session delta thread: arrival order is the only ordering."""

from __future__ import annotations

import logging
import threading
from typing import Any

from artifacts.delta import Delta, coerce_delta, validate_payload
from artifacts.delta_compiler import CompileResult, DeltaCompiler, empty_artifacts
from artifacts.parser import ParsedDelta, parse_delta_message
from core.errors import HypothesisLedgerError, SequenceOrderError

logger = logging.getLogger("hl.thread")


class DeltaThread:
    """Accepts deltas for one session and stamps each with the next sequence.

    Each delta is applied to the thread's current artifacts on arrival; one
    that is malformed or cannot be applied is refused and does not consume a
    sequence number. Accepted deltas are immutable.
    """

    def __init__(self, thread_id: str, compiler: DeltaCompiler | None = None) -> None:
        self.thread_id = thread_id
        self.compiler = compiler or DeltaCompiler()
        self._deltas: list[Delta] = []
        self._counters: dict[str, int] = {}
        self._artifacts = empty_artifacts()
        self._lock = threading.Lock()

    @property
    def deltas(self) -> list[Delta]:
        with self._lock:
            return list(self._deltas)

    @property
    def next_sequence(self) -> int:
        with self._lock:
            return self._deltas[-1].sequence + 1 if self._deltas else 1

    def submit(
        self,
        role: str,
        section: str,
        operation: str,
        payload: dict[str, Any],
        author: str | None = None,
        rationale: str = "",
        delta_id: str | None = None,
    ) -> Delta:
        """Validate, dry-run against the current artifacts and append one delta."""
        with self._lock:
            sequence = self._deltas[-1].sequence + 1 if self._deltas else 1
            tag = (author or role).strip().lower().replace(" ", "-")
            count = self._counters.get(tag, 0) + 1
            delta = coerce_delta(
                {
                    "id": delta_id or f"{self.thread_id}:{tag}:{count}",
                    "role": role,
                    "section": section,
                    "operation": operation,
                    "payload": dict(payload),
                    "sequence": sequence,
                    "author": author,
                    "rationale": rationale,
                }
            )
            validate_payload(delta)
            updated = self.compiler.apply_delta(self._artifacts[delta.section], delta)
            self._counters[tag] = count
            self._deltas.append(delta)
            self._artifacts[delta.section] = updated
        logger.debug("Accepted %s as sequence %d", delta.id, delta.sequence)
        return delta

    def submit_message(
        self, body: str, role: str, author: str | None = None
    ) -> tuple[list[Delta], list[ParsedDelta]]:
        """Accept every usable delta block in an agent reply.

        Returns the accepted deltas and the blocks that were refused, with
        refusal reasons filled in.
        """
        accepted: list[Delta] = []
        refused: list[ParsedDelta] = []
        for parsed in parse_delta_message(body).deltas:
            if not parsed.valid:
                refused.append(parsed)
                continue
            try:
                accepted.append(
                    self.submit(
                        role=role,
                        section=parsed.section or "",
                        operation=parsed.operation or "",
                        payload=parsed.payload,
                        author=author,
                        rationale=parsed.rationale,
                    )
                )
            except HypothesisLedgerError as exc:
                refused.append(
                    ParsedDelta(
                        raw=parsed.raw,
                        operation=parsed.operation,
                        section=parsed.section,
                        payload=parsed.payload,
                        rationale=parsed.rationale,
                        error=str(exc),
                    )
                )
        if refused:
            logger.warning("Refused %d delta blocks from %s", len(refused), author or role)
        return accepted, refused

    def restore(self, deltas: list[Delta]) -> None:
        """Reload persisted deltas into an empty thread.

        The history must compile strictly; otherwise the thread stays empty.
        """
        with self._lock:
            if self._deltas:
                raise SequenceOrderError(f"Thread {self.thread_id} already holds deltas")
            last = 0
            for delta in sorted(deltas, key=lambda d: d.sequence):
                if delta.sequence <= last:
                    raise SequenceOrderError(f"Duplicate sequence {delta.sequence} in {self.thread_id}")
                validate_payload(delta)
                last = delta.sequence
            result = self.compiler.compile(deltas, strict=True)
            self._artifacts = result.artifacts
            self._deltas = sorted(deltas, key=lambda d: d.sequence)
            for delta in self._deltas:
                tag = (delta.author or delta.role).strip().lower().replace(" ", "-")
                self._counters[tag] = self._counters.get(tag, 0) + 1

    def compile(self, strict: bool = True) -> CompileResult:
        return self.compiler.compile(self.deltas, strict=strict)
