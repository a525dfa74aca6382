"""Exception hierarchy shared by the ledger, compiler and session protocol."""

from __future__ import annotations

from typing import Any


class HypothesisLedgerError(Exception):
    """Base class for all domain errors."""


class DomainValidationError(HypothesisLedgerError, ValueError):
    """Malformed input rejected before any state change."""


class InvalidConfidenceInput(DomainValidationError):
    """Confidence or discriminative power outside its accepted range."""


class DeltaValidationError(DomainValidationError):
    """A delta whose envelope or payload does not match its section schema."""

    def __init__(
        self,
        message: str,
        section: str | None = None,
        delta_id: str | None = None,
        sequence: int | None = None,
    ) -> None:
        self.section = section
        self.delta_id = delta_id
        self.sequence = sequence
        super().__init__(f"{message} (section={section}, delta={delta_id}, sequence={sequence})")


class SectionLimitError(DeltaValidationError):
    """ADD would push a section past its configured live-entry limit."""


class RosterError(DomainValidationError):
    """Roster entries are empty, duplicated or name an unknown role."""


class RosterCoverageError(RosterError):
    """An explicit roster does not cover every recipient."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing recipient role mapping for: {', '.join(self.missing)}")


class ConsistencyError(HypothesisLedgerError):
    """Operation would break the audit trail and was aborted."""


class UnknownHypothesisError(ConsistencyError, KeyError):
    """No hypothesis card exists for the requested version id."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unknown hypothesis"


class StalePriorError(ConsistencyError):
    """Caller's expected prior differs from the card's current confidence."""

    def __init__(self, hypothesis_id: str, expected: int, actual: int) -> None:
        self.hypothesis_id = hypothesis_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Stale prior for {hypothesis_id}: expected {expected}, current confidence is {actual}"
        )


class LedgerChainError(ConsistencyError):
    """Evidence entries do not form an unbroken confidence chain."""


class UnknownTargetError(ConsistencyError):
    """UPDATE targets a key absent from the artifact."""

    def __init__(self, section: str, key: str, delta_id: str | None = None) -> None:
        self.section = section
        self.key = key
        self.delta_id = delta_id
        super().__init__(f"No entry {key!r} in {section} (delta={delta_id})")


class DuplicateKeyError(ConsistencyError):
    """ADD targets a key that is live or retired in the artifact."""

    def __init__(self, section: str, key: str, delta_id: str | None = None) -> None:
        self.section = section
        self.key = key
        self.delta_id = delta_id
        super().__init__(f"Key {key!r} already used in {section} (delta={delta_id})")


class SequenceOrderError(ConsistencyError):
    """Delta sequence numbers are duplicated or do not advance."""


class ProtocolStateError(HypothesisLedgerError):
    """Session step invoked from the wrong state."""

    def __init__(self, current: Any, attempted: str) -> None:
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} from state {current}")
