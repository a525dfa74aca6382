"""Top-level application orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from artifacts.delta_compiler import CompilerSettings, DeltaCompiler
from artifacts.thread import DeltaThread
from cognition.belief_updater import ConfidenceUpdateConfig
from core.event_bus import EventBus
from core.policy_runtime import ensure_runtime_dirs, load_effective_config
from governance.audit_logger import AuditLogger
from memory.evidence_ledger import EvidenceLedger
from memory.hypothesis_store import HypothesisCardStore
from memory.research_repository import ResearchRepository
from memory.stores.sql_store import SQLStore
from protocol.kickoff import KickoffSession, SessionConfig
from protocol.resources import PromptResources
from protocol.roles import RoleRegistry


@dataclass
class RuntimeBundle:
    """Holds initialized runtime components."""

    config: dict[str, Any]
    confidence: ConfidenceUpdateConfig
    event_bus: EventBus
    audit: AuditLogger
    repository: ResearchRepository
    store: HypothesisCardStore
    ledger: EvidenceLedger
    compiler: DeltaCompiler
    roles: RoleRegistry
    resources: PromptResources

    def thread(self, thread_id: str) -> DeltaThread:
        """A delta thread preloaded with everything persisted for ``thread_id``."""
        thread = DeltaThread(thread_id, compiler=self.compiler)
        thread.restore(self.repository.load_deltas(thread_id))
        return thread

    def kickoff(self, session: SessionConfig) -> KickoffSession:
        return KickoffSession(session, self.roles, self.resources, event_bus=self.event_bus)

    def persist(self) -> None:
        self.repository.save_ledger(self.store, self.ledger)


class Orchestrator:
    """Creates and wires runtime components for CLI use."""

    def __init__(self, root: Path | None = None) -> None:
        default_root = Path(__file__).resolve().parents[1]
        self.root = (root or default_root).resolve()

    def build(self, config_root: Path | None = None) -> RuntimeBundle:
        config = load_effective_config(config_root or self.root)
        paths = ensure_runtime_dirs(self.root, config)

        confidence = ConfidenceUpdateConfig.from_mapping(config.get("confidence"))
        event_bus = EventBus()
        audit = AuditLogger(paths["audit_log_path"])
        audit.attach(event_bus)

        sql_store = SQLStore(paths["db_path"])
        repository = ResearchRepository(sql_store=sql_store)
        store, ledger = repository.load_ledger(config=confidence, event_bus=event_bus)
        store.default_seed = int(config.get("confidence", {}).get("seed", 50))
        ledger.default_session = str(config.get("ledger", {}).get("default_session", "S"))

        return RuntimeBundle(
            config=config,
            confidence=confidence,
            event_bus=event_bus,
            audit=audit,
            repository=repository,
            store=store,
            ledger=ledger,
            compiler=DeltaCompiler(CompilerSettings.from_mapping(config.get("compiler"))),
            roles=RoleRegistry.from_mapping(config.get("roles")),
            resources=PromptResources.from_config(config),
        )
