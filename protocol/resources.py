"""Shared prompt resources, loaded once and passed in."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from protocol.operators import OperatorCard, OperatorCatalog


@dataclass(frozen=True)
class Lookup:
    """Result of a resource lookup; ``value`` is ``None`` when missing."""

    resource: str
    value: str | None = None
    detail: str = ""

    @property
    def found(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class OperatorLookup:
    cards: tuple[OperatorCard, ...] = ()
    missing: tuple[str, ...] = ()
    catalog_available: bool = True


@dataclass(frozen=True)
class PromptResources:
    """Kernel text, role instruction texts and the operator catalog.

    Any of them may be absent; lookups report that instead of raising.
    """

    kernel: str | None = None
    role_texts: dict[str, str] = field(default_factory=dict)
    catalog: OperatorCatalog | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> PromptResources:
        """Build from the merged runtime config (``prompts`` and ``operators`` blocks)."""
        prompts = config.get("prompts") or {}
        kernel = prompts.get("kernel")
        operators = config.get("operators") or {}
        catalog = OperatorCatalog.from_mapping(operators) if operators.get("operators") else None
        return cls(
            kernel=kernel.strip() if isinstance(kernel, str) and kernel.strip() else None,
            role_texts={
                str(role): str(text).strip()
                for role, text in (prompts.get("role_prompts") or {}).items()
                if text and str(text).strip()
            },
            catalog=catalog,
        )

    def kernel_text(self) -> Lookup:
        if self.kernel:
            return Lookup(resource="kernel", value=self.kernel)
        return Lookup(resource="kernel", detail="No shared kernel text configured")

    def role_text(self, role: str) -> Lookup:
        text = self.role_texts.get(role)
        if text:
            return Lookup(resource=f"role_prompt:{role}", value=text)
        return Lookup(resource=f"role_prompt:{role}", detail=f"No role prompt configured for {role}")

    def operator_cards(self, queries: list[str] | tuple[str, ...]) -> OperatorLookup:
        if self.catalog is None:
            return OperatorLookup(missing=tuple(queries), catalog_available=False)
        cards: list[OperatorCard] = []
        missing: list[str] = []
        for query in queries:
            card = self.catalog.resolve(query)
            if card is None:
                missing.append(query)
            elif card not in cards:
                cards.append(card)
        return OperatorLookup(cards=tuple(cards), missing=tuple(missing))
