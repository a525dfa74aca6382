"""Operator catalog: static reasoning moves looked up by tag, symbol or title."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any


def normalize_title(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", value.lower())


@dataclass(frozen=True)
class OperatorCard:
    symbol: str
    title: str
    canonical_tag: str
    definition: str
    triggers: tuple[str, ...] = ()
    failure_modes: tuple[str, ...] = ()
    transcript_anchors: str = ""

    @property
    def label(self) -> str:
        return f"{self.symbol} {self.title}"

    def to_markdown(self) -> str:
        lines = [f"### {self.symbol} {self.title} ({self.canonical_tag})", "", f"**Definition**: {self.definition}", ""]
        if self.triggers:
            lines.append("**When-to-use triggers**:")
            lines.extend(f"- {item}" for item in self.triggers[:3])
            lines.append("")
        if self.failure_modes:
            lines.append("**Failure modes**:")
            lines.extend(f"- {item}" for item in self.failure_modes[:3])
            lines.append("")
        lines.append(f"**Transcript anchors**: {self.transcript_anchors or '-'}")
        return "\n".join(lines)


class OperatorCatalog:
    """Read-only lookup over operator cards."""

    def __init__(self, cards: list[OperatorCard]) -> None:
        self._cards = tuple(cards)
        self._by_tag = {card.canonical_tag.lower(): card for card in cards}
        self._by_symbol = {card.symbol: card for card in cards}
        self._by_title = {normalize_title(card.title): card for card in cards}

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> OperatorCatalog:
        cards = []
        for item in (data or {}).get("operators", []):
            cards.append(
                OperatorCard(
                    symbol=str(item["symbol"]),
                    title=str(item["title"]),
                    canonical_tag=str(item.get("canonical_tag") or normalize_title(item["title"])),
                    definition=str(item.get("definition", "")).strip(),
                    triggers=tuple(item.get("triggers", [])),
                    failure_modes=tuple(item.get("failure_modes", [])),
                    transcript_anchors=str(item.get("transcript_anchors", "")),
                )
            )
        return cls(cards)

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self):
        return iter(self._cards)

    def get(self, canonical_tag: str) -> OperatorCard | None:
        return self._by_tag.get(canonical_tag.lower())

    def resolve(self, query: str) -> OperatorCard | None:
        """Match by canonical tag, then symbol, then normalized title.

        Labels such as ``"⊘ Level-Split"`` resolve through their symbol.
        """
        text = query.strip()
        if not text:
            return None
        card = self._by_tag.get(text.lower())
        if card:
            return card
        head, _, rest = text.partition(" ")
        card = self._by_symbol.get(text) or self._by_symbol.get(head)
        if card:
            return card
        return self._by_title.get(normalize_title(text)) or self._by_title.get(normalize_title(rest))
