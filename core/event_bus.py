"""Simple in-process event bus for decoupled event emission."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

EventHandler = Callable[[dict[str, Any]], None]


class EventBus:
    """Dispatches events to subscribers by event name.

    ``"*"`` subscribers receive every event with its name under ``"event"``.
    """

    def __init__(self, keep_history: bool = False) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self.keep_history = keep_history
        self.history: list[tuple[str, dict[str, Any]]] = []

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Register a callback for an event."""
        self._handlers[event_name].append(handler)

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Emit an event to all subscribers."""
        if self.keep_history:
            self.history.append((event_name, dict(payload)))
        for handler in self._handlers.get(event_name, []):
            handler(payload)
        for handler in self._handlers.get("*", []):
            handler({"event": event_name, **payload})

    def events(self, event_name: str) -> list[dict[str, Any]]:
        """Recorded payloads for one event name."""
        return [payload for name, payload in self.history if name == event_name]
