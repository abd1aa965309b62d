"""Outbound notification that inventory changed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class InventoryChanged:
    kitchen_id: str
    quantity: float
    supply_id: str | None = None
    recipe_id: str | None = None
    timestamp: str = field(default_factory=_now)  # ISO8601


Listener = Callable[[InventoryChanged], None]


class InventoryEvents:
    """Fire-and-forget broadcast to screens that need to refresh.

    Listeners are called synchronously in subscription order; a failing
    listener is logged and does not affect the others or the emitter.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: InventoryChanged) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Inventory listener %r failed", listener)
