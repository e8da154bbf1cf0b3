"""Progress events published while a run generates and resolves links."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

STRATEGY_DONE = "strategy_done"
STRATEGY_SKIPPED = "strategy_skipped"
PAGE_RESOLVED = "page_resolved"
RESOLVED = "resolved"


@dataclass(frozen=True)
class ProgressEvent:
    kind: str
    strategy: Optional[str] = None
    raw_count: int = 0
    pages_done: int = 0
    pages_total: int = 0
    detail: str = ""


Listener = Callable[[ProgressEvent], None]


class ProgressStream:
    """Fan-out of progress events to subscribed listeners.

    Events are emitted from the thread driving the pipeline, so listeners
    never run concurrently with each other.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: ProgressEvent) -> None:
        logger.debug("progress %s", event)
        for listener in list(self._listeners):
            listener(event)


class ProgressSnapshot:
    """Listener that folds events into a JSON-friendly summary."""

    def __init__(self) -> None:
        self.strategies: dict[str, str] = {}
        self.pages_done = 0
        self.pages_total = 0

    def __call__(self, event: ProgressEvent) -> None:
        if event.kind == STRATEGY_DONE and event.strategy:
            self.strategies[event.strategy] = "done"
        elif event.kind == STRATEGY_SKIPPED and event.strategy:
            self.strategies[event.strategy] = "skipped"
        elif event.kind in (PAGE_RESOLVED, RESOLVED):
            self.pages_done = event.pages_done
            self.pages_total = event.pages_total

    def as_dict(self) -> dict:
        return {
            "strategies": dict(self.strategies),
            "pages_done": self.pages_done,
            "pages_total": self.pages_total,
        }
