"""Run lifecycle state machine."""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional

from .errors import InvalidTransitionError, RunCancelledError, RunTimeoutError


class RunStatus(str, Enum):
    DRAFT = "draft"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PUBLISHED = "published"


TRANSITIONS: Dict[RunStatus, FrozenSet[RunStatus]] = {
    RunStatus.DRAFT: frozenset({RunStatus.RUNNING}),
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.COMPLETED: frozenset({RunStatus.PUBLISHED}),
    RunStatus.FAILED: frozenset(),
    RunStatus.PUBLISHED: frozenset(),
}

TERMINAL = frozenset({RunStatus.FAILED, RunStatus.PUBLISHED})


def can_transition(current: str, target: str) -> bool:
    return RunStatus(target) in TRANSITIONS[RunStatus(current)]


def transition(current: str, target: str) -> Optional[RunStatus]:
    """Validate a lifecycle move and return the new status.

    Returns ``None`` for the idempotent ``published → published`` case so
    callers can skip the write.
    """

    current_status = RunStatus(current)
    target_status = RunStatus(target)
    if current_status is RunStatus.PUBLISHED and target_status is RunStatus.PUBLISHED:
        return None
    if target_status not in TRANSITIONS[current_status]:
        raise InvalidTransitionError(current_status.value, target_status.value)
    return target_status


class RunControl:
    """Cooperative timeout and cancellation checks for an in-flight run."""

    def __init__(
        self,
        *,
        timeout: float | None = None,
        is_cancelled: Callable[[], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self.started = clock()
        self.deadline = self.started + timeout if timeout else None
        self._is_cancelled = is_cancelled

    def elapsed(self) -> float:
        return self._clock() - self.started

    def check(self) -> None:
        if self._is_cancelled is not None and self._is_cancelled():
            raise RunCancelledError("run was cancelled")
        if self.deadline is not None and self._clock() > self.deadline:
            raise RunTimeoutError(f"run exceeded {self.deadline - self.started:.0f}s")
