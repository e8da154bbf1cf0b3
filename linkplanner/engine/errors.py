"""Exception hierarchy raised by the planning engine and review ledger."""

from __future__ import annotations

from typing import Dict, Mapping


class EngineError(Exception):
    """Base class for all engine errors."""

    code = "engine_error"


class ValidationError(EngineError):
    """Settings or task configuration rejected before a run is created."""

    code = "validation"

    def __init__(self, errors: Mapping[str, str] | str) -> None:
        if isinstance(errors, str):
            errors = {"__all__": errors}
        self.errors: Dict[str, str] = dict(errors)
        detail = "; ".join(f"{key}: {value}" for key, value in sorted(self.errors.items()))
        super().__init__(detail or "invalid configuration")


class CorpusEmptyError(EngineError):
    """The project does not hold enough pages to plan links."""

    code = "corpus_empty"


class EmptyScopeError(EngineError):
    """No candidate survived the scope filters."""

    code = "empty_scope"


class ConcurrentRunError(EngineError):
    """Another run of the same project is already running."""

    code = "concurrent_run"


class InvalidTransitionError(EngineError):
    """A run lifecycle transition that the state machine does not allow."""

    code = "invalid_transition"

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"cannot move run from {current!r} to {target!r}")


class RunTimeoutError(EngineError):
    code = "timeout"


class RunCancelledError(EngineError):
    code = "cancelled"


class ReviewIncompleteError(EngineError):
    """Publishing was attempted while candidates are still pending."""

    code = "review_incomplete"

    def __init__(self, pending: int) -> None:
        self.pending = pending
        super().__init__(f"{pending} candidate(s) still pending review")


class ReviewClosedError(EngineError):
    """The run is not in a state that accepts review decisions."""

    code = "review_closed"


class StaleCandidateError(EngineError):
    """The candidate row changed since it was read."""

    code = "stale_candidate"
