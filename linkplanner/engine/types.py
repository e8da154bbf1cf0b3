"""Typed data structures used by the link planning engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import FrozenSet, Optional, Tuple


class Strategy(str, Enum):
    """Closed set of candidate generation strategies."""

    HUBS = "hubs"
    COMMERCE = "commerce"
    SIMILAR = "similar"
    DEEP = "deep"
    FRESH = "fresh"
    ORPHANS = "orphans"
    BROKEN = "broken"
    REGENERATE = "regenerate"


class CandidateStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RejectionReason(str, Enum):
    """Reasons recorded on rejected candidates.

    The first six are resolver decisions, evaluated in declaration order.
    ``MANUAL`` marks a human rejection made during review.
    """

    DUPLICATE = "duplicate"
    STOP_ANCHOR = "stop_anchor"
    ANCHOR_NOT_FOUND = "anchor_not_found"
    MIN_GAP = "min_gap"
    EXACT_EXCEED = "exact_exceed"
    LIMIT_REACHED = "limit_reached"
    MANUAL = "manual"


class AnchorClass(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    GENERIC = "generic"


class LinkAction(str, Enum):
    """What a candidate asks the publisher to do with the source page."""

    ADD = "add"
    DELETE = "delete"
    REPLACE = "replace"


@dataclass(frozen=True)
class Page:
    """Normalized page representation for the planning engine.

    ``depth`` is ``None`` when the page cannot be reached from any root.
    """

    url: str
    title: str
    content: str
    depth: Optional[int]
    is_orphan: bool
    publish_date: Optional[date]
    language: str
    meta_title: str = ""
    keywords: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ExistingLink:
    """A link already present in a page's content."""

    source_url: str
    target_url: str
    anchor_text: str


@dataclass(frozen=True)
class PriorLink:
    """An edge approved in an earlier run of the same project."""

    source_url: str
    target_url: str
    anchor_text: str
    position: Optional[int] = None


@dataclass(frozen=True)
class GlobalSettings:
    """Immutable snapshot of the project-wide parameters taken at launch."""

    max_links_per_page: int = 3
    priorities: Tuple[str, ...] = ("hubs", "commerce", "similar", "deep", "fresh", "orphans")
    min_gap: int = 200
    exact_anchor_percent: int = 20
    old_links_action: str = "enrich"
    broken_links_action: str = "delete"
    html_class: str = "internal-link"
    link_mode: str = "append"
    stop_anchors: FrozenSet[str] = frozenset({"click here", "read more", "learn more"})
    rel_attributes: FrozenSet[str] = frozenset()
    target_blank: bool = False
    url_pattern: Optional[str] = None
    newer_than: Optional[date] = None
    random_sample: int = 100

    def priority_index(self, strategy: str) -> int:
        try:
            return self.priorities.index(strategy)
        except ValueError:
            return len(self.priorities)


@dataclass(frozen=True)
class RawCandidate:
    """Edge proposed by a generator before constraint resolution."""

    source_url: str
    target_url: str
    anchor_text: str
    strategy: str
    strategy_weight: float = 0.0
    action: str = LinkAction.ADD.value
    previous_url: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    """Resolver verdict for one raw candidate."""

    source_url: str
    target_url: str
    anchor: str
    strategy: str
    status: str
    rejection_reason: Optional[str] = None
    position: Optional[int] = None
    anchor_class: Optional[str] = None
    action: str = LinkAction.ADD.value
    previous_url: Optional[str] = None
    before_text: str = ""
    after_text: str = ""

    @property
    def admitted(self) -> bool:
        return self.status == CandidateStatus.PENDING.value

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.source_url, self.target_url)


@dataclass(frozen=True)
class StrategyReport:
    """Outcome of a single generator within a run."""

    strategy: str
    state: str
    raw_count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class PlanResult:
    """Everything a planning pass produces for persistence."""

    candidates: Tuple[Decision, ...]
    attempts: Tuple[Decision, ...]
    stats: dict = field(default_factory=dict)
