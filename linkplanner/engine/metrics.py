"""Run statistics."""

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .anchors import anchor_mix
from .corpus import PageGraph
from .types import Decision, LinkAction, StrategyReport


def build_stats(
    graph: PageGraph,
    attempts: Sequence[Decision],
    candidates: Sequence[Decision],
    reports: Sequence[StrategyReport],
    *,
    scoped_out: int,
    pages_processed: int,
    elapsed_seconds: float,
) -> Dict[str, object]:
    """Summarise a planning pass the way the run history shows it.

    Counters come from every resolver attempt; the anchor mix and the depth
    figures come from the admitted link additions only.
    """

    admitted = [decision for decision in attempts if decision.admitted]
    rejected = [decision for decision in attempts if not decision.admitted]
    by_reason = Counter(decision.rejection_reason for decision in rejected if decision.rejection_reason)

    additions = [decision for decision in admitted if decision.action == LinkAction.ADD.value]
    directives = [decision for decision in admitted if decision.action != LinkAction.ADD.value]
    exact, partial, generic = anchor_mix([decision.anchor_class or "generic" for decision in additions])

    new_edges = [
        decision.pair
        for decision in admitted
        if decision.action in (LinkAction.ADD.value, LinkAction.REPLACE.value)
    ]
    before = graph.depths_with()
    after = graph.depths_with(new_edges)
    avg_before = average_depth(before.values())
    avg_after = average_depth(after.values())

    strategies = {
        report.strategy: {"state": report.state, "raw_count": report.raw_count, "error": report.error}
        for report in reports
    }

    return {
        "added": len(additions),
        "added_by_strategy": strategy_counts(additions),
        "rejected": len(rejected),
        "rejected_by_reason": dict(sorted(by_reason.items())),
        "persisted": len(candidates),
        "pages_processed": pages_processed,
        "elapsed_seconds": round(elapsed_seconds, 3),
        "strategies": strategies,
        "skipped": sorted(report.strategy for report in reports if report.state == "skipped"),
        "scoped_out": scoped_out,
        "broken_directives": len(directives),
        "exact_percent": exact,
        "partial_percent": partial,
        "generic_percent": generic,
        "orphans_reduced": count_unreachable(before.values()) - count_unreachable(after.values()),
        "avg_depth_before": avg_before,
        "avg_depth_after": avg_after,
        "avg_depth_reduced": round(avg_before - avg_after, 2),
    }


def average_depth(depths: Iterable[Optional[int]]) -> float:
    """Mean click depth over reachable pages."""

    reachable: List[int] = [depth for depth in depths if depth is not None]
    if not reachable:
        return 0.0
    return round(sum(reachable) / len(reachable), 2)


def count_unreachable(depths: Iterable[Optional[int]]) -> int:
    return sum(1 for depth in depths if depth is None)


def strategy_counts(candidates: Sequence[Decision]) -> Mapping[str, int]:
    return dict(sorted(Counter(decision.strategy for decision in candidates).items()))
