"""Constraint and conflict resolution for raw candidates.

The resolver is the only stateful stage of a run. Candidates are scoped,
grouped by source page and admitted greedily in priority order. Each source
page has one :class:`PageAccumulator` that owns its budget, anchor
occurrences and exact-anchor ratio, so every invariant can be checked
against a single object.
"""

from __future__ import annotations

import logging
import random
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .anchors import classify_anchor
from .corpus import PageGraph
from .errors import EmptyScopeError
from .progress import PAGE_RESOLVED, RESOLVED, ProgressEvent, ProgressStream
from .runs import RunControl
from .text import Occurrence, WordIndex, normalize_phrase
from .types import (
    AnchorClass,
    CandidateStatus,
    Decision,
    GlobalSettings,
    LinkAction,
    Page,
    PriorLink,
    RawCandidate,
    RejectionReason,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WORDS = 8


@dataclass(frozen=True)
class ResolveOutcome:
    attempts: Tuple[Decision, ...]
    candidates: Tuple[Decision, ...]
    scoped_out: int
    pages_processed: int


def canonical_key(candidate: RawCandidate) -> tuple:
    """Total order over raw candidates, independent of generator output order."""

    return (
        candidate.source_url,
        candidate.strategy,
        candidate.target_url,
        -candidate.strategy_weight,
        candidate.anchor_text,
        candidate.action,
        candidate.previous_url or "",
    )


def scope_filter(
    pool: Sequence[RawCandidate],
    graph: PageGraph,
    settings: GlobalSettings,
    seed: int,
) -> Tuple[List[RawCandidate], int]:
    """Apply the run scope once, before grouping.

    Returns the surviving candidates and how many were dropped.
    """

    pattern = re.compile(settings.url_pattern) if settings.url_pattern else None
    kept: List[RawCandidate] = []
    for candidate in sorted(pool, key=canonical_key):
        if candidate.source_url not in graph:
            continue
        if pattern is not None and not pattern.search(candidate.source_url):
            continue
        if settings.newer_than is not None:
            published = graph.page(candidate.source_url).publish_date
            if published is None or published < settings.newer_than:
                continue
        kept.append(candidate)

    if settings.random_sample < 100 and kept:
        rng = random.Random(seed)
        keep_count = round(len(kept) * settings.random_sample / 100)
        chosen = sorted(rng.sample(range(len(kept)), keep_count))
        kept = [kept[index] for index in chosen]

    return kept, len(pool) - len(kept)


def order_candidates(candidates: Sequence[RawCandidate], settings: GlobalSettings) -> List[RawCandidate]:
    """Priority index, then weight descending, then target and anchor ascending."""

    return sorted(
        candidates,
        key=lambda item: (
            settings.priority_index(item.strategy),
            -item.strategy_weight,
            item.target_url,
            item.anchor_text,
        ),
    )


class PageAccumulator:
    """Admission state for a single source page."""

    def __init__(
        self,
        page: Page,
        settings: GlobalSettings,
        *,
        context_words: int = DEFAULT_CONTEXT_WORDS,
    ) -> None:
        self.page = page
        self.settings = settings
        self.context_words = context_words
        self.index = WordIndex(page.content)
        self.accepted_count = 0
        self.used_anchors: set[str] = set()
        self.exact_count = 0
        self.total_count = 0
        self.offsets: List[int] = []
        self.admitted_targets: set[str] = set()
        self._used_spans: List[Tuple[int, int]] = []

    def locate(self, anchor: str) -> Optional[Occurrence]:
        """First occurrence of ``anchor`` not already claimed by a link."""

        for occurrence in self.index.occurrences(anchor):
            if not self._overlaps(occurrence.first_word, occurrence.last_word):
                return occurrence
        return None

    def seed(self, prior: PriorLink, target: Optional[Page]) -> None:
        """Pre-commit a link approved in an earlier run."""

        self.admitted_targets.add(prior.target_url)
        self.accepted_count += 1
        self.total_count += 1
        if target is not None and classify_anchor(prior.anchor_text, target) is AnchorClass.EXACT:
            self.exact_count += 1
        self.used_anchors.add(normalize_phrase(prior.anchor_text))

        if prior.position is not None:
            length = max(len(prior.anchor_text.split()), 1)
            self._commit_span(prior.position, prior.position + length - 1)
            return
        occurrence = self.locate(prior.anchor_text)
        if occurrence is not None:
            self._commit_span(occurrence.first_word, occurrence.last_word)

    def evaluate(self, candidate: RawCandidate, target: Optional[Page]) -> Decision:
        """Run the admission checks in their fixed order and record the verdict."""

        if candidate.action != LinkAction.ADD.value:
            return self._evaluate_directive(candidate)

        settings = self.settings
        if candidate.target_url in self.admitted_targets:
            return self._reject(candidate, RejectionReason.DUPLICATE)

        anchor_key = normalize_phrase(candidate.anchor_text)
        if anchor_key in settings.stop_anchors:
            return self._reject(candidate, RejectionReason.STOP_ANCHOR)

        occurrence = self.locate(candidate.anchor_text)
        if occurrence is None:
            return self._reject(candidate, RejectionReason.ANCHOR_NOT_FOUND)

        offset = occurrence.first_word
        if settings.min_gap and any(abs(offset - committed) < settings.min_gap for committed in self.offsets):
            return self._reject(candidate, RejectionReason.MIN_GAP, occurrence)

        anchor_class = classify_anchor(candidate.anchor_text, target) if target is not None else AnchorClass.GENERIC
        if anchor_class is AnchorClass.EXACT and self._exact_would_exceed():
            return self._reject(candidate, RejectionReason.EXACT_EXCEED, occurrence, anchor_class)

        if self.accepted_count >= settings.max_links_per_page:
            return self._reject(candidate, RejectionReason.LIMIT_REACHED, occurrence, anchor_class)

        self.accepted_count += 1
        self.total_count += 1
        if anchor_class is AnchorClass.EXACT:
            self.exact_count += 1
        self.used_anchors.add(anchor_key)
        self.admitted_targets.add(candidate.target_url)
        self._commit_span(occurrence.first_word, occurrence.last_word)
        return self._decision(candidate, CandidateStatus.PENDING, None, occurrence, anchor_class)

    def _evaluate_directive(self, candidate: RawCandidate) -> Decision:
        # Directives rework existing links; they do not spend the page budget.
        if candidate.target_url in self.admitted_targets:
            return self._reject(candidate, RejectionReason.DUPLICATE)
        self.admitted_targets.add(candidate.target_url)
        occurrence = self.locate(candidate.anchor_text)
        return self._decision(candidate, CandidateStatus.PENDING, None, occurrence, None)

    def _exact_would_exceed(self) -> bool:
        percent = self.settings.exact_anchor_percent
        if percent == 0:
            return True
        return self.exact_count * 100 > percent * (self.total_count + 1)

    def _overlaps(self, first: int, last: int) -> bool:
        return any(first <= used_last and used_first <= last for used_first, used_last in self._used_spans)

    def _commit_span(self, first: int, last: int) -> None:
        self._used_spans.append((first, last))
        self.offsets.append(first)

    def _reject(
        self,
        candidate: RawCandidate,
        reason: RejectionReason,
        occurrence: Optional[Occurrence] = None,
        anchor_class: Optional[AnchorClass] = None,
    ) -> Decision:
        return self._decision(candidate, CandidateStatus.REJECTED, reason, occurrence, anchor_class)

    def _decision(
        self,
        candidate: RawCandidate,
        status: CandidateStatus,
        reason: Optional[RejectionReason],
        occurrence: Optional[Occurrence],
        anchor_class: Optional[AnchorClass],
    ) -> Decision:
        before = after = ""
        if occurrence is not None:
            before, after = self.index.context(occurrence, self.context_words)
        return Decision(
            source_url=candidate.source_url,
            target_url=candidate.target_url,
            anchor=candidate.anchor_text,
            strategy=candidate.strategy,
            status=status.value,
            rejection_reason=reason.value if reason else None,
            position=occurrence.first_word if occurrence else None,
            anchor_class=anchor_class.value if anchor_class else None,
            action=candidate.action,
            previous_url=candidate.previous_url,
            before_text=before,
            after_text=after,
        )


def resolve_page(
    page: Page,
    candidates: Sequence[RawCandidate],
    graph: PageGraph,
    settings: GlobalSettings,
    *,
    seeds: Sequence[PriorLink] = (),
    context_words: int = DEFAULT_CONTEXT_WORDS,
) -> List[Decision]:
    """Admit one source page's candidates in priority order."""

    accumulator = PageAccumulator(page, settings, context_words=context_words)
    for prior in seeds:
        target = graph.pages.get(prior.target_url)
        accumulator.seed(prior, target)

    decisions = []
    for candidate in order_candidates(candidates, settings):
        decisions.append(accumulator.evaluate(candidate, graph.pages.get(candidate.target_url)))
    return decisions


def collapse_pairs(decisions: Sequence[Decision]) -> List[Decision]:
    """One decision per ``(source, target)``: the admitted one, else the first."""

    chosen: Dict[Tuple[str, str], Decision] = {}
    order: List[Tuple[str, str]] = []
    for decision in decisions:
        current = chosen.get(decision.pair)
        if current is None:
            chosen[decision.pair] = decision
            order.append(decision.pair)
        elif decision.admitted and not current.admitted:
            chosen[decision.pair] = decision
    return [chosen[pair] for pair in order]


def resolve(
    pool: Sequence[RawCandidate],
    graph: PageGraph,
    settings: GlobalSettings,
    *,
    seed: int,
    seeds: Mapping[str, Sequence[PriorLink]] | None = None,
    stream: ProgressStream | None = None,
    control: RunControl | None = None,
    workers: int = 4,
    context_words: int = DEFAULT_CONTEXT_WORDS,
) -> ResolveOutcome:
    """Scope, group and admit the merged generator output.

    Raises
    ------
    EmptyScopeError
        When no candidate survives the scope filters.
    """

    kept, scoped_out = scope_filter(pool, graph, settings, seed)
    if not kept:
        raise EmptyScopeError("no candidates left after scope filters")

    groups: Dict[str, List[RawCandidate]] = {}
    for candidate in kept:
        groups.setdefault(candidate.source_url, []).append(candidate)

    seeds = seeds or {}
    sources = sorted(groups)
    results: Dict[str, List[Decision]] = {}
    with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="resolver") as executor:
        futures = {
            executor.submit(
                resolve_page,
                graph.page(source),
                groups[source],
                graph,
                settings,
                seeds=tuple(seeds.get(source, ())),
                context_words=context_words,
            ): source
            for source in sources
        }
        try:
            for future in as_completed(futures):
                results[futures[future]] = future.result()
                if stream is not None:
                    stream.emit(
                        ProgressEvent(kind=PAGE_RESOLVED, pages_done=len(results), pages_total=len(sources))
                    )
                if control is not None:
                    control.check()
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    attempts: List[Decision] = []
    candidates: List[Decision] = []
    for source in sources:
        attempts.extend(results[source])
        candidates.extend(collapse_pairs(results[source]))

    if stream is not None:
        stream.emit(ProgressEvent(kind=RESOLVED, pages_done=len(sources), pages_total=len(sources)))
    logger.info(
        "resolved %d candidates over %d pages (%d scoped out)", len(attempts), len(sources), scoped_out
    )
    return ResolveOutcome(
        attempts=tuple(attempts),
        candidates=tuple(candidates),
        scoped_out=scoped_out,
        pages_processed=len(sources),
    )
