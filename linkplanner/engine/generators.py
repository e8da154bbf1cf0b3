"""Candidate generation strategies.

Each strategy is a pure function ``generate(context, config)`` returning raw
candidates. The set of strategies is closed; :data:`GENERATORS` maps every
:class:`~linkplanner.engine.types.Strategy` to its function.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from . import anchors as anchors_module
from .config import (
    BrokenConfig,
    CommerceConfig,
    DeepConfig,
    FreshConfig,
    HubsConfig,
    OrphansConfig,
    RegenerateConfig,
    SimilarConfig,
    TaskConfig,
)
from .corpus import PageGraph, path_segments, url_path
from .progress import STRATEGY_DONE, STRATEGY_SKIPPED, ProgressEvent, ProgressStream
from .runs import RunControl
from .text import cosine_similarity, shared_prefix_length, term_frequencies, tokenize
from .types import GlobalSettings, LinkAction, Page, PriorLink, RawCandidate, Strategy, StrategyReport

logger = logging.getLogger(__name__)

Similarity = Callable[[Page, Page], float]

DONOR_MAX_DEPTH = 3


@lru_cache(maxsize=4096)
def _page_terms(page: Page):
    # Titles count twice: they describe the page better than body text.
    return term_frequencies(tokenize(page.title) * 2 + tokenize(page.content))


@lru_cache(maxsize=4096)
def _anchor_variants(page: Page, max_tokens: int) -> Tuple[str, ...]:
    return tuple(anchors_module.anchor_variants(page, max_tokens))


def token_similarity(a: Page, b: Page) -> float:
    """Default similarity: cosine over title and content term frequencies."""

    return cosine_similarity(_page_terms(a), _page_terms(b))


@dataclass(frozen=True)
class GenerationContext:
    """Read-only inputs shared by every generator in a run."""

    graph: PageGraph
    settings: GlobalSettings
    today: date
    similarity: Similarity = token_similarity
    prior_links: Tuple[PriorLink, ...] = ()
    anchor_max_tokens: int = anchors_module.DEFAULT_MAX_TOKENS
    alternate_weight_step: float = 0.01

    def anchors_for(self, target: Page) -> Tuple[str, ...]:
        return _anchor_variants(target, self.anchor_max_tokens)

    def eligible(self, source: str, target: str) -> bool:
        return source != target and not self.graph.links_to(source, target)


def edge_candidates(
    context: GenerationContext,
    source: str,
    target: str,
    strategy: Strategy,
    weight: float,
) -> List[RawCandidate]:
    """Raw candidates for one edge: the default anchor plus its alternates."""

    page = context.graph.page(target)
    return [
        RawCandidate(
            source_url=source,
            target_url=target,
            anchor_text=anchor,
            strategy=strategy.value,
            strategy_weight=round(weight - index * context.alternate_weight_step, 6),
        )
        for index, anchor in enumerate(context.anchors_for(page))
    ]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def section_prefix(url: str, restrict: bool) -> Optional[str]:
    """The directory a page belongs to, or ``None`` for top-level pages."""

    segments = path_segments(url)
    if len(segments) < 2:
        return None
    parent = segments[:-1] if restrict else segments[:1]
    return "/" + "/".join(parent) + "/"


def generate_hubs(context: GenerationContext, config: HubsConfig) -> List[RawCandidate]:
    graph = context.graph
    groups: Dict[str, List[str]] = {}
    for url in graph.urls():
        prefix = section_prefix(url, config.restrict_prefix)
        if prefix is not None:
            groups.setdefault(prefix, []).append(url)

    # A page whose path equals the section (``/blog`` for ``/blog/``) joins it.
    for url in graph.urls():
        path = url_path(url).rstrip("/") + "/"
        if path in groups and url not in groups[path]:
            groups[path].append(url)

    edges: Dict[Tuple[str, str], float] = {}
    for prefix in sorted(groups):
        members = sorted(groups[prefix])
        if len(members) < 2:
            continue
        hub = _choose_hub(graph, prefix, members)
        if config.topology in ("star", "wheel"):
            for member in members:
                if member != hub:
                    edges.setdefault((member, hub), 1.0)
        if config.topology in ("ring", "wheel"):
            for index, member in enumerate(members):
                successor = members[(index + 1) % len(members)]
                edges.setdefault((member, successor), 0.5)

    raw: List[RawCandidate] = []
    for (source, target), weight in sorted(edges.items()):
        if context.eligible(source, target):
            raw.extend(edge_candidates(context, source, target, Strategy.HUBS, weight))
    return raw


def _choose_hub(graph: PageGraph, prefix: str, members: Sequence[str]) -> str:
    for url in members:
        if url_path(url).rstrip("/") + "/" == prefix:
            return url

    def rank(url: str):
        depth = graph.page(url).depth
        return (depth if depth is not None else float("inf"), len(url), url)

    return min(members, key=rank)


def generate_commerce(context: GenerationContext, config: CommerceConfig) -> List[RawCandidate]:
    graph = context.graph
    pattern = re.compile(config.url_pattern)
    targets = [url for url in graph.urls() if pattern.search(url)]
    sources = [
        url for url in graph.urls()
        if not config.limit_prefix or url_path(url).startswith(config.limit_prefix)
    ]
    raw: List[RawCandidate] = []
    for target in targets:
        target_page = graph.page(target)
        for source in sources:
            if not context.eligible(source, target):
                continue
            weight = context.similarity(graph.page(source), target_page)
            raw.extend(edge_candidates(context, source, target, Strategy.COMMERCE, weight))
    return raw


def generate_similar(context: GenerationContext, config: SimilarConfig) -> List[RawCandidate]:
    graph = context.graph
    pairs: Dict[Tuple[str, str], float] = {}
    for prefix in config.prefixes:
        members = [url for url in graph.urls() if url_path(url).startswith(prefix)]
        for url in members:
            page = graph.page(url)
            scored = []
            for other in members:
                if other == url:
                    continue
                score = context.similarity(page, graph.page(other))
                if score > 0:
                    scored.append((-score, other))
            scored.sort()
            for negative, neighbor in scored[: config.k_neighbors]:
                pairs.setdefault((url, neighbor), -negative)

    raw: List[RawCandidate] = []
    for (source, target), weight in sorted(pairs.items()):
        if context.eligible(source, target):
            raw.extend(edge_candidates(context, source, target, Strategy.SIMILAR, weight))
    return raw


def generate_deep(context: GenerationContext, config: DeepConfig) -> List[RawCandidate]:
    graph = context.graph
    targets = [
        url for url in graph.urls()
        if graph.page(url).depth is None or graph.page(url).depth >= config.min_depth
    ]
    donors = [
        url for url in graph.urls()
        if graph.page(url).depth is not None
        and (not config.donors_from_levels or graph.page(url).depth <= DONOR_MAX_DEPTH)
    ]
    return _donor_edges(context, donors, targets, Strategy.DEEP)


def generate_fresh(context: GenerationContext, config: FreshConfig) -> List[RawCandidate]:
    graph = context.graph
    fresh = []
    for url in graph.urls():
        published = graph.page(url).publish_date
        if published is None:
            continue
        age = (context.today - published).days
        if 0 <= age <= config.days_fresh:
            fresh.append(url)

    raw: List[RawCandidate] = []
    for donor in graph.urls():
        donor_page = graph.page(donor)
        ranked = []
        for target in fresh:
            if not context.eligible(donor, target):
                continue
            target_page = graph.page(target)
            score = context.similarity(donor_page, target_page)
            ranked.append((-score, -target_page.publish_date.toordinal(), target, score))
        ranked.sort()
        for _, _, target, score in ranked[: config.links_per_donor]:
            raw.extend(edge_candidates(context, donor, target, Strategy.FRESH, score))
    return raw


def generate_orphans(context: GenerationContext, config: OrphansConfig) -> List[RawCandidate]:
    graph = context.graph
    reachable = [url for url in graph.urls() if not graph.page(url).is_orphan]
    raw: List[RawCandidate] = []
    for target in graph.urls():
        if not graph.page(target).is_orphan:
            continue
        donors = reachable
        if config.scope == "prefix":
            prefix = config.prefix or section_prefix(target, restrict=False) or "/"
            donors = [url for url in reachable if url_path(url).startswith(prefix)]
        raw.extend(_donor_edges(context, donors, [target], Strategy.ORPHANS))
    return raw


def _donor_edges(
    context: GenerationContext,
    donors: Sequence[str],
    targets: Sequence[str],
    strategy: Strategy,
) -> List[RawCandidate]:
    graph = context.graph
    raw: List[RawCandidate] = []
    for target in targets:
        target_page = graph.page(target)
        for donor in donors:
            if not context.eligible(donor, target):
                continue
            weight = context.similarity(graph.page(donor), target_page)
            raw.extend(edge_candidates(context, donor, target, strategy, weight))
    return raw


def generate_broken(context: GenerationContext, config: BrokenConfig) -> List[RawCandidate]:
    """Directives for existing links whose target is missing from the corpus."""

    if config.policy == "ignore":
        return []

    graph = context.graph
    raw: List[RawCandidate] = []
    seen: set[Tuple[str, str]] = set()
    replaced: set[Tuple[str, str]] = set()
    for link in graph.broken_links:
        if (link.source_url, link.target_url) in seen:
            continue
        seen.add((link.source_url, link.target_url))
        anchor = link.anchor_text or link.target_url
        replacement = _replacement_for(graph, link.source_url, link.target_url) if config.policy == "replace" else None
        # One replacement per source and live page; further dead links are deleted.
        if replacement is not None and (link.source_url, replacement) not in replaced:
            replaced.add((link.source_url, replacement))
            candidate = RawCandidate(
                source_url=link.source_url,
                target_url=replacement,
                anchor_text=anchor,
                strategy=Strategy.BROKEN.value,
                strategy_weight=1.0,
                action=LinkAction.REPLACE.value,
                previous_url=link.target_url,
            )
        else:
            candidate = RawCandidate(
                source_url=link.source_url,
                target_url=link.target_url,
                anchor_text=anchor,
                strategy=Strategy.BROKEN.value,
                strategy_weight=1.0,
                action=LinkAction.DELETE.value,
            )
        raw.append(candidate)
    return raw


def _replacement_for(graph: PageGraph, source: str, dead_url: str) -> Optional[str]:
    dead_segments = path_segments(dead_url)
    best: Optional[Tuple[int, int, str]] = None
    for url in graph.urls():
        if url == source:
            continue
        shared = shared_prefix_length(dead_segments, path_segments(url))
        if shared == 0:
            continue
        rank = (-shared, len(url), url)
        if best is None or rank < best:
            best = rank
    return best[2] if best else None


def generate_regenerate(context: GenerationContext, config: RegenerateConfig) -> List[RawCandidate]:
    """Replay prior approved edges so they compete under current settings."""

    if config.mode != "regenerate":
        return []
    graph = context.graph
    raw: List[RawCandidate] = []
    for prior in context.prior_links:
        if prior.source_url not in graph or prior.target_url not in graph:
            continue
        raw.append(
            RawCandidate(
                source_url=prior.source_url,
                target_url=prior.target_url,
                anchor_text=prior.anchor_text,
                strategy=Strategy.REGENERATE.value,
                strategy_weight=1.0,
            )
        )
    return raw


GENERATORS: Mapping[Strategy, Callable[[GenerationContext, TaskConfig], List[RawCandidate]]] = {
    Strategy.HUBS: generate_hubs,
    Strategy.COMMERCE: generate_commerce,
    Strategy.SIMILAR: generate_similar,
    Strategy.DEEP: generate_deep,
    Strategy.FRESH: generate_fresh,
    Strategy.ORPHANS: generate_orphans,
    Strategy.BROKEN: generate_broken,
    Strategy.REGENERATE: generate_regenerate,
}


def generate(context: GenerationContext, strategy: str, config: TaskConfig) -> List[RawCandidate]:
    return GENERATORS[Strategy(strategy)](context, config)


def run_generators(
    context: GenerationContext,
    tasks: Mapping[str, TaskConfig],
    *,
    stream: ProgressStream | None = None,
    control: RunControl | None = None,
    workers: int = 4,
) -> Tuple[List[RawCandidate], List[StrategyReport]]:
    """Run every enabled generator in parallel and merge their output.

    A generator that raises only loses its own contribution; it is reported
    as ``skipped`` and the others proceed.
    """

    outputs: Dict[str, List[RawCandidate]] = {}
    reports: Dict[str, StrategyReport] = {}
    with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="generator") as pool:
        futures: Dict[Future, str] = {
            pool.submit(generate, context, name, task): name for name, task in tasks.items()
        }
        try:
            for future in as_completed(futures):
                name = futures[future]
                try:
                    produced = future.result()
                except Exception as exc:  # isolate a failing strategy
                    logger.exception("generator %s failed", name)
                    reports[name] = StrategyReport(strategy=name, state="skipped", error=str(exc) or type(exc).__name__)
                    if stream is not None:
                        stream.emit(ProgressEvent(kind=STRATEGY_SKIPPED, strategy=name, detail=str(exc)))
                else:
                    outputs[name] = produced
                    reports[name] = StrategyReport(strategy=name, state="done", raw_count=len(produced))
                    logger.info("generator %s proposed %d raw candidates", name, len(produced))
                    if stream is not None:
                        stream.emit(ProgressEvent(kind=STRATEGY_DONE, strategy=name, raw_count=len(produced)))
                if control is not None:
                    control.check()
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    merged: List[RawCandidate] = []
    for name in sorted(outputs):
        merged.extend(outputs[name])
    return merged, [reports[name] for name in sorted(reports)]
