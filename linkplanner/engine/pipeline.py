"""End-to-end planning pass: generate, resolve, summarise."""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Dict, List, Mapping, Sequence

from .config import EngineConfig, RegenerateConfig, TaskConfig, load_config
from .corpus import PageGraph
from .generators import GenerationContext, Similarity, run_generators, token_similarity
from .metrics import build_stats
from .progress import ProgressStream
from .resolver import resolve
from .runs import RunControl
from .types import GlobalSettings, PlanResult, PriorLink, Strategy

logger = logging.getLogger(__name__)


def keeps_prior_links(tasks: Mapping[str, TaskConfig], settings: GlobalSettings) -> bool:
    """Whether earlier approved links stay committed for this run."""

    task = tasks.get(Strategy.REGENERATE.value)
    if isinstance(task, RegenerateConfig):
        return task.mode != "regenerate"
    return settings.old_links_action != "regenerate"


def group_prior_links(graph: PageGraph, prior_links: Sequence[PriorLink]) -> Dict[str, List[PriorLink]]:
    grouped: Dict[str, List[PriorLink]] = {}
    for prior in sorted(prior_links, key=lambda item: (item.source_url, item.target_url, item.anchor_text)):
        if prior.source_url in graph:
            grouped.setdefault(prior.source_url, []).append(prior)
    return grouped


def plan_links(
    graph: PageGraph,
    tasks: Mapping[str, TaskConfig],
    settings: GlobalSettings,
    *,
    seed: int,
    today: date | None = None,
    prior_links: Sequence[PriorLink] = (),
    similarity: Similarity | None = None,
    stream: ProgressStream | None = None,
    control: RunControl | None = None,
    workers: int = 4,
    config: EngineConfig | None = None,
) -> PlanResult:
    """Plan link insertions for ``graph`` under ``settings``.

    The result is a pure function of the inputs and ``seed``: generators and
    page groups run concurrently, but their outputs are merged in a fixed
    order before anything is decided.

    Raises
    ------
    EmptyScopeError
        When no candidate remains after the scope filters.
    RunTimeoutError, RunCancelledError
        From ``control`` at any progress checkpoint.
    """

    engine_config = config or load_config(None)
    started = time.monotonic()
    context = GenerationContext(
        graph=graph,
        settings=settings,
        today=today or date.today(),
        similarity=similarity or token_similarity,
        prior_links=tuple(prior_links),
        anchor_max_tokens=int(engine_config.get("anchor_max_tokens", 8)),
        alternate_weight_step=float(engine_config.get("alternate_weight_step", 0.01)),
    )

    pool, reports = run_generators(context, tasks, stream=stream, control=control, workers=workers)
    logger.info("generators proposed %d raw candidates for %d pages", len(pool), len(graph))

    seeds = group_prior_links(graph, prior_links) if keeps_prior_links(tasks, settings) else {}
    outcome = resolve(
        pool,
        graph,
        settings,
        seed=seed,
        seeds=seeds,
        stream=stream,
        control=control,
        workers=workers,
        context_words=int(engine_config.get("context_words", 8)),
    )

    elapsed = control.elapsed() if control is not None else time.monotonic() - started
    stats = build_stats(
        graph,
        outcome.attempts,
        outcome.candidates,
        reports,
        scoped_out=outcome.scoped_out,
        pages_processed=outcome.pages_processed,
        elapsed_seconds=elapsed,
    )
    return PlanResult(candidates=outcome.candidates, attempts=outcome.attempts, stats=stats)
