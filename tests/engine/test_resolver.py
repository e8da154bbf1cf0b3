"""Constraint and conflict resolution tests."""

from __future__ import annotations

from datetime import date

import pytest

from linkplanner.engine.errors import EmptyScopeError
from linkplanner.engine.progress import PAGE_RESOLVED, RESOLVED, ProgressStream
from linkplanner.engine.resolver import collapse_pairs, order_candidates, resolve, resolve_page, scope_filter
from linkplanner.engine.types import PriorLink, RawCandidate

from .conftest import BASE, make_graph, make_page, text_with, with_settings


def raw(source, target, anchor, strategy="hubs", weight=1.0, **extra):
    return RawCandidate(
        source_url=BASE + source,
        target_url=target if target.startswith("http") else BASE + target,
        anchor_text=anchor,
        strategy=strategy,
        strategy_weight=weight,
        **extra,
    )


def verdicts(decisions):
    return [(d.anchor, d.status, d.rejection_reason) for d in decisions]


def test_min_gap_rejects_close_anchor_and_admits_distant_one(global_settings):
    source = make_page("/blog/source", "Source", text_with({40: "alpha", 90: "beta", 200: "gamma"}, 250))
    pages = [source, make_page("/a", "Alpha Page"), make_page("/b", "Beta Page"), make_page("/c", "Gamma Page")]
    graph = make_graph(pages)
    settings = with_settings(global_settings, min_gap=100, max_links_per_page=3)

    decisions = resolve_page(
        source,
        [
            raw("/blog/source", "/a", "alpha", weight=1.0),
            raw("/blog/source", "/b", "beta", weight=0.9),
            raw("/blog/source", "/c", "gamma", weight=0.8),
        ],
        graph,
        settings,
    )

    assert verdicts(decisions) == [
        ("alpha", "pending", None),
        ("beta", "rejected", "min_gap"),
        ("gamma", "pending", None),
    ]
    assert [d.position for d in decisions] == [40, 90, 200]


def test_stop_anchor_is_rejected_case_insensitively(global_settings):
    source = make_page("/source", "Source", "For details Click Here and see the pricing.")
    graph = make_graph([source, make_page("/pricing", "Pricing")])

    (decision,) = resolve_page(source, [raw("/source", "/pricing", "click here")], graph, global_settings)

    assert decision.status == "rejected"
    assert decision.rejection_reason == "stop_anchor"


def test_zero_budget_rejects_everything_with_limit_reached(global_settings):
    source = make_page("/source", "Source", "Our pricing page explains the plans.")
    graph = make_graph([source, make_page("/pricing", "Pricing")])
    settings = with_settings(global_settings, max_links_per_page=0)

    (decision,) = resolve_page(source, [raw("/source", "/pricing", "pricing page")], graph, settings)

    assert decision.rejection_reason == "limit_reached"


def test_checks_run_in_fixed_order(global_settings):
    source = make_page("/source", "Source", "The guide covers the basics.")
    graph = make_graph([source, make_page("/guide", "Guide"), make_page("/other", "Other")])

    decisions = resolve_page(
        source,
        [
            raw("/source", "/guide", "guide", weight=1.0),
            raw("/source", "/guide", "click here", weight=0.9),
            raw("/source", "/other", "read more", weight=0.8),
            raw("/source", "/other", "nowhere in text", weight=0.7),
        ],
        graph,
        global_settings,
    )

    assert [d.rejection_reason for d in decisions] == [None, "duplicate", "stop_anchor", "anchor_not_found"]


def test_exact_anchor_rejected_when_quota_is_zero(global_settings):
    source = make_page("/source", "Source", "Read the Alpha Guide or browse alpha resources.")
    graph = make_graph([source, make_page("/alpha", "Alpha Guide"), make_page("/beta", "Alpha Resources Hub")])
    settings = with_settings(global_settings, exact_anchor_percent=0, min_gap=0)

    decisions = resolve_page(
        source,
        [
            raw("/source", "/alpha", "alpha guide", weight=1.0),
            raw("/source", "/beta", "alpha resources", weight=0.5),
        ],
        graph,
        settings,
    )

    assert verdicts(decisions) == [
        ("alpha guide", "rejected", "exact_exceed"),
        ("alpha resources", "pending", None),
    ]
    assert decisions[0].anchor_class == "exact"
    assert decisions[1].anchor_class == "partial"


def test_exact_ratio_stays_within_one_candidate_of_quota(global_settings):
    words = {index * 10: f"topic{index}" for index in range(8)}
    source = make_page("/source", "Source", text_with(words, 90))
    targets = [make_page(f"/t{index}", f"Topic{index}") for index in range(8)]
    settings = with_settings(global_settings, exact_anchor_percent=50, min_gap=0, max_links_per_page=10)

    decisions = resolve_page(
        source,
        [raw("/source", f"/t{index}", f"topic{index}") for index in range(8)],
        make_graph([source, *targets]),
        settings,
    )

    admitted = [d for d in decisions if d.admitted]
    exact = sum(1 for d in admitted if d.anchor_class == "exact")
    assert admitted
    assert (exact - 1) * 100 <= settings.exact_anchor_percent * len(admitted)
    assert {d.rejection_reason for d in decisions if not d.admitted} == {"exact_exceed"}


def test_budget_and_unique_targets_hold(global_settings):
    words = {index * 5: f"term{index}" for index in range(10)}
    source = make_page("/source", "Source", text_with(words, 60))
    targets = [make_page(f"/t{index}", f"Term{index} page") for index in range(10)]
    settings = with_settings(global_settings, min_gap=0, max_links_per_page=3)

    candidates = [raw("/source", f"/t{index}", f"term{index}", weight=1 - index / 100) for index in range(10)]
    candidates += [raw("/source", "/t0", "term1", weight=0.2)]
    decisions = resolve_page(source, candidates, make_graph([source, *targets]), settings)

    admitted = [d for d in decisions if d.admitted]
    assert len(admitted) == 3
    assert len({d.target_url for d in admitted}) == 3
    assert {d.rejection_reason for d in decisions if not d.admitted} <= {"limit_reached", "duplicate"}


def test_repeated_anchor_uses_next_unused_occurrence(global_settings):
    source = make_page("/source", "Source", "widgets here and more widgets there")
    graph = make_graph([source, make_page("/a", "A"), make_page("/b", "B"), make_page("/c", "C")])
    settings = with_settings(global_settings, min_gap=0)

    decisions = resolve_page(
        source,
        [
            raw("/source", "/a", "widgets", weight=0.9),
            raw("/source", "/b", "widgets", weight=0.8),
            raw("/source", "/c", "widgets", weight=0.7),
        ],
        graph,
        settings,
    )

    assert [d.position for d in decisions[:2]] == [0, 4]
    assert decisions[2].rejection_reason == "anchor_not_found"


def test_priority_order_beats_weight(global_settings):
    source = make_page("/source", "Source", "buy the widget or read the widget story")
    graph = make_graph([source, make_page("/buy", "Buy"), make_page("/story", "Story")])
    settings = with_settings(global_settings, priorities=("commerce", "hubs"), max_links_per_page=1, min_gap=0)

    decisions = resolve_page(
        source,
        [
            raw("/source", "/story", "widget story", strategy="hubs", weight=0.99),
            raw("/source", "/buy", "buy the widget", strategy="commerce", weight=0.01),
        ],
        graph,
        settings,
    )

    assert decisions[0].strategy == "commerce"
    assert verdicts(decisions) == [
        ("buy the widget", "pending", None),
        ("widget story", "rejected", "limit_reached"),
    ]


def test_unknown_strategies_sort_after_listed_ones(global_settings):
    candidates = [
        raw("/s", "/b", "b", strategy="broken"),
        raw("/s", "/a", "a", strategy="orphans", weight=0.1),
    ]
    ordered = order_candidates(candidates, global_settings)
    assert [c.strategy for c in ordered] == ["orphans", "broken"]


def test_directives_skip_budget_but_not_duplicates(global_settings):
    source = make_page("/source", "Source", "see the old guide")
    graph = make_graph([source, make_page("/guide", "Guide")])
    settings = with_settings(global_settings, max_links_per_page=0)

    decisions = resolve_page(
        source,
        [
            raw("/source", BASE + "/gone", "old guide", strategy="broken", action="delete"),
            raw("/source", BASE + "/gone", "old guide", strategy="broken", weight=0.5, action="delete"),
        ],
        graph,
        settings,
    )

    assert verdicts(decisions) == [("old guide", "pending", None), ("old guide", "rejected", "duplicate")]
    assert decisions[0].action == "delete"
    assert decisions[0].before_text == "see the"


def test_prior_links_count_towards_budget_and_targets(global_settings):
    source = make_page("/source", "Source", "guides and tutorials and recipes")
    graph = make_graph([source, make_page("/guides", "Guides"), make_page("/recipes", "Recipes")])
    settings = with_settings(global_settings, max_links_per_page=1, min_gap=0, exact_anchor_percent=100)

    decisions = resolve_page(
        source,
        [raw("/source", "/guides", "guides"), raw("/source", "/recipes", "recipes")],
        graph,
        settings,
        seeds=[PriorLink(BASE + "/source", BASE + "/guides", "guides", position=0)],
    )

    assert [d.rejection_reason for d in decisions] == ["duplicate", "limit_reached"]


def test_scope_filter_applies_pattern_and_date(global_settings):
    old = make_page("/blog/old", "Old", published=date(2020, 1, 1))
    new = make_page("/blog/new", "New", published=date(2024, 6, 1))
    undated = make_page("/blog/undated", "Undated", published=None)
    shop = make_page("/shop/item", "Item", published=date(2024, 6, 1))
    graph = make_graph([old, new, undated, shop])
    pool = [
        raw("/blog/old", "/shop/item", "item"),
        raw("/blog/new", "/shop/item", "item"),
        raw("/blog/undated", "/shop/item", "item"),
        raw("/shop/item", "/blog/new", "new"),
    ]
    settings = with_settings(global_settings, url_pattern=r"/blog/", newer_than=date(2024, 1, 1))

    kept, dropped = scope_filter(pool, graph, settings, seed=1)

    assert [c.source_url for c in kept] == [BASE + "/blog/new"]
    assert dropped == 3


def test_random_sample_is_seeded_and_sized(global_settings):
    pages = [make_page(f"/p{index}", f"Page {index}") for index in range(20)]
    graph = make_graph(pages)
    pool = [raw(f"/p{index}", f"/p{(index + 1) % 20}", "page") for index in range(20)]
    settings = with_settings(global_settings, random_sample=25)

    first, dropped = scope_filter(pool, graph, settings, seed=7)
    again, _ = scope_filter(list(reversed(pool)), graph, settings, seed=7)

    assert len(first) == 5
    assert dropped == 15
    assert first == again


def test_collapse_keeps_admitted_alternate(global_settings):
    source = make_page("/source", "Source", "short guide inside")
    target = make_page("/guide", "The Complete Long Guide Title")
    graph = make_graph([source, target])

    attempts = resolve_page(
        source,
        [
            raw("/source", "/guide", "The Complete Long Guide Title", weight=1.0),
            raw("/source", "/guide", "short guide", weight=0.99),
        ],
        graph,
        global_settings,
    )
    (kept,) = collapse_pairs(attempts)

    assert len(attempts) == 2
    assert kept.anchor == "short guide"
    assert kept.admitted


def test_resolve_merges_pages_in_source_order_and_reports_progress(global_settings):
    pages = [make_page(f"/p{index}", f"Page{index}", f"links to page{(index + 1) % 4}") for index in range(4)]
    graph = make_graph(pages)
    pool = [raw(f"/p{index}", f"/p{(index + 1) % 4}", f"page{(index + 1) % 4}") for index in reversed(range(4))]
    stream = ProgressStream()
    events = []
    stream.subscribe(events.append)

    outcome = resolve(pool, graph, global_settings, seed=1, stream=stream, workers=3)

    assert [d.source_url for d in outcome.candidates] == sorted(d.source_url for d in outcome.candidates)
    assert outcome.pages_processed == 4
    assert [e.kind for e in events].count(PAGE_RESOLVED) == 4
    assert events[-1].kind == RESOLVED


def test_resolve_raises_when_scope_leaves_nothing(global_settings):
    graph = make_graph([make_page("/a", "A", "b"), make_page("/b", "B")])
    settings = with_settings(global_settings, url_pattern=r"/nothing-matches/")

    with pytest.raises(EmptyScopeError):
        resolve([raw("/a", "/b", "b")], graph, settings, seed=1)
