"""Candidate generator tests."""

from __future__ import annotations

from datetime import date

from linkplanner.engine import generators
from linkplanner.engine.config import (
    BrokenConfig,
    DeepConfig,
    FreshConfig,
    HubsConfig,
    OrphansConfig,
    RegenerateConfig,
    SimilarConfig,
)
from linkplanner.engine.corpus import build_graph
from linkplanner.engine.generators import GenerationContext, edge_candidates, run_generators
from linkplanner.engine.progress import STRATEGY_DONE, STRATEGY_SKIPPED, ProgressStream
from linkplanner.engine.types import PriorLink, Strategy

from .conftest import BASE, make_graph, make_page

TODAY = date(2024, 6, 30)


def context_for(graph, global_settings, **extra):
    return GenerationContext(graph=graph, settings=global_settings, today=TODAY, **extra)


def pairs(candidates):
    return {(c.source_url.replace(BASE, ""), c.target_url.replace(BASE, "")) for c in candidates}


def blog_graph(edges=()):
    return make_graph(
        [make_page("/", "Home", depth=0), make_page("/blog", "Blog"), make_page("/blog/a", "Alpha"), make_page("/blog/b", "Beta")],
        edges,
    )


def test_hubs_star_links_members_to_section_page(global_settings):
    context = context_for(blog_graph(), global_settings)

    raw = generators.generate_hubs(context, HubsConfig(topology="star", restrict_prefix=True))

    assert pairs(raw) == {("/blog/a", "/blog"), ("/blog/b", "/blog")}
    assert {c.strategy for c in raw} == {"hubs"}
    assert {c.strategy_weight for c in raw} == {1.0}


def test_hubs_ring_wraps_around(global_settings):
    context = context_for(blog_graph(), global_settings)

    raw = generators.generate_hubs(context, HubsConfig(topology="ring", restrict_prefix=True))

    assert pairs(raw) == {("/blog", "/blog/a"), ("/blog/a", "/blog/b"), ("/blog/b", "/blog")}
    assert {c.strategy_weight for c in raw} == {0.5}


def test_generators_skip_existing_edges(global_settings):
    context = context_for(blog_graph(edges=[("/blog/a", "/blog")]), global_settings)

    raw = generators.generate_hubs(context, HubsConfig(topology="star", restrict_prefix=True))

    assert pairs(raw) == {("/blog/b", "/blog")}


def test_similar_keeps_k_nearest_positive_neighbours(global_settings):
    scores = {("/blog/a", "/blog/b"): 0.9, ("/blog/a", "/blog/c"): 0.4}
    graph = make_graph([make_page("/blog/a", "Alpha"), make_page("/blog/b", "Beta"), make_page("/blog/c", "Gamma")])

    def similarity(left, right):
        key = tuple(sorted((left.url.replace(BASE, ""), right.url.replace(BASE, ""))))
        return scores.get(key, 0.0)

    context = context_for(graph, global_settings, similarity=similarity)
    raw = generators.generate_similar(context, SimilarConfig(prefixes=("/blog/",), k_neighbors=1))

    assert pairs(raw) == {("/blog/a", "/blog/b"), ("/blog/b", "/blog/a"), ("/blog/c", "/blog/a")}


def test_deep_targets_deep_and_unreachable_pages(global_settings):
    graph = make_graph(
        [
            make_page("/", "Home", depth=0),
            make_page("/level2", "Level", depth=2),
            make_page("/deep", "Deep", depth=4),
            make_page("/lost", "Lost", depth=None),
        ]
    )
    context = context_for(graph, global_settings, similarity=lambda a, b: 0.5)

    raw = generators.generate_deep(context, DeepConfig(min_depth=4, donors_from_levels=True))

    assert {target for _, target in pairs(raw)} == {"/deep", "/lost"}
    assert {source for source, _ in pairs(raw)} == {"/", "/level2"}


def test_fresh_picks_best_recent_targets_per_donor(global_settings):
    graph = make_graph(
        [
            make_page("/", "Home", depth=0, published=date(2020, 1, 1)),
            make_page("/news/today", "Today", published=date(2024, 6, 20)),
            make_page("/news/older", "Older", published=date(2024, 6, 10)),
            make_page("/news/stale", "Stale", published=date(2023, 1, 1)),
        ]
    )
    context = context_for(graph, global_settings, similarity=lambda a, b: 0.0)

    raw = generators.generate_fresh(context, FreshConfig(days_fresh=30, links_per_donor=1))

    assert ("/", "/news/today") in pairs(raw)
    assert all(target != "/news/stale" for _, target in pairs(raw))
    assert ("/news/today", "/news/older") in pairs(raw)


def test_orphans_get_donors_from_their_section(global_settings):
    graph = make_graph(
        [
            make_page("/", "Home", depth=0),
            make_page("/docs/start", "Start"),
            make_page("/docs/lost", "Lost", depth=None),
            make_page("/shop/item", "Item"),
        ]
    )
    context = context_for(graph, global_settings, similarity=lambda a, b: 0.1)

    raw = generators.generate_orphans(context, OrphansConfig(scope="prefix", prefix=""))
    everywhere = generators.generate_orphans(context, OrphansConfig(scope="entire"))

    assert pairs(raw) == {("/docs/start", "/docs/lost")}
    assert {source for source, _ in pairs(everywhere)} == {"/", "/docs/start", "/shop/item"}


def _broken_graph():
    return build_graph(
        [
            {"url": f"{BASE}/", "content": "<a href='/guides/old-post'>old post</a>"},
            {"url": f"{BASE}/guides/new-post", "content": "fresh"},
            {"url": f"{BASE}/about", "content": "about us"},
        ]
    )


def test_broken_links_replace_with_closest_live_page(global_settings):
    context = context_for(_broken_graph(), global_settings)

    (directive,) = generators.generate_broken(context, BrokenConfig(policy="replace"))

    assert directive.action == "replace"
    assert directive.target_url == f"{BASE}/guides/new-post"
    assert directive.previous_url == f"{BASE}/guides/old-post"
    assert directive.anchor_text == "old post"


def test_broken_links_delete_and_ignore(global_settings):
    context = context_for(_broken_graph(), global_settings)

    (directive,) = generators.generate_broken(context, BrokenConfig(policy="delete"))

    assert directive.action == "delete"
    assert directive.target_url == f"{BASE}/guides/old-post"
    assert generators.generate_broken(context, BrokenConfig(policy="ignore")) == []


def test_broken_links_sharing_a_replacement_keep_a_directive_each(global_settings):
    graph = build_graph(
        [
            {"url": f"{BASE}/", "content": "<a href='/blog'>blog</a>"},
            {
                "url": f"{BASE}/blog",
                "content": "<a href='/blog/old-one'>first</a> and <a href='/blog/old-two'>second</a>",
            },
            {"url": f"{BASE}/blog/live", "content": "still here"},
        ]
    )
    context = context_for(graph, global_settings)

    directives = generators.generate_broken(context, BrokenConfig(policy="replace"))

    by_dead_url = {d.previous_url or d.target_url: d for d in directives}
    assert set(by_dead_url) == {f"{BASE}/blog/old-one", f"{BASE}/blog/old-two"}
    assert by_dead_url[f"{BASE}/blog/old-one"].action == "replace"
    assert by_dead_url[f"{BASE}/blog/old-one"].target_url == f"{BASE}/blog/live"
    assert by_dead_url[f"{BASE}/blog/old-two"].action == "delete"
    assert len({(d.source_url, d.target_url) for d in directives}) == len(directives)


def test_anchor_variants_are_immutable_and_shared_between_contexts(global_settings):
    graph = make_graph([make_page("/a", "Alpha"), make_page("/b", "Beta Tips")])
    first = context_for(graph, global_settings).anchors_for(graph.page(f"{BASE}/b"))
    second = context_for(graph, global_settings).anchors_for(graph.page(f"{BASE}/b"))

    assert isinstance(first, tuple)
    assert first is second
    assert first[0] == "Beta Tips"


def test_regenerate_replays_prior_links_only_in_regenerate_mode(global_settings):
    graph = make_graph([make_page("/a", "Alpha"), make_page("/b", "Beta")])
    prior = (PriorLink(f"{BASE}/a", f"{BASE}/b", "bee"), PriorLink(f"{BASE}/a", f"{BASE}/gone", "gone"))
    context = context_for(graph, global_settings, prior_links=prior)

    replayed = generators.generate_regenerate(context, RegenerateConfig(mode="regenerate"))

    assert [(c.anchor_text, c.strategy) for c in replayed] == [("bee", "regenerate")]
    assert generators.generate_regenerate(context, RegenerateConfig(mode="enrich")) == []


def test_alternate_anchors_get_lower_weights(global_settings):
    graph = make_graph([make_page("/a", "Alpha"), make_page("/shoes", "Complete Guide To Running Shoes Today")])
    context = context_for(graph, global_settings)

    raw = edge_candidates(context, f"{BASE}/a", f"{BASE}/shoes", Strategy.SIMILAR, 0.8)

    assert [c.anchor_text for c in raw] == [
        "Complete Guide To Running Shoes Today",
        "Complete Guide To Running",
        "Running Shoes Today",
    ]
    assert [c.strategy_weight for c in raw] == [0.8, 0.79, 0.78]


def test_failing_generator_is_isolated(global_settings, monkeypatch):
    def boom(context, config):
        raise RuntimeError("similarity service down")

    monkeypatch.setitem(generators.GENERATORS, Strategy.SIMILAR, boom)
    stream = ProgressStream()
    events = []
    stream.subscribe(events.append)
    context = context_for(blog_graph(), global_settings)

    raw, reports = run_generators(
        context,
        {"hubs": HubsConfig(), "similar": SimilarConfig()},
        stream=stream,
        workers=2,
    )

    by_name = {report.strategy: report for report in reports}
    assert by_name["similar"].state == "skipped"
    assert "similarity service down" in by_name["similar"].error
    assert by_name["hubs"].state == "done"
    assert by_name["hubs"].raw_count == len(raw) > 0
    assert {event.kind for event in events} == {STRATEGY_DONE, STRATEGY_SKIPPED}
