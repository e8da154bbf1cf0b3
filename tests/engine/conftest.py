"""Shared fixtures for engine tests."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, Sequence

import pytest

from linkplanner.engine.config import load_config
from linkplanner.engine.corpus import PageGraph
from linkplanner.engine.types import GlobalSettings, Page

BASE = "https://example.com"


@pytest.fixture()
def engine_config():
    """Provide a fresh copy of the default engine configuration."""

    return load_config(None)


@pytest.fixture()
def global_settings():
    return GlobalSettings()


def make_page(
    path: str,
    title: str = "",
    text: str = "",
    *,
    depth: int | None = 1,
    published: date | None = date(2024, 1, 1),
    keywords: Iterable[str] = (),
    meta_title: str = "",
    language: str = "en",
) -> Page:
    return Page(
        url=BASE + path,
        title=title or path.strip("/").split("/")[-1].replace("-", " ") or "Home",
        content=text,
        depth=depth,
        is_orphan=depth is None,
        publish_date=published,
        language=language,
        meta_title=meta_title,
        keywords=tuple(keywords),
    )


def make_graph(
    pages: Sequence[Page],
    edges: Sequence[tuple[str, str]] = (),
    *,
    roots: Sequence[str] | None = None,
) -> PageGraph:
    """A graph from ready-made pages; edges and roots take paths or full URLs."""

    def full(url: str) -> str:
        return url if url.startswith("http") else BASE + url

    by_url: Dict[str, Page] = {page.url: page for page in pages}
    return PageGraph(
        pages=by_url,
        edges=tuple((full(source), full(target)) for source, target in edges),
        existing_links=(),
        broken_links=(),
        roots=tuple(full(url) for url in (roots or [pages[0].url])),
    )


def text_with(placements: Dict[int, str], length: int) -> str:
    """Filler text with the given phrases starting at the given word offsets."""

    words = []
    index = 0
    while index < length:
        phrase = placements.get(index)
        if phrase:
            words.append(phrase)
            index += len(phrase.split())
        else:
            words.append(f"filler{index}")
            index += 1
    return " ".join(words)


def with_settings(settings: GlobalSettings, **changes) -> GlobalSettings:
    return replace(settings, **changes)
