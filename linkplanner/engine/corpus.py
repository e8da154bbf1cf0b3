"""Corpus graph builder.

Turns imported page records into an immutable :class:`PageGraph`: URLs are
normalised, existing internal links are read from each page's content, and a
breadth-first search from the root pages assigns click depth. Pages the
search never reaches are flagged as orphans.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import unquote, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup, FeatureNotFound  # type: ignore

from .errors import CorpusEmptyError
from .text import collapse_whitespace
from .types import ExistingLink, Page

DEFAULT_LANGUAGE = "en"

_BARE_URL_RE = re.compile(r"https?://[^\s<>\"')\]]+")
_TAG_RE = re.compile(r"<[a-zA-Z][^>]*>")
_SKIP_TAGS = ("script", "style", "noscript", "template")


@dataclass(frozen=True)
class PageGraph:
    """Directed page graph stored as an explicit edge list."""

    pages: Dict[str, Page]
    edges: Tuple[Tuple[str, str], ...]
    existing_links: Tuple[ExistingLink, ...]
    broken_links: Tuple[ExistingLink, ...]
    roots: Tuple[str, ...]
    _outbound: Dict[str, Tuple[str, ...]] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        outbound: Dict[str, List[str]] = {url: [] for url in self.pages}
        for source, target in self.edges:
            outbound.setdefault(source, []).append(target)
        self._outbound.update({url: tuple(targets) for url, targets in outbound.items()})

    def __len__(self) -> int:
        return len(self.pages)

    def __contains__(self, url: object) -> bool:
        return url in self.pages

    def page(self, url: str) -> Page:
        return self.pages[url]

    def urls(self) -> List[str]:
        return sorted(self.pages)

    def outbound(self, url: str) -> Tuple[str, ...]:
        return self._outbound.get(url, ())

    def links_to(self, source: str, target: str) -> bool:
        return target in self._outbound.get(source, ())

    def hosts(self) -> set[str]:
        return {urlsplit(url).netloc for url in self.pages if urlsplit(url).netloc}

    def depths_with(self, extra_edges: Iterable[Tuple[str, str]] = ()) -> Dict[str, Optional[int]]:
        """Recompute click depth as if ``extra_edges`` were published."""

        return compute_depths(self.pages.keys(), list(self.edges) + list(extra_edges), self.roots)


def normalize_url(url: str, base: str | None = None) -> str:
    """Return a canonical form of ``url`` used as the graph key."""

    raw = (url or "").strip()
    if base:
        raw = urljoin(base, raw)
    parts = urlsplit(raw)
    path = parts.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def url_path(url: str) -> str:
    return urlsplit(url).path or "/"


def path_segments(url: str) -> List[str]:
    return [segment for segment in url_path(url).split("/") if segment]


def build_graph(
    records: Iterable[Mapping[str, Any]],
    *,
    roots: Sequence[str] | None = None,
) -> PageGraph:
    """Normalise page records into a :class:`PageGraph`.

    Parameters
    ----------
    records:
        Mappings with at least ``url``; ``title``, ``content``,
        ``publish_date``, ``language``, ``meta_title``, ``keywords``,
        ``is_root`` and ``created_at`` are optional.
    roots:
        Explicit root URLs. When omitted, records flagged ``is_root`` are
        used, then the site root ``/``, then the shallowest URLs.

    Raises
    ------
    CorpusEmptyError
        When fewer than two distinct pages are supplied.
    """

    parsed: Dict[str, Dict[str, Any]] = {}
    flagged_roots: List[str] = []
    for record in records:
        raw_url = str(record.get("url") or "").strip()
        if not raw_url:
            continue
        url = normalize_url(raw_url)
        if url in parsed:
            continue
        text, hrefs = extract_text_and_links(str(record.get("content") or ""))
        parsed[url] = {"record": record, "text": text, "hrefs": hrefs}
        if record.get("is_root"):
            flagged_roots.append(url)

    if len(parsed) < 2:
        raise CorpusEmptyError(f"a run needs at least 2 pages, got {len(parsed)}")

    hosts = {urlsplit(url).netloc for url in parsed if urlsplit(url).netloc}
    edges: List[Tuple[str, str]] = []
    existing: List[ExistingLink] = []
    broken: List[ExistingLink] = []
    seen_edges: set[Tuple[str, str]] = set()

    for url, item in parsed.items():
        for href, anchor_text in item["hrefs"]:
            if not _is_internal(href, hosts):
                continue
            target = normalize_url(href, base=url)
            if target == url:
                continue
            link = ExistingLink(source_url=url, target_url=target, anchor_text=anchor_text)
            if target in parsed:
                existing.append(link)
                if (url, target) not in seen_edges:
                    seen_edges.add((url, target))
                    edges.append((url, target))
            else:
                broken.append(link)

    root_urls = _resolve_roots(parsed, roots, flagged_roots)
    depths = compute_depths(parsed.keys(), edges, root_urls)

    pages: Dict[str, Page] = {}
    for url, item in parsed.items():
        record = item["record"]
        depth = depths[url]
        pages[url] = Page(
            url=url,
            title=collapse_whitespace(str(record.get("title") or "")) or _title_from_url(url),
            content=item["text"],
            depth=depth,
            is_orphan=depth is None,
            publish_date=_as_date(record.get("publish_date")) or _as_date(record.get("created_at")),
            language=str(record.get("language") or DEFAULT_LANGUAGE).lower(),
            meta_title=collapse_whitespace(str(record.get("meta_title") or "")),
            keywords=tuple(
                collapse_whitespace(str(keyword))
                for keyword in (record.get("keywords") or ())
                if str(keyword).strip()
            ),
        )

    return PageGraph(
        pages=pages,
        edges=tuple(edges),
        existing_links=tuple(existing),
        broken_links=tuple(broken),
        roots=tuple(root_urls),
    )


def compute_depths(
    urls: Iterable[str],
    edges: Sequence[Tuple[str, str]],
    roots: Sequence[str],
) -> Dict[str, Optional[int]]:
    """Breadth-first click depth from ``roots``; ``None`` when unreachable."""

    depths: Dict[str, Optional[int]] = {url: None for url in urls}
    adjacency: Dict[str, List[str]] = {}
    for source, target in edges:
        adjacency.setdefault(source, []).append(target)

    queue: deque[str] = deque()
    visited: set[str] = set()
    for root in roots:
        if root in depths and root not in visited:
            visited.add(root)
            depths[root] = 0
            queue.append(root)

    while queue:
        current = queue.popleft()
        for target in adjacency.get(current, ()):
            if target in visited or target not in depths:
                continue
            visited.add(target)
            depths[target] = (depths[current] or 0) + 1
            queue.append(target)
    return depths


def extract_text_and_links(content: str) -> Tuple[str, List[Tuple[str, str]]]:
    """Return plain text and ``(href, anchor text)`` pairs found in ``content``."""

    if not content:
        return "", []

    if not _TAG_RE.search(content):
        links = [(match.group(0).rstrip(".,;:"), "") for match in _BARE_URL_RE.finditer(content)]
        return collapse_whitespace(content), links

    try:
        soup = BeautifulSoup(content, "lxml")
    except FeatureNotFound:
        soup = BeautifulSoup(content, "html.parser")

    for tag in soup.find_all(_SKIP_TAGS):
        tag.decompose()

    links: List[Tuple[str, str]] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        links.append((href, collapse_whitespace(anchor.get_text(" "))))

    return collapse_whitespace(soup.get_text(" ")), links


def _is_internal(href: str, hosts: set[str]) -> bool:
    parts = urlsplit(href.strip())
    if parts.scheme and parts.scheme not in ("http", "https"):
        return False
    if not parts.netloc:
        return True
    return parts.netloc.lower() in hosts


def _resolve_roots(
    parsed: Mapping[str, Any],
    roots: Sequence[str] | None,
    flagged: Sequence[str],
) -> List[str]:
    if roots:
        explicit = [normalize_url(url) for url in roots]
        return [url for url in explicit if url in parsed]
    if flagged:
        return sorted(flagged)
    home = sorted(url for url in parsed if url_path(url) == "/")
    if home:
        return home
    shallowest = min(len(path_segments(url)) for url in parsed)
    return sorted(url for url in parsed if len(path_segments(url)) == shallowest)[:1]


def _title_from_url(url: str) -> str:
    segments = path_segments(url)
    if not segments:
        return urlsplit(url).netloc or url
    return unquote(segments[-1]).replace("-", " ").replace("_", " ").strip()


def _as_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None
