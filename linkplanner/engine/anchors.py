"""Anchor text proposal and classification."""

from __future__ import annotations

from typing import List, Tuple

from .text import STOPWORDS, head_terms, normalize_phrase, significant_tokens, tail_terms, truncate_tokens
from .types import AnchorClass, Page

DEFAULT_MAX_TOKENS = 8


def default_anchor(target: Page, max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
    """The target's title, truncated to a bounded number of words."""

    return truncate_tokens(target.title, max_tokens)


def anchor_variants(target: Page, max_tokens: int = DEFAULT_MAX_TOKENS) -> List[str]:
    """Return the default anchor followed by distinct alternates.

    Alternates give the resolver something to fall back on when the full
    title does not occur in the source text or would exceed the exact-anchor
    quota.
    """

    title = default_anchor(target, max_tokens)
    phrases: List[str] = [title]
    phrases.extend(truncate_tokens(keyword, max_tokens) for keyword in target.keywords)
    if target.meta_title:
        phrases.append(truncate_tokens(target.meta_title, max_tokens))
    phrases.append(head_terms(title))
    phrases.append(tail_terms(title))

    variants: List[str] = []
    seen: set[str] = set()
    for phrase in phrases:
        cleaned = " ".join(phrase.split())
        key = normalize_phrase(cleaned)
        if not key or key in seen or not _valid_phrase(cleaned):
            continue
        seen.add(key)
        variants.append(cleaned)
    return variants


def classify_anchor(anchor: str, target: Page) -> AnchorClass:
    """Return the similarity tier between ``anchor`` and the target identity."""

    key = normalize_phrase(anchor)
    identities = [target.title, target.meta_title, *target.keywords]
    identity_keys = {normalize_phrase(value) for value in identities if value}
    if key in identity_keys:
        return AnchorClass.EXACT

    identity_tokens: set[str] = set()
    for value in identities:
        identity_tokens |= significant_tokens(value)
    if significant_tokens(anchor) & identity_tokens:
        return AnchorClass.PARTIAL
    return AnchorClass.GENERIC


def anchor_mix(classes: List[str]) -> Tuple[float, float, float]:
    """Percentages of exact, partial and generic anchors."""

    total = len(classes)
    if not total:
        return 0.0, 0.0, 0.0
    exact = sum(1 for value in classes if value == AnchorClass.EXACT.value)
    partial = sum(1 for value in classes if value == AnchorClass.PARTIAL.value)
    generic = total - exact - partial
    return (
        round(100.0 * exact / total, 1),
        round(100.0 * partial / total, 1),
        round(100.0 * generic / total, 1),
    )


def _valid_phrase(phrase: str) -> bool:
    words = phrase.split()
    if not words:
        return False
    return not all(word.lower() in STOPWORDS for word in words)
