"""Shared text utilities for the planning engine."""

from __future__ import annotations

import bisect
import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

_TOKEN_RE = re.compile(r"[\w']+")
_WORD_RE = re.compile(r"\S+")

# Word boundary regex template used when compiling matchers for anchors
WORD_BOUNDARY = r"(?<![\w]){term}(?![\w])"

STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "how",
        "in", "is", "it", "its", "of", "on", "or", "our", "that", "the", "this",
        "to", "vs", "was", "what", "when", "why", "with", "you", "your",
    }
)


def tokenize(text: str) -> List[str]:
    """Return lower-cased word tokens from the provided text."""

    return [token.lower() for token in _TOKEN_RE.findall(text)]


def significant_tokens(text: str) -> set[str]:
    """Tokens that carry meaning for anchor classification."""

    return {token for token in tokenize(text) if token not in STOPWORDS and len(token) > 1}


def term_frequencies(tokens: Iterable[str]) -> Counter[str]:
    """Return term frequencies for the tokens."""

    return Counter(tokens)


def cosine_similarity(counter_a: Counter[str], counter_b: Counter[str]) -> float:
    """Cosine similarity between two sparse term-frequency counters."""

    if not counter_a or not counter_b:
        return 0.0
    dot = sum(counter_a[term] * counter_b.get(term, 0) for term in counter_a)
    norm_a = math.sqrt(sum(value * value for value in counter_a.values()))
    norm_b = math.sqrt(sum(value * value for value in counter_b.values()))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def normalize_phrase(phrase: str) -> str:
    """Return a casefolded, single-space version of ``phrase`` for lookups."""

    return " ".join(phrase.split()).casefold()


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


@dataclass(frozen=True)
class Occurrence:
    """A literal match of an anchor phrase, in characters and in words."""

    start: int
    end: int
    first_word: int
    last_word: int


class WordIndex:
    """Maps character offsets of a text to word offsets."""

    def __init__(self, text: str) -> None:
        self.text = text
        spans = [match.span() for match in _WORD_RE.finditer(text)]
        self.starts: List[int] = [start for start, _ in spans]
        self.ends: List[int] = [end for _, end in spans]

    def __len__(self) -> int:
        return len(self.starts)

    def word_at(self, char_offset: int) -> int:
        """Index of the word containing (or following) ``char_offset``."""

        index = bisect.bisect_right(self.starts, char_offset) - 1
        if index < 0:
            return 0
        if char_offset >= self.ends[index] and index + 1 < len(self.starts):
            return index + 1
        return index

    def occurrences(self, phrase: str) -> List[Occurrence]:
        """All case-insensitive, word-bounded occurrences of ``phrase``."""

        words = phrase.split()
        if not words:
            return []
        body = r"\s+".join(re.escape(word) for word in words)
        pattern = re.compile(WORD_BOUNDARY.format(term=body), flags=re.IGNORECASE)
        found = []
        for match in pattern.finditer(self.text):
            first = self.word_at(match.start())
            last = self.word_at(max(match.end() - 1, match.start()))
            found.append(Occurrence(match.start(), match.end(), first, last))
        return found

    def context(self, occurrence: Occurrence, window: int) -> Tuple[str, str]:
        """Return up to ``window`` words before and after the occurrence."""

        before_start = max(0, occurrence.first_word - window)
        before = self.text[self.starts[before_start]:occurrence.start] if self.starts else ""
        after_end = min(len(self.ends), occurrence.last_word + 1 + window)
        after = self.text[occurrence.end:self.ends[after_end - 1]] if after_end > occurrence.last_word + 1 else ""
        return collapse_whitespace(before), collapse_whitespace(after)


def truncate_tokens(text: str, limit: int) -> str:
    """Keep at most ``limit`` whitespace-separated words of ``text``."""

    words = text.split()
    return " ".join(words[:limit])


def head_terms(title: str, size: int = 4) -> str:
    words = title.split()
    if len(words) <= size:
        return title
    return " ".join(words[:size])


def tail_terms(title: str, size: int = 3) -> str:
    words = title.split()
    if len(words) <= size:
        return title
    return " ".join(words[-size:])


def shared_prefix_length(a: Sequence[str], b: Sequence[str]) -> int:
    length = 0
    for left, right in zip(a, b):
        if left != right:
            break
        length += 1
    return length
