"""Fuzzy text matching for the interactive application search."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

DEFAULT_FUZZY_THRESHOLD = 2
MAX_NORMALIZED_DISTANCE = 0.4


class MatchType(IntEnum):
    """Match kinds in order of relevance (lower = more relevant)."""

    EXACT = 0
    STARTS_WITH = 1
    CONTAINS = 2
    FUZZY = 3
    NO_MATCH = 4


@dataclass(frozen=True)
class MatchResult:
    is_match: bool
    score: int
    match_type: MatchType

    @property
    def sort_key(self) -> tuple[int, int]:
        return (int(self.match_type), self.score)


NO_MATCH = MatchResult(is_match=False, score=sys.maxsize, match_type=MatchType.NO_MATCH)


def levenshtein(s: str, t: str) -> int:
    """Classic dynamic-programming edit distance."""
    if not s:
        return len(t)
    if not t:
        return len(s)

    previous = list(range(len(t) + 1))
    for i, sc in enumerate(s, start=1):
        current = [i] + [0] * len(t)
        for j, tc in enumerate(t, start=1):
            cost = 0 if sc == tc else 1
            current[j] = min(
                previous[j] + 1,  # deletion
                current[j - 1] + 1,  # insertion
                previous[j - 1] + cost,  # substitution
            )
        previous = current
    return previous[-1]


def match(text: str, query: str, fuzzy_threshold: int = DEFAULT_FUZZY_THRESHOLD) -> MatchResult:
    """
    Classify how well ``query`` matches ``text`` (case-insensitive).

    Scores: exact 0, prefix 1, substring 2 + position, fuzzy 100 + distance.
    """
    if not text or not text.strip() or not query or not query.strip():
        return NO_MATCH

    text_lower = text.strip().lower()
    query_lower = query.strip().lower()

    if text_lower == query_lower:
        return MatchResult(True, 0, MatchType.EXACT)

    if text_lower.startswith(query_lower):
        return MatchResult(True, 1, MatchType.STARTS_WITH)

    position = text_lower.find(query_lower)
    if position >= 0:
        return MatchResult(True, 2 + position, MatchType.CONTAINS)

    distance = levenshtein(text_lower, query_lower)
    normalized = distance / len(query_lower)
    is_match = distance <= fuzzy_threshold or normalized <= MAX_NORMALIZED_DISTANCE
    return MatchResult(
        is_match=is_match,
        score=100 + distance,
        match_type=MatchType.FUZZY if is_match else MatchType.NO_MATCH,
    )


def tokenize_query(query: str) -> list[str]:
    """Split a search query on whitespace, dropping empty terms."""
    if not query or not query.strip():
        return []
    return query.split()


def matches_all_terms(name: str, path: str, query: str) -> bool:
    """Every query token must match either the name or the path."""
    terms = tokenize_query(query)
    if not terms:
        return True
    return all(match(name, term).is_match or match(path, term).is_match for term in terms)


def search(
    items: Iterable[T],
    query: str,
    name_of: Callable[[T], str],
    path_of: Callable[[T], str] = lambda _item: "",
) -> list[T]:
    """
    Filter ``items`` to those matching every query term and rank them.

    Each item ranks by its best single-term match against the name or path.
    """
    terms = tokenize_query(query)
    if not terms:
        return list(items)

    ranked: list[tuple[tuple[int, int], int, T]] = []
    for index, item in enumerate(items):
        name, path = name_of(item), path_of(item)
        if not matches_all_terms(name, path, query):
            continue
        best = min(
            (match(text, term) for term in terms for text in (name, path)),
            key=lambda r: r.sort_key,
        )
        ranked.append((best.sort_key, index, item))
    ranked.sort(key=lambda entry: (entry[0], entry[1]))
    return [item for _key, _index, item in ranked]
