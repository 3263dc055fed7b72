"""Fuzzy subsequence search over a program index."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

from locksearch.index.catalog import ProgramIndex
from locksearch.models import Entry, Icon, Origin
from locksearch.utils.text import normalize_name

# Each bonus outweighs everything below it for realistic name lengths.
PREFIX_BONUS = 100_000
CONTIGUITY_BONUS = 1_000
ORIGIN_BONUS = 500
LENGTH_PENALTY = 1
MAX_LENGTH_PENALTY = 499

_UNMATCHED = -1


@dataclass(frozen=True, slots=True)
class SearchResult:
    entry: Entry
    score: int

    @property
    def display_name(self) -> str:
        return self.entry.name

    @property
    def launch_target(self) -> Path:
        return self.entry.launch_target

    @property
    def icon(self) -> Icon:
        return self.entry.icon


def adjacent_pairs(query: str, text: str) -> int | None:
    """Most consecutively matched character pairs over every alignment of
    `query` inside `text`, or None if `query` is not a subsequence of `text`.

    Dynamic program over match positions: ``previous[j]`` holds the best
    pair count for the query so far with its last character placed at
    ``text[j]`` (``_UNMATCHED`` where it cannot end there).
    """
    if not query:
        return 0
    if query in text:
        return len(query) - 1

    previous = [0 if char == query[0] else _UNMATCHED for char in text]
    for wanted in query[1:]:
        current = [_UNMATCHED] * len(text)
        gapped = _UNMATCHED  # best of previous[:j - 1]
        for j, char in enumerate(text):
            if j >= 2:
                gapped = max(gapped, previous[j - 2])
            if char != wanted:
                continue
            best = gapped
            if j >= 1 and previous[j - 1] != _UNMATCHED:
                best = max(best, previous[j - 1] + 1)
            current[j] = best
        previous = current

    best = max(previous, default=_UNMATCHED)
    return None if best == _UNMATCHED else best


def is_subsequence(query: str, text: str) -> bool:
    position = 0
    for char in query:
        position = text.find(char, position)
        if position < 0:
            return False
        position += 1
    return True


def score_name(query: str, name: str, origin: Origin) -> int | None:
    """Score a normalized `name` against a normalized `query`; None when it does not match."""
    pairs = adjacent_pairs(query, name)
    if pairs is None:
        return None
    score = pairs * CONTIGUITY_BONUS
    if name.startswith(query):
        score += PREFIX_BONUS
    if origin is Origin.START_MENU:
        score += ORIGIN_BONUS
    score -= min(len(name) * LENGTH_PENALTY, MAX_LENGTH_PENALTY)
    return score


class Searcher:
    """Rank index entries against keystroke queries."""

    def __init__(self, *, max_results: int = 10) -> None:
        self.max_results = max(1, max_results)

    def search(self, index: ProgramIndex, query: str) -> List[SearchResult]:
        needle = normalize_name(query)
        if not needle:
            return self.list_all(index)

        scored: list[tuple[int, str, str, int]] = []
        for position, (entry, name) in enumerate(zip(index.entries, index.names)):
            score = score_name(needle, name, entry.origin)
            if score is not None:
                scored.append((-score, name, index.identities[position], position))

        scored.sort()
        return [
            SearchResult(entry=index.entries[position], score=-negative)
            for negative, _, _, position in scored[: self.max_results]
        ]

    def list_all(self, index: ProgramIndex) -> List[SearchResult]:
        results: List[SearchResult] = []
        for entry in index.in_display_order():
            if len(results) >= self.max_results:
                break
            results.append(SearchResult(entry=entry, score=0))
        return results
