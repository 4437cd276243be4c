"""Best-name matching of catalog products against a CardQuery."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

from rapidfuzz import fuzz

from tcgprice.pricing import CardQuery

T = TypeVar("T")


def match_score(candidate_name: str, query: CardQuery) -> float:
    """
    0-100 similarity between a catalog name and the query.

    Mean of token-set and token-sort ratios, so extra words in either
    name cost something, plus a small bonus when the collector number
    appears in the candidate (catalogs often append it).
    """
    candidate = candidate_name.lower()
    wanted = query.name.lower()
    score = (fuzz.token_set_ratio(candidate, wanted) + fuzz.token_sort_ratio(candidate, wanted)) / 2
    if query.card_number and query.card_number.split("/")[0] in candidate_name:
        score += 5
    return float(score)


def best_match(
    candidates: Sequence[T],
    query: CardQuery,
    name_of: Callable[[T], str],
) -> T | None:
    """Highest-scoring candidate; ties keep catalog order. None if empty."""
    best: T | None = None
    best_score = -1.0
    for candidate in candidates:
        score = match_score(name_of(candidate) or "", query)
        if score > best_score:
            best, best_score = candidate, score
    return best
