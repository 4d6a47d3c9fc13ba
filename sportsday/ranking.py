"""Standard competition ranking ("1224") for scores and point totals."""

from __future__ import annotations

from decimal import Decimal
from operator import attrgetter
from typing import Callable, Iterable, TypeVar

from . import models

T = TypeVar("T")

__all__ = ["competition_ranks", "rank_values", "rank_scores"]


def competition_ranks(
    items: Iterable[T],
    *,
    key: Callable[[T], Decimal | float | int],
    descending: bool,
) -> list[tuple[T, int]]:
    """Return ``(item, rank)`` pairs in ranked order.

    Tied values share a rank and the next distinct value resumes at its
    1-based position in the sorted sequence, so ``[10, 10, 8]`` ranks as
    ``[1, 1, 3]``.
    """

    ordered = sorted(items, key=key, reverse=descending)
    ranked: list[tuple[T, int]] = []
    running_rank = 0
    last_value = None
    for idx, item in enumerate(ordered, start=1):
        value = key(item)
        if last_value is None or value != last_value:
            running_rank = idx
            last_value = value
        ranked.append((item, running_rank))
    return ranked


def rank_values(values: list, ranking_mode: str) -> list[int]:
    """Rank raw values, returning the ranks aligned with the input order."""

    descending = ranking_mode != models.Competition.RankingMode.LOWER_FIRST
    ranked = competition_ranks(enumerate(values), key=lambda pair: pair[1], descending=descending)
    ranks = [0] * len(values)
    for (index, _value), rank in ranked:
        ranks[index] = rank
    return ranks


def rank_scores(scores: Iterable[models.Score], ranking_mode: str) -> list[models.Score]:
    """Assign ``ranking`` on each score in place; nothing is saved."""

    descending = ranking_mode != models.Competition.RankingMode.LOWER_FIRST
    ranked = competition_ranks(scores, key=attrgetter("value"), descending=descending)
    for score, rank in ranked:
        score.ranking = rank
    return [score for score, _rank in ranked]
