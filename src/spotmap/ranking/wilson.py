"""
Rating aggregation and Wilson-score ranking.

Spots are ranked by the lower bound of the Wilson score interval of their
normalized average rating, so a spot with two 5-star ratings does not outrank
one with two hundred 4.5-star ratings. Ties (notably every unrated spot at 0)
are broken by `ranking`, a random value assigned once at creation.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from functools import lru_cache
from math import sqrt
from statistics import NormalDist
from typing import Iterable, Sequence

from spotmap.domain.models import Spot


def clamp01(x: float) -> float:
    """Clamp a number into the [0.0, 1.0] range."""
    return max(0.0, min(1.0, float(x)))


@lru_cache(maxsize=32)
def z_for_confidence(confidence: float) -> float:
    """Two-sided z-score for `confidence` (0.95 -> ~1.96)."""
    if not 0 < confidence < 1:
        raise ValueError("confidence must be in (0, 1)")
    return NormalDist().inv_cdf(1 - (1 - confidence) / 2)


def normalize_rating(average: float, *, min_rating: float = 1.0, max_rating: float = 5.0) -> float:
    """Map a star average onto a [0, 1] success proportion (1 star -> 0, 5 stars -> 1)."""
    if max_rating <= min_rating:
        raise ValueError("max_rating must be greater than min_rating")
    return clamp01((float(average) - min_rating) / (max_rating - min_rating))


def wilson_lower_bound(
    rating_count: int,
    average_rating: float,
    confidence: float = 0.95,
    *,
    min_rating: float = 1.0,
    max_rating: float = 5.0,
) -> float:
    """Lower bound of the Wilson score interval for a star-rating average.

    Returns 0.0 when there are no ratings. The result is always in [0, 1] and never
    exceeds the normalized average.
    """
    n = int(rating_count)
    if n <= 0:
        return 0.0
    p = normalize_rating(average_rating, min_rating=min_rating, max_rating=max_rating)
    z = z_for_confidence(confidence)
    z2 = z * z
    centre = p + z2 / (2 * n)
    margin = z * sqrt((p * (1 - p) + z2 / (4 * n)) / n)
    return clamp01((centre - margin) / (1 + z2 / n))


@dataclass(frozen=True)
class RatingAggregate:
    """Cached aggregate fields folded from a spot's Rating records."""

    average_rating: float
    rating_count: int
    wilson_lower_bound: float

    def as_update(self) -> dict[str, float | int]:
        return {
            "averageRating": self.average_rating,
            "ratingCount": self.rating_count,
            "wilsonLowerBound": self.wilson_lower_bound,
        }


def aggregate_ratings(
    ratings: Iterable[float],
    *,
    confidence: float = 0.95,
    min_rating: float = 1.0,
    max_rating: float = 5.0,
) -> RatingAggregate:
    values = [float(r) for r in ratings]
    if not values:
        return RatingAggregate(average_rating=0.0, rating_count=0, wilson_lower_bound=0.0)
    avg = sum(values) / len(values)
    return RatingAggregate(
        average_rating=avg,
        rating_count=len(values),
        wilson_lower_bound=wilson_lower_bound(
            len(values), avg, confidence, min_rating=min_rating, max_rating=max_rating
        ),
    )


def new_ranking_seed(rng: random.Random | None = None) -> float:
    """Random tie-breaker assigned exactly once when a spot is created."""
    return (rng or random).random()


def rank_key(spot: Spot) -> tuple[float, float]:
    return (float(spot.wilson_lower_bound), float(spot.ranking or 0.0))


def rank_spots(spots: Sequence[Spot]) -> list[Spot]:
    """Sort by Wilson lower bound, then ranking tie-breaker, both descending."""
    return sorted(spots, key=rank_key, reverse=True)
