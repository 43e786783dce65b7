import pytest

from spotmap.domain.models import Spot
from spotmap.ranking.wilson import (
    aggregate_ratings,
    normalize_rating,
    rank_spots,
    wilson_lower_bound,
    z_for_confidence,
)


def test_no_ratings_scores_zero():
    assert wilson_lower_bound(0, 0.0) == 0.0
    assert wilson_lower_bound(0, 5.0) == 0.0


def test_z_for_95_percent():
    assert z_for_confidence(0.95) == pytest.approx(1.959964, abs=1e-6)


def test_normalize_rating_maps_stars_to_unit_interval():
    assert normalize_rating(1.0) == 0.0
    assert normalize_rating(3.0) == 0.5
    assert normalize_rating(5.0) == 1.0
    assert normalize_rating(7.0) == 1.0


@pytest.mark.parametrize("n", [1, 5, 50, 1000])
def test_bound_is_in_range_and_below_proportion(n):
    for avg in (1.0, 1.5, 2.0, 3.0, 4.0, 4.5, 5.0):
        lb = wilson_lower_bound(n, avg)
        assert 0.0 <= lb <= 1.0
        assert lb <= normalize_rating(avg) + 1e-12


def test_bound_increases_with_average_for_fixed_count():
    values = [wilson_lower_bound(20, avg) for avg in (1.5, 2.0, 2.5, 3.0, 3.5, 4.0, 4.5, 5.0)]
    assert values == sorted(values)
    assert len(set(values)) == len(values)


def test_bound_increases_with_count_for_high_average():
    values = [wilson_lower_bound(n, 4.5) for n in (1, 2, 5, 10, 100, 1000)]
    assert values == sorted(values)


@pytest.mark.parametrize("avg", [2.0, 4.5])
def test_uncertainty_discount_shrinks_with_count(avg):
    p = normalize_rating(avg)
    discounts = [p - wilson_lower_bound(n, avg) for n in (1, 2, 5, 10, 100, 1000)]
    assert discounts == sorted(discounts, reverse=True)
    assert discounts[-1] < 0.05


def test_many_good_ratings_beat_few_perfect_ones():
    assert wilson_lower_bound(200, 4.5) > wilson_lower_bound(2, 5.0)


def test_aggregate_ratings():
    empty = aggregate_ratings([])
    assert (empty.average_rating, empty.rating_count, empty.wilson_lower_bound) == (0.0, 0, 0.0)

    agg = aggregate_ratings([5, 4])
    assert agg.average_rating == 4.5
    assert agg.rating_count == 2
    assert agg.wilson_lower_bound == pytest.approx(wilson_lower_bound(2, 4.5))
    assert agg.as_update() == {
        "averageRating": 4.5,
        "ratingCount": 2,
        "wilsonLowerBound": agg.wilson_lower_bound,
    }


def test_rank_spots_breaks_ties_with_ranking():
    a = Spot(id="a", name="a", wilson_lower_bound=0.8, ranking=0.1)
    b = Spot(id="b", name="b", wilson_lower_bound=0.0, ranking=0.9)
    c = Spot(id="c", name="c", wilson_lower_bound=0.0, ranking=0.2)
    d = Spot(id="d", name="d", wilson_lower_bound=0.9, ranking=None)
    assert [s.id for s in rank_spots([c, b, a, d])] == ["d", "a", "b", "c"]
