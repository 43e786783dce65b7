import pytest

from spotmap.core import geohash


def test_encode_known_values():
    assert geohash.encode(57.64911, 10.40744, 11) == "u4pruydqqvj"
    assert geohash.encode(42.6, -5.6, 5) == "ezs42"


def test_decode_cell_contains_point():
    lat, lon = 52.3676, 4.9041
    gh = geohash.encode(lat, lon, 9)
    min_lat, max_lat, min_lon, max_lon = geohash.decode_cell(gh)
    assert min_lat <= lat <= max_lat
    assert min_lon <= lon <= max_lon


def test_prefix_is_coarser_cell():
    gh = geohash.encode(48.8566, 2.3522, 12)
    assert geohash.encode(48.8566, 2.3522, 6) == gh[:6]


@pytest.mark.parametrize("precision", [2, 4, 7])
def test_adjacent_cells_are_one_cell_away(precision):
    gh = geohash.encode(52.3676, 4.9041, precision)
    min_lat, max_lat, min_lon, max_lon = geohash.decode_cell(gh)
    height = max_lat - min_lat
    width = max_lon - min_lon
    lat, lon = geohash.decode(gh)

    n_lat, n_lon = geohash.decode(geohash.adjacent(gh, "n"))
    e_lat, e_lon = geohash.decode(geohash.adjacent(gh, "e"))
    s_lat, s_lon = geohash.decode(geohash.adjacent(gh, "s"))
    w_lat, w_lon = geohash.decode(geohash.adjacent(gh, "w"))

    assert (n_lat, n_lon) == pytest.approx((lat + height, lon))
    assert (s_lat, s_lon) == pytest.approx((lat - height, lon))
    assert (e_lat, e_lon) == pytest.approx((lat, lon + width))
    assert (w_lat, w_lon) == pytest.approx((lat, lon - width))


def test_neighbors_are_distinct_and_same_length():
    gh = geohash.encode(40.7128, -74.006, 6)
    around = geohash.neighbors(gh)
    assert len(around) == 8
    assert len(set(around)) == 8
    assert gh not in around
    assert all(len(cell) == len(gh) for cell in around)
    assert geohash.neighbors_with_self(gh)[0] == gh


def test_invalid_input_raises():
    with pytest.raises(ValueError):
        geohash.decode("abc!")
    with pytest.raises(ValueError):
        geohash.encode(0, 0, 0)
