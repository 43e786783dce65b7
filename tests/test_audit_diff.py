from datetime import datetime, timezone

from spotmap.audit.diff import diff_documents, diff_spots, values_equal
from spotmap.domain.models import Spot


def _spot(**kw) -> Spot:
    base = dict(id="s1", name="Bridge", description="Rails", latitude=52.0, longitude=4.0)
    base.update(kw)
    return Spot(**base)


def test_identical_spots_have_no_changes():
    assert diff_spots(_spot(image_urls=["a"]), _spot(image_urls=["a"])) == {}


def test_scalar_change():
    changes = diff_spots(_spot(), _spot(name="Bridge gap"))
    assert changes == {"name": {"from": "Bridge", "to": "Bridge gap"}}


def test_coordinates_reported_as_location():
    changes = diff_spots(_spot(), _spot(latitude=52.5))
    assert list(changes) == ["location"]
    assert changes["location"] == {
        "from": {"latitude": 52.0, "longitude": 4.0},
        "to": {"latitude": 52.5, "longitude": 4.0},
    }


def test_list_order_matters():
    changes = diff_spots(_spot(spot_features=["wall", "rail"]), _spot(spot_features=["rail", "wall"]))
    assert changes == {"spotFeatures": {"from": ["wall", "rail"], "to": ["rail", "wall"]}}


def test_null_handling():
    assert values_equal(None, None)
    assert not values_equal(None, [])
    assert not values_equal("", None)
    changes = diff_spots(_spot(city=None), _spot(city="Utrecht"))
    assert changes == {"city": {"from": None, "to": "Utrecht"}}


def test_mappings_compare_by_size_and_values():
    assert values_equal({"a": 1, "b": [1, 2]}, {"b": [1, 2], "a": 1})
    assert not values_equal({"a": 1}, {"b": 1})
    assert not values_equal({"a": 1}, {"a": 1, "b": 2})


def test_diff_documents_serializes_datetimes_and_does_not_mutate():
    old = {"name": "x", "updatedAt": datetime(2024, 1, 1, tzinfo=timezone.utc)}
    new = {"name": "x", "updatedAt": datetime(2024, 1, 2, tzinfo=timezone.utc), "hidden": True}
    old_copy, new_copy = dict(old), dict(new)

    changes = diff_documents(old, new)

    assert changes == {
        "updatedAt": {"from": "2024-01-01T00:00:00+00:00", "to": "2024-01-02T00:00:00+00:00"},
        "hidden": {"from": None, "to": True},
    }
    assert old == old_copy
    assert new == new_copy
