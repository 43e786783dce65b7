"""
Field-level change sets for audit logging.

`diff_spots(old, new)` returns `{field: {"from": ..., "to": ...}}` for tracked spot
fields whose value changed. Pure functions: no I/O, no mutation of the inputs.

Equality policy:
- None vs None is equal; None vs anything else is a change
- lists compare element-wise in order
- mappings compare by size and per-key values
- everything else uses `==`
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from spotmap.core.time import to_iso
from spotmap.domain.models import Spot

# (document field name, attribute on Spot) in the order changes are reported.
TRACKED_SPOT_FIELDS: tuple[tuple[str, str], ...] = (
    ("name", "name"),
    ("description", "description"),
    ("address", "address"),
    ("city", "city"),
    ("countryCode", "country_code"),
    ("imageUrls", "image_urls"),
    ("youtubeVideoIds", "youtube_video_ids"),
    ("spotAccess", "spot_access"),
    ("spotFeatures", "spot_features"),
    ("spotFacilities", "spot_facilities"),
    ("goodFor", "good_for"),
    ("duplicateOf", "duplicate_of"),
)


def values_equal(old: Any, new: Any) -> bool:
    if old is None and new is None:
        return True
    if old is None or new is None:
        return False
    if isinstance(old, (list, tuple)) and isinstance(new, (list, tuple)):
        if len(old) != len(new):
            return False
        return all(values_equal(a, b) for a, b in zip(old, new))
    if isinstance(old, Mapping) and isinstance(new, Mapping):
        if len(old) != len(new):
            return False
        return all(key in new and values_equal(old[key], new[key]) for key in old)
    return old == new


def serialize_value(value: Any) -> Any:
    """Make a value storable in an audit payload (datetimes -> ISO-8601)."""
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, tuple):
        return [serialize_value(v) for v in value]
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    if isinstance(value, Mapping):
        return {k: serialize_value(v) for k, v in value.items()}
    return value


def _change(old: Any, new: Any) -> dict[str, Any]:
    return {"from": serialize_value(old), "to": serialize_value(new)}


def diff_documents(old: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Diff two raw snapshots over the union of their keys (missing reads as None)."""
    changes: dict[str, dict[str, Any]] = {}
    for key in [*old.keys(), *(k for k in new.keys() if k not in old)]:
        before = old.get(key)
        after = new.get(key)
        if not values_equal(before, after):
            changes[key] = _change(before, after)
    return changes


def diff_spots(old: Spot, new: Spot) -> dict[str, dict[str, Any]]:
    """Diff the user-editable fields of two versions of one spot.

    Latitude/longitude are reported together as `location`.
    """
    changes: dict[str, dict[str, Any]] = {}

    for doc_field, attr in TRACKED_SPOT_FIELDS[:2]:
        before, after = getattr(old, attr), getattr(new, attr)
        if not values_equal(before, after):
            changes[doc_field] = _change(before, after)

    if old.latitude != new.latitude or old.longitude != new.longitude:
        changes["location"] = _change(
            {"latitude": old.latitude, "longitude": old.longitude},
            {"latitude": new.latitude, "longitude": new.longitude},
        )

    for doc_field, attr in TRACKED_SPOT_FIELDS[2:]:
        before, after = getattr(old, attr), getattr(new, attr)
        if not values_equal(before, after):
            changes[doc_field] = _change(before, after)

    return changes
