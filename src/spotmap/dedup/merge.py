"""
Duplicate-merge rules.

Marking spot B as a duplicate of spot A is a one-level pointer (`B.duplicateOf = A`)
plus an optional fold of B's content into A. This module holds the pure parts:
- `validate_duplicate_pair`: precondition checks, first failure wins
- `plan_original_updates`: the field updates to apply to A for a set of options

Writes happen in `spotmap.services.spots.SpotService.mark_as_duplicate`.
"""

from __future__ import annotations

from typing import Any, Sequence

from spotmap.domain.models import DuplicateFailure, MergeOptions, Spot


def validate_duplicate_pair(
    duplicate_id: str,
    original_id: str,
    *,
    duplicate: Spot | None,
    original: Spot | None,
) -> DuplicateFailure | None:
    """Return the first violated precondition, or None when the pair may be merged."""
    if original is None:
        return DuplicateFailure.ORIGINAL_NOT_FOUND
    if duplicate is None:
        return DuplicateFailure.DUPLICATE_NOT_FOUND
    if duplicate_id == original_id:
        return DuplicateFailure.SELF_REFERENCE
    if original.duplicate_of is not None:
        return DuplicateFailure.CHAIN_NOT_ALLOWED
    if original.spot_source is not None:
        return DuplicateFailure.ORIGINAL_MUST_BE_NATIVE
    return None


def union_preserving_order(existing: Sequence[str], incoming: Sequence[str]) -> list[str]:
    """`existing` in order, then unseen items of `incoming` in their order."""
    seen = set(existing)
    out = list(existing)
    for item in incoming:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def plan_original_updates(original: Spot, duplicate: Spot, options: MergeOptions) -> dict[str, Any]:
    """Compute document updates for the original spot; empty when nothing changes.

    Overwrite-location treats coordinates as one unit and address/city/countryCode
    independently, so a merge can take new coordinates while keeping the old city.
    """
    updates: dict[str, Any] = {}

    if options.transfer_photos and duplicate.image_urls:
        merged = union_preserving_order(original.image_urls, duplicate.image_urls)
        if len(merged) > len(original.image_urls):
            updates["imageUrls"] = merged

    if options.transfer_youtube_links and duplicate.youtube_video_ids:
        merged = union_preserving_order(original.youtube_video_ids, duplicate.youtube_video_ids)
        if len(merged) > len(original.youtube_video_ids):
            updates["youtubeVideoIds"] = merged

    if options.overwrite_name and duplicate.name:
        updates["name"] = duplicate.name

    if options.overwrite_description and duplicate.description:
        updates["description"] = duplicate.description

    if options.overwrite_location:
        if duplicate.latitude != 0.0 and duplicate.longitude != 0.0:
            updates["latitude"] = duplicate.latitude
            updates["longitude"] = duplicate.longitude
        if duplicate.address:
            updates["address"] = duplicate.address
        if duplicate.city:
            updates["city"] = duplicate.city
        if duplicate.country_code:
            updates["countryCode"] = duplicate.country_code

    if options.overwrite_spot_attributes:
        for doc_field, attr in (
            ("spotAccess", "spot_access"),
            ("spotFeatures", "spot_features"),
            ("spotFacilities", "spot_facilities"),
            ("goodFor", "good_for"),
        ):
            value = getattr(duplicate, attr)
            if value:
                updates[doc_field] = list(value)

    return updates
