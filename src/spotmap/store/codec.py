"""
Document <-> domain model conversion.

This is the only place that knows about stored field names and raw string tags:
- `Spot`/`Rating` documents use camelCase keys (pydantic aliases)
- audit actions are stored as the legacy enum-name strings (`spotEdit`, ...)
- legacy spot shapes (`imageUrl`, GeoPoint `location`) are normalized on read
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Iterable

from pydantic import ValidationError

from spotmap.domain.models import AuditAction, AuditLogEntry, Rating, Spot
from spotmap.store.base import Document

logger = logging.getLogger(__name__)

# Fields the store owns (id) or that are derived on write.
_SPOT_EXCLUDE_ON_WRITE = {"id"}

# Imported records may store null for these; read them as the model default.
_NULL_MEANS_DEFAULT = (
    "name",
    "description",
    "latitude",
    "longitude",
    "averageRating",
    "ratingCount",
    "wilsonLowerBound",
    "isPublic",
    "hidden",
)

_AUDIT_ACTION_TO_RAW: dict[AuditAction, str] = {
    AuditAction.EDIT: "spotEdit",
    AuditAction.MARKED_DUPLICATE: "spotMarkedAsDuplicate",
    AuditAction.HIDDEN: "spotHidden",
    AuditAction.UNHIDDEN: "spotUnhidden",
    AuditAction.REPORT_STATUS_CHANGE: "spotReportStatusChange",
    AuditAction.DELETE: "spotDelete",
}
_RAW_TO_AUDIT_ACTION = {raw: action for action, raw in _AUDIT_ACTION_TO_RAW.items()}


def encode_audit_action(action: AuditAction) -> str:
    return _AUDIT_ACTION_TO_RAW[action]


def decode_audit_action(raw: str) -> AuditAction:
    try:
        return _RAW_TO_AUDIT_ACTION[raw]
    except KeyError:
        raise ValueError(f"Unknown audit action: {raw!r}") from None


def read_lat_lng(value: Any) -> tuple[float, float] | None:
    """Extract (lat, lng) from a GeoPoint-like object or a mapping; None if absent."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        lat = value.get("latitude", value.get("lat"))
        lng = value.get("longitude", value.get("lng", value.get("lon")))
    else:
        lat = getattr(value, "latitude", None)
        lng = getattr(value, "longitude", None)
    if lat is None or lng is None:
        return None
    return float(lat), float(lng)


def spot_from_document(doc: Document) -> Spot:
    data = dict(doc.data)
    if "imageUrls" not in data and data.get("imageUrl"):
        data["imageUrls"] = [data["imageUrl"]]
    if data.get("latitude") is None or data.get("longitude") is None:
        legacy = read_lat_lng(data.get("location"))
        if legacy is not None:
            data["latitude"], data["longitude"] = legacy
    for key in _NULL_MEANS_DEFAULT:
        if key in data and data[key] is None:
            del data[key]
    data["id"] = doc.id
    return Spot.model_validate(data)


def spots_from_documents(docs: Iterable[Document]) -> list[Spot]:
    """Decode many documents, skipping (and logging) malformed records."""
    out: list[Spot] = []
    for doc in docs:
        try:
            out.append(spot_from_document(doc))
        except ValidationError as exc:
            logger.warning("Skipping malformed spot %s: %s", doc.id, exc.error_count())
    return out


def spot_to_document(spot: Spot) -> dict[str, Any]:
    """Full document payload, including explicit nulls (e.g. `duplicateOf: null`)."""
    return spot.model_dump(by_alias=True, exclude=_SPOT_EXCLUDE_ON_WRITE)


def rating_from_document(doc: Document) -> Rating:
    data = dict(doc.data)
    data["id"] = doc.id
    data.setdefault("spotId", "")
    data.setdefault("userId", "")
    data["rating"] = float(data.get("rating") or 0.0)
    return Rating.model_validate(data)


def rating_to_document(rating: Rating) -> dict[str, Any]:
    return rating.model_dump(by_alias=True, exclude={"id"})


def audit_entry_to_document(entry: AuditLogEntry) -> dict[str, Any]:
    out: dict[str, Any] = {
        "action": encode_audit_action(entry.action),
        "spotId": entry.spot_id,
        "userId": entry.user_id,
        "userName": entry.user_name,
        "timestamp": entry.timestamp,
    }
    if entry.report_id is not None:
        out["reportId"] = entry.report_id
    if entry.changes is not None:
        out["changes"] = entry.changes
    if entry.metadata is not None:
        out["metadata"] = entry.metadata
    return out


def audit_entry_from_document(doc: Document) -> AuditLogEntry:
    data = doc.data
    return AuditLogEntry(
        id=doc.id,
        action=decode_audit_action(str(data.get("action"))),
        spot_id=str(data.get("spotId") or ""),
        report_id=data.get("reportId"),
        user_id=data.get("userId"),
        user_name=data.get("userName"),
        timestamp=data.get("timestamp"),
        changes=data.get("changes"),
        metadata=data.get("metadata"),
    )
