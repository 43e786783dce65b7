"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- stored entities (`Spot`, `Rating`, `AuditLogEntry`)
- operation inputs (`MergeOptions`, `Actor`)
- plain results handed back to the UI layer (`SpotQueryResult`, `MergeOutcome`, `JobReport`, ...)

Field names are snake_case in Python; the camelCase document names used by the
store are produced by the alias generator and only matter to `spotmap.store.codec`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Spot(_DocumentModel):
    """A point of interest (parkour spot)."""

    id: str | None = None
    name: str = ""
    description: str = ""
    latitude: float = Field(0.0, ge=-90, le=90)
    longitude: float = Field(0.0, ge=-180, le=180)
    geohash: str | None = None

    address: str | None = None
    city: str | None = None
    country_code: str | None = None

    image_urls: list[str] = Field(default_factory=list)
    youtube_video_ids: list[str] = Field(default_factory=list)

    spot_access: list[str] = Field(default_factory=list)
    spot_features: list[str] = Field(default_factory=list)
    spot_facilities: list[str] = Field(default_factory=list)
    good_for: list[str] = Field(default_factory=list)

    created_by: str | None = None
    created_by_name: str | None = None
    spot_source: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    average_rating: float = 0.0
    rating_count: int = Field(0, ge=0)
    wilson_lower_bound: float = Field(0.0, ge=0, le=1)
    ranking: float | None = None

    is_public: bool = True
    hidden: bool = False
    duplicate_of: str | None = None

    @field_validator("image_urls", "youtube_video_ids", "spot_access", "spot_features", "spot_facilities", "good_for", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def is_native(self) -> bool:
        return self.spot_source is None


class Rating(_DocumentModel):
    """One user's rating of one spot; unique per (spot_id, user_id)."""

    id: str | None = None
    spot_id: str
    user_id: str
    rating: float
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AuditAction(str, Enum):
    EDIT = "edit"
    MARKED_DUPLICATE = "markedDuplicate"
    HIDDEN = "hidden"
    UNHIDDEN = "unhidden"
    REPORT_STATUS_CHANGE = "reportStatusChange"
    DELETE = "delete"


class AuditLogEntry(BaseModel):
    """Immutable audit record; `changes` holds a field diff, `metadata` free-form context."""

    id: str | None = None
    action: AuditAction
    spot_id: str
    report_id: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    timestamp: datetime | None = None
    changes: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


class Actor(BaseModel):
    """Who performed a moderated action (None for system actions)."""

    user_id: str | None = None
    user_name: str | None = None


class MergeOptions(BaseModel):
    """Which fields of the duplicate are folded into the original record."""

    transfer_photos: bool = False
    transfer_youtube_links: bool = False
    overwrite_name: bool = False
    overwrite_description: bool = False
    overwrite_location: bool = False
    overwrite_spot_attributes: bool = False


class DuplicateFailure(str, Enum):
    ORIGINAL_NOT_FOUND = "ORIGINAL_NOT_FOUND"
    DUPLICATE_NOT_FOUND = "DUPLICATE_NOT_FOUND"
    SELF_REFERENCE = "SELF_REFERENCE"
    CHAIN_NOT_ALLOWED = "CHAIN_NOT_ALLOWED"
    ORIGINAL_MUST_BE_NATIVE = "ORIGINAL_MUST_BE_NATIVE"

    @property
    def message(self) -> str:
        return _DUPLICATE_FAILURE_MESSAGES[self]


_DUPLICATE_FAILURE_MESSAGES = {
    DuplicateFailure.ORIGINAL_NOT_FOUND: "Original spot not found",
    DuplicateFailure.DUPLICATE_NOT_FOUND: "Duplicate spot not found",
    DuplicateFailure.SELF_REFERENCE: "Cannot mark a spot as duplicate of itself",
    DuplicateFailure.CHAIN_NOT_ALLOWED: "Cannot mark as duplicate of a spot that is already a duplicate",
    DuplicateFailure.ORIGINAL_MUST_BE_NATIVE: "Original spot must be a native spot, not from an external source",
}


class MergeOutcome(BaseModel):
    """Result of `mark_as_duplicate`; exactly one of success / failure / error applies."""

    success: bool
    failure: DuplicateFailure | None = None
    error: str | None = None
    original_updates: dict[str, Any] = Field(default_factory=dict)

    @property
    def reason(self) -> str | None:
        if self.failure is not None:
            return self.failure.message
        return self.error


class SpotQueryResult(BaseModel):
    """Spots returned by a bounded query, or an empty list plus an error string."""

    spots: list[Spot] = Field(default_factory=list)
    error: str | None = None


class TopRankedResult(BaseModel):
    spots: list[Spot] = Field(default_factory=list)
    total_count: int = 0
    shown_count: int = 0
    average_wilson: float = 0.0
    error: str | None = None


class RatingStats(BaseModel):
    average_rating: float = 0.0
    rating_count: int = 0


class JobReport(BaseModel):
    """Counters accumulated by a scan-all batch job."""

    job: str
    processed: int = 0
    matched: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": int(self.processed),
            "matched": int(self.matched),
            "updated": int(self.updated),
            "skipped": int(self.skipped),
            "failed": int(self.failed),
        }
