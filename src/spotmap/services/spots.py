from __future__ import annotations

# Service boundary for spots.
# It wires together:
# - the document store (reads, range queries, batched writes)
# - pure helpers (bounding box, antimeridian split, merge plan, diff, Wilson bound)
# - the audit log and the optional callable endpoint
#
# Contract with callers (UI layer, API, CLI):
# - backend exceptions never escape; they are logged, published on the event bus,
#   and turned into a safe default or a result object carrying `error`
# - validation failures come back as typed values (`DuplicateFailure`), not exceptions

import logging
import random
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Sequence

from pydantic import ValidationError

from spotmap.audit.diff import diff_spots
from spotmap.audit.log import AuditLog
from spotmap.config.settings import Settings, get_settings
from spotmap.core import geohash
from spotmap.core.events import EventBus
from spotmap.core.geo import BoundingBox, bounding_box, haversine_km, split_antimeridian
from spotmap.core.time import utc_now
from spotmap.dedup.merge import plan_original_updates, validate_duplicate_pair
from spotmap.domain.models import (
    Actor,
    JobReport,
    MergeOptions,
    MergeOutcome,
    Rating,
    RatingStats,
    Spot,
    SpotQueryResult,
    TopRankedResult,
)
from spotmap.jobs.backfill import JOBS
from spotmap.ranking.wilson import RatingAggregate, aggregate_ratings, new_ranking_seed, rank_spots
from spotmap.remote.callable import CallableClient, CallableError
from spotmap.store.base import SERVER_TIMESTAMP, Document, DocumentStore, Filter, StoreError
from spotmap.store.codec import (
    rating_from_document,
    rating_to_document,
    spot_from_document,
    spot_to_document,
    spots_from_documents,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = Actor()

REPORT_STATUSES = ("New", "In Progress", "Done")

# Fields only the rating recompute path may write.
_AGGREGATE_FIELDS = ("average_rating", "rating_count", "wilson_lower_bound")


class SpotService:
    """Request/response operations over spots; UI reactivity goes through `events`."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        settings: Settings | None = None,
        audit: AuditLog | None = None,
        events: EventBus | None = None,
        functions: CallableClient | None = None,
        rng: random.Random | None = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        cols = self._settings.store.collections
        self._spots = cols.spots
        self._ratings = cols.ratings
        self._users = cols.users
        self._reports = cols.spot_reports
        self._audit = audit or AuditLog(
            store, collection=cols.audit_log, default_limit=self._settings.audit.default_limit
        )
        self.events = events or EventBus()
        self._functions = functions
        self._rng = rng

    @property
    def audit(self) -> AuditLog:
        return self._audit

    # ------------------------------------------------------------------ plumbing

    @contextmanager
    def _busy(self, operation: str) -> Iterator[None]:
        self.events.publish("loading", operation=operation, active=True)
        try:
            yield
        finally:
            self.events.publish("loading", operation=operation, active=False)

    def _fail(self, operation: str, exc: Exception) -> str:
        message = f"Failed to {operation}: {exc}"
        logger.warning(message)
        self.events.publish("error", operation=operation, message=message)
        return message

    def _changed(self, action: str, *spot_ids: str) -> None:
        self.events.publish("spots.changed", action=action, spot_ids=list(spot_ids))

    def _geohash(self, lat: float, lon: float) -> str:
        return geohash.encode(lat, lon, self._settings.geo.geohash_precision)

    def _load(self, spot_id: str) -> Spot | None:
        doc = self._store.get(self._spots, spot_id)
        if doc is None:
            return None
        try:
            return spot_from_document(doc)
        except ValidationError as exc:
            raise StoreError(f"spot {spot_id} is malformed: {exc.error_count()} invalid field(s)") from exc

    def _actor(self, actor: Actor | None) -> Actor:
        """Fill a missing display name from the users collection; None means system."""
        if actor is None:
            return SYSTEM_ACTOR
        if not actor.user_id or actor.user_name:
            return actor
        try:
            user = self._store.get(self._users, actor.user_id)
        except StoreError as exc:
            logger.warning("User lookup failed for %s: %s", actor.user_id, exc)
            return actor
        name = (user.data.get("displayName") or user.data.get("email")) if user is not None else None
        return actor.model_copy(update={"user_name": name}) if name else actor

    # ------------------------------------------------------------------ CRUD

    def get_spot(self, spot_id: str) -> Spot | None:
        try:
            return self._load(spot_id)
        except StoreError as exc:
            self._fail("fetch spot", exc)
            return None

    def create_spot(self, spot: Spot) -> str | None:
        """Persist a new spot; assigns `ranking` once and clears `duplicateOf`."""
        if not spot.name.strip():
            self._fail("create spot", ValueError("name must not be empty"))
            return None
        now = utc_now()
        to_store = spot.model_copy(
            update={
                "id": None,
                "created_at": now,
                "updated_at": now,
                "ranking": spot.ranking if spot.ranking is not None else new_ranking_seed(self._rng),
                "duplicate_of": None,
                "geohash": spot.geohash or self._geohash(spot.latitude, spot.longitude),
            }
        )
        with self._busy("create_spot"):
            try:
                spot_id = self._store.add(self._spots, spot_to_document(to_store))
            except StoreError as exc:
                self._fail("create spot", exc)
                return None
        self._changed("created", spot_id)
        return spot_id

    def create_native_spot_from_existing(self, source: Spot, created_by: str, created_by_name: str) -> str | None:
        """Copy an (often imported) spot into a new native record owned by `created_by`."""
        native = Spot(
            name=source.name,
            description=source.description,
            latitude=source.latitude,
            longitude=source.longitude,
            address=source.address,
            city=source.city,
            country_code=source.country_code,
            image_urls=list(source.image_urls),
            youtube_video_ids=list(source.youtube_video_ids),
            spot_access=list(source.spot_access),
            spot_features=list(source.spot_features),
            spot_facilities=list(source.spot_facilities),
            good_for=list(source.good_for),
            created_by=created_by,
            created_by_name=created_by_name,
        )
        return self.create_spot(native)

    def update_spot(self, spot: Spot, *, actor: Actor | None = None) -> bool:
        """Save edits to an existing spot.

        `ranking`, creation provenance and the rating aggregate are carried over from
        the stored record. When `actor` is given, the field diff is audit-logged.
        """
        if not spot.id:
            self._fail("update spot", ValueError("spot.id is required"))
            return False
        with self._busy("update_spot"):
            try:
                old = self._load(spot.id)
                if old is None:
                    self._fail("update spot", LookupError(f"spot {spot.id} not found"))
                    return False

                keep: dict[str, Any] = {
                    "ranking": old.ranking,
                    "created_at": old.created_at,
                    "created_by": old.created_by,
                    "created_by_name": old.created_by_name,
                    "duplicate_of": old.duplicate_of,
                }
                keep.update({f: getattr(old, f) for f in _AGGREGATE_FIELDS})
                if (spot.latitude, spot.longitude) != (old.latitude, old.longitude) or not spot.geohash:
                    keep["geohash"] = self._geohash(spot.latitude, spot.longitude)
                new = spot.model_copy(update=keep)

                doc = spot_to_document(new)
                doc["updatedAt"] = SERVER_TIMESTAMP
                self._store.update(self._spots, spot.id, doc)
            except StoreError as exc:
                self._fail("update spot", exc)
                return False

        if actor is not None:
            changes = diff_spots(old, new)
            if changes:
                self._audit.log_spot_edit(spot.id, self._actor(actor), changes)
        self._changed("updated", spot.id)
        return True

    def delete_spot(self, spot_id: str, *, actor: Actor | None = None) -> bool:
        with self._busy("delete_spot"):
            try:
                existing = self._store.get(self._spots, spot_id)
                self._store.delete(self._spots, spot_id)
            except StoreError as exc:
                self._fail("delete spot", exc)
                return False
        metadata = None
        if existing is not None:
            metadata = {"name": existing.data.get("name"), "spotSource": existing.data.get("spotSource")}
        self._audit.log_spot_delete(spot_id, self._actor(actor), metadata)
        self._changed("deleted", spot_id)
        return True

    def delete_spots(self, spot_ids: Sequence[str], *, actor: Actor | None = None) -> dict[str, int]:
        deleted = 0
        failed = 0
        for spot_id in spot_ids:
            if self.delete_spot(spot_id, actor=actor):
                deleted += 1
            else:
                failed += 1
        return {"deleted": deleted, "failed": failed}

    def set_spot_hidden(self, spot_id: str, hidden: bool, *, actor: Actor | None = None) -> bool:
        verb = "hide" if hidden else "unhide"
        with self._busy("set_spot_hidden"):
            try:
                if self._store.get(self._spots, spot_id) is None:
                    self._fail(f"{verb} spot", LookupError(f"spot {spot_id} not found"))
                    return False
                self._store.update(self._spots, spot_id, {"hidden": hidden, "updatedAt": SERVER_TIMESTAMP})
            except StoreError as exc:
                self._fail(f"{verb} spot", exc)
                return False
        self._audit.log_spot_hidden(spot_id, hidden, self._actor(actor))
        self._changed("hidden" if hidden else "unhidden", spot_id)
        return True

    def update_report_status(self, report_id: str, status: str, *, actor: Actor | None = None) -> bool:
        """Move a spot report to `status` and audit the transition.

        Raises:
            ValueError: If `status` is not one of `REPORT_STATUSES`.
        """
        if status not in REPORT_STATUSES:
            raise ValueError(f"Invalid report status: {status!r}")
        try:
            report = self._store.get(self._reports, report_id)
            if report is None:
                self._fail("update report status", LookupError(f"report {report_id} not found"))
                return False
            old_status = str(report.data.get("status") or REPORT_STATUSES[0])
            spot_id = str(report.data.get("spotId") or "")
            self._store.update(self._reports, report_id, {"status": status, "updatedAt": SERVER_TIMESTAMP})
        except StoreError as exc:
            self._fail("update report status", exc)
            return False
        self._audit.log_report_status_change(report_id, spot_id, old_status, status, self._actor(actor))
        return True

    # ------------------------------------------------------------------ ratings

    def _rating_docs(self, spot_id: str, user_id: str | None = None) -> list[Document]:
        filters = [Filter("spotId", "==", spot_id)]
        if user_id is not None:
            filters.append(Filter("userId", "==", user_id))
        return self._store.query(self._ratings, filters=filters)

    def rate_spot(self, spot_id: str, rating: float, user_id: str) -> bool:
        """Create or replace `user_id`'s rating of `spot_id`."""
        ranking = self._settings.ranking
        if not user_id:
            self._fail("rate spot", ValueError("user id is required"))
            return False
        if not ranking.min_rating <= float(rating) <= ranking.max_rating:
            self._fail("rate spot", ValueError(f"rating must be in [{ranking.min_rating}, {ranking.max_rating}]"))
            return False
        try:
            existing = self._rating_docs(spot_id, user_id)
            if existing:
                self._store.update(
                    self._ratings, existing[0].id, {"rating": float(rating), "updatedAt": SERVER_TIMESTAMP}
                )
            else:
                doc = rating_to_document(Rating(spot_id=spot_id, user_id=user_id, rating=float(rating)))
                doc["createdAt"] = doc["updatedAt"] = SERVER_TIMESTAMP
                self._store.add(self._ratings, doc)
        except StoreError as exc:
            self._fail("rate spot", exc)
            return False

        if ranking.refresh_on_rate:
            self.refresh_rating_aggregate(spot_id)
        return True

    def refresh_rating_aggregate(self, spot_id: str) -> RatingAggregate | None:
        """Refold one spot's ratings into its cached aggregate fields."""
        ranking = self._settings.ranking
        try:
            values = [float(d.data.get("rating") or 0.0) for d in self._rating_docs(spot_id)]
            agg = aggregate_ratings(
                values,
                confidence=ranking.confidence,
                min_rating=ranking.min_rating,
                max_rating=ranking.max_rating,
            )
            self._store.update(self._spots, spot_id, agg.as_update())
        except StoreError as exc:
            self._fail("refresh rating aggregate", exc)
            return None
        self._changed("rated", spot_id)
        return agg

    def get_user_rating(self, spot_id: str, user_id: str) -> float | None:
        try:
            docs = self._rating_docs(spot_id, user_id)
        except StoreError as exc:
            self._fail("fetch user rating", exc)
            return None
        if not docs or docs[0].data.get("rating") is None:
            return None
        return float(docs[0].data["rating"])

    def get_spot_ratings(self, spot_id: str) -> list[Rating]:
        try:
            return [rating_from_document(d) for d in self._rating_docs(spot_id)]
        except StoreError as exc:
            self._fail("fetch spot ratings", exc)
            return []

    def get_spot_rating_stats(self, spot_id: str) -> RatingStats:
        """Cached aggregate of a spot (zeros if the spot is missing or unreadable)."""
        spot = self.get_spot(spot_id)
        if spot is None:
            return RatingStats()
        return RatingStats(average_rating=spot.average_rating, rating_count=spot.rating_count)

    # ------------------------------------------------------------------ bounded queries

    def _query_band(self, box: BoundingBox) -> list[Spot]:
        # The store accepts range filters on one field only: latitude goes to the
        # server, longitude is filtered here.
        docs = self._store.query(
            self._spots,
            filters=[
                Filter("isPublic", "==", True),
                Filter("latitude", ">=", box.min_lat),
                Filter("latitude", "<=", box.max_lat),
            ],
        )
        return [s for s in spots_from_documents(docs) if not s.hidden]

    def query_bounds(self, box: BoundingBox) -> SpotQueryResult:
        """Public spots inside `box`.

        Both halves of a seam-crossing box share one latitude band, so the band is
        read once and each half is applied to it.
        """
        with self._busy("query_bounds"):
            try:
                band = self._query_band(box)
            except StoreError as exc:
                return SpotQueryResult(spots=[], error=self._fail("fetch spots in bounds", exc))
        spots: list[Spot] = []
        for part in split_antimeridian(box):
            spots.extend(s for s in band if part.contains(s.latitude, s.longitude))
        return SpotQueryResult(spots=spots)

    def get_spots_in_bounds(self, min_lat: float, max_lat: float, min_lon: float, max_lon: float) -> SpotQueryResult:
        return self.query_bounds(BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lon=min_lon, max_lon=max_lon))

    def get_spots_nearby(self, lat: float, lon: float, radius_km: float) -> SpotQueryResult:
        """Public spots within `radius_km` of the point, nearest first."""
        geo = self._settings.geo
        box = bounding_box(
            lat, lon, radius_km, earth_radius_km=geo.earth_radius_km, min_cos_latitude=geo.min_cos_latitude
        )
        result = self.query_bounds(box)
        if result.error:
            return result
        with_distance = [
            (haversine_km(lat, lon, s.latitude, s.longitude, earth_radius_km=geo.earth_radius_km), s)
            for s in result.spots
        ]
        within = sorted((pair for pair in with_distance if pair[0] <= radius_km), key=lambda pair: pair[0])
        return SpotQueryResult(spots=[s for _, s in within])

    def get_top_ranked_in_bounds(
        self,
        box: BoundingBox,
        *,
        limit: int | None = None,
        spot_source: str | None = None,
        has_images: bool = False,
    ) -> TopRankedResult:
        """Best-ranked spots in `box`.

        `spot_source`: None = all sources, "" = native spots only, other = that source.
        Uses the `getTopSpotsInBounds` callable when a callable client is configured.
        """
        limit = int(limit or self._settings.ranking.top_ranked_limit)
        if self._functions is not None:
            return self._top_ranked_remote(box, limit=limit, spot_source=spot_source, has_images=has_images)

        result = self.query_bounds(box)
        if result.error:
            return TopRankedResult(error=result.error)
        candidates = [
            s
            for s in result.spots
            if (spot_source is None or s.spot_source == (spot_source or None))
            and (not has_images or s.image_urls)
        ]
        shown = rank_spots(candidates)[:limit]
        average = sum(s.wilson_lower_bound for s in shown) / len(shown) if shown else 0.0
        return TopRankedResult(
            spots=shown, total_count=len(candidates), shown_count=len(shown), average_wilson=average
        )

    def _top_ranked_remote(
        self, box: BoundingBox, *, limit: int, spot_source: str | None, has_images: bool
    ) -> TopRankedResult:
        payload: dict[str, Any] = {
            "minLat": box.min_lat,
            "maxLat": box.max_lat,
            "minLng": box.min_lon,
            "maxLng": box.max_lon,
            "limit": limit,
        }
        if spot_source is not None:
            payload["spotSource"] = spot_source
        if has_images:
            payload["hasImages"] = True

        try:
            data = self._functions.call("getTopSpotsInBounds", payload)  # type: ignore[union-attr]
        except CallableError as exc:
            return TopRankedResult(error=self._fail("fetch top ranked spots", exc))

        items = [m for m in (data.get("spots") or []) if isinstance(m, dict)]
        spots = spots_from_documents(Document(id=str(m.get("id") or ""), data=m) for m in items)
        return TopRankedResult(
            spots=spots,
            total_count=int(data.get("totalCount") or len(spots)),
            shown_count=int(data.get("shownCount") or len(spots)),
            average_wilson=float(data.get("averageWilson") or 0.0),
        )

    def get_spots_by_source_and_timestamp(self, source_id: str, before: datetime) -> list[Spot]:
        """Spots of one source (empty string = native) last updated before `before`, newest first."""
        filters = [
            Filter("spotSource", "==", source_id or None),
            Filter("updatedAt", "<", before),
        ]
        try:
            docs = self._store.query(self._spots, filters=filters, order_by="updatedAt", descending=True)
        except StoreError as exc:
            self._fail("fetch spots by source and timestamp", exc)
            return []
        return spots_from_documents(docs)

    # ------------------------------------------------------------------ duplicates

    def search_spots_for_duplicate_selection(
        self, *, exclude_spot_id: str | None = None, text: str | None = None, limit: int = 1000
    ) -> list[Spot]:
        """Candidate originals: spots that are not duplicates, optionally text-matched."""
        try:
            docs = self._store.query(self._spots, filters=[Filter("duplicateOf", "==", None)], limit=limit)
        except StoreError as exc:
            self._fail("search spots for duplicate selection", exc)
            return []
        spots = [s for s in spots_from_documents(docs) if s.id != exclude_spot_id]
        if text:
            needle = text.lower()
            spots = [
                s
                for s in spots
                if needle in s.name.lower()
                or needle in s.description.lower()
                or needle in (s.address or "").lower()
                or needle in (s.city or "").lower()
            ]
        return spots

    def mark_as_duplicate(
        self,
        duplicate_id: str,
        original_id: str,
        options: MergeOptions | None = None,
        *,
        actor: Actor | None = None,
    ) -> MergeOutcome:
        """Point `duplicate_id` at `original_id`, folding selected fields into the original.

        Both document updates are committed in one batch. Repeating the call with the
        same arguments converges to the same state.
        """
        options = options or MergeOptions()
        with self._busy("mark_as_duplicate"):
            try:
                original = self._load(original_id)
                duplicate = self._load(duplicate_id) if original is not None else None
            except StoreError as exc:
                return MergeOutcome(success=False, error=self._fail("mark spot as duplicate", exc))

            failure = validate_duplicate_pair(duplicate_id, original_id, duplicate=duplicate, original=original)
            if failure is not None:
                self.events.publish("error", operation="mark_as_duplicate", message=failure.message)
                return MergeOutcome(success=False, failure=failure)

            updates = plan_original_updates(original, duplicate, options)  # type: ignore[arg-type]
            if "latitude" in updates:
                updates["geohash"] = self._geohash(updates["latitude"], updates["longitude"])

            batch = self._store.batch()
            if updates:
                batch.update(self._spots, original_id, {**updates, "updatedAt": SERVER_TIMESTAMP})
            batch.update(self._spots, duplicate_id, {"duplicateOf": original_id, "updatedAt": SERVER_TIMESTAMP})
            try:
                batch.commit()
            except StoreError as exc:
                return MergeOutcome(success=False, error=self._fail("mark spot as duplicate", exc))

        self._audit.log_marked_duplicate(duplicate_id, original_id, self._actor(actor), options)
        self._changed("marked_duplicate", duplicate_id, original_id)
        return MergeOutcome(success=True, original_updates=updates)

    def get_duplicates_of_spot(self, spot_id: str) -> list[Spot]:
        try:
            docs = self._store.query(self._spots, filters=[Filter("duplicateOf", "==", spot_id)])
        except StoreError as exc:
            self._fail("fetch duplicates of spot", exc)
            return []
        return spots_from_documents(docs)

    # ------------------------------------------------------------------ batch jobs

    def run_job(self, name: str) -> JobReport | None:
        """Run a local backfill/recompute job by name (see `spotmap.jobs.backfill.JOBS`)."""
        job = JOBS.get(name)
        if job is None:
            raise KeyError(name)
        with self._busy(f"job:{name}"):
            try:
                report = job(self._store, self._settings)
            except StoreError as exc:
                self._fail(f"run {name} job", exc)
                return None
        self._changed(f"job:{name}")
        return report

    def _call_remote(self, name: str, operation: str, data: dict[str, Any] | None, timeout: float) -> dict[str, Any]:
        if self._functions is None:
            return {"success": False, "error": self._fail(operation, RuntimeError("no callable endpoint configured"))}
        with self._busy(name):
            try:
                return self._functions.call(name, data, timeout_seconds=timeout)
            except CallableError as exc:
                return {"success": False, "error": self._fail(operation, exc)}

    def recompute_all_rated_spots_remote(self) -> dict[str, Any]:
        timeout = self._settings.functions.bulk_recompute_timeout_seconds
        return self._call_remote("recomputeAllRatedSpots", "recompute all rated spots", None, timeout)

    def recompute_spot_rankings_remote(self) -> dict[str, Any]:
        timeout = self._settings.functions.bulk_recompute_timeout_seconds
        return self._call_remote("recomputeSpotRankings", "recompute spot rankings", None, timeout)

    def import_spots_remote(self, spots: list[dict[str, Any]]) -> dict[str, Any]:
        timeout = self._settings.functions.bulk_import_timeout_seconds
        return self._call_remote("importSpots", "import spots", {"spots": spots}, timeout)
