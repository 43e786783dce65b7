"""
Scan-all / conditionally-update / batched-write jobs.

Every job has the same shape:
1. page through the whole collection ordered by document id (`jobs.page_size` per page)
2. test each document; compute updates for the ones that need them
3. stage updates and commit them in chunks of `jobs.batch_size`
4. return counters (`JobReport`)

Documents that already satisfy the target condition are counted as `skipped`
and not rewritten, so a job interrupted halfway is finished by running it again.
Each chunk commits independently; a failed chunk counts its documents as
`failed` and the job moves on.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Any, Callable

from spotmap.config.settings import Settings
from spotmap.core import geohash
from spotmap.domain.models import JobReport
from spotmap.ranking.wilson import aggregate_ratings, new_ranking_seed
from spotmap.store.base import DOCUMENT_ID, Document, DocumentStore, StoreError
from spotmap.store.codec import read_lat_lng

logger = logging.getLogger(__name__)

Predicate = Callable[[Document], bool]
Compute = Callable[[Document], dict[str, Any]]


def iter_documents(store: DocumentStore, collection: str, *, page_size: int):
    """Yield every document of `collection`, paging with a document-id cursor."""
    cursor: str | None = None
    while True:
        page = store.query(collection, order_by=DOCUMENT_ID, start_after=cursor, limit=page_size)
        yield from page
        if len(page) < page_size:
            return
        cursor = page[-1].id


def run_scan_job(
    store: DocumentStore,
    collection: str,
    *,
    job: str,
    predicate: Predicate,
    compute: Compute,
    page_size: int = 1000,
    batch_size: int = 400,
) -> JobReport:
    """Run one scan/update pass over `collection` and return its counters."""
    report = JobReport(job=job)
    batch = store.batch()

    def _flush() -> None:
        staged = len(batch)
        if not staged:
            return
        try:
            batch.commit()
        except StoreError as exc:
            report.failed += staged
            logger.warning("%s: batch of %s writes failed: %s", job, staged, exc)
            return
        report.updated += staged
        logger.info("%s: committed %s writes (updated=%s)", job, staged, report.updated)

    for doc in iter_documents(store, collection, page_size=page_size):
        report.processed += 1
        try:
            wanted = predicate(doc)
        except (TypeError, ValueError) as exc:
            report.failed += 1
            logger.warning("%s: cannot inspect %s: %s", job, doc.id, exc)
            continue
        if not wanted:
            report.skipped += 1
            continue
        report.matched += 1
        try:
            updates = compute(doc)
        except (TypeError, ValueError) as exc:
            report.failed += 1
            logger.warning("%s: cannot compute update for %s: %s", job, doc.id, exc)
            continue
        if not updates:
            report.skipped += 1
            continue
        batch.update(collection, doc.id, updates)
        if len(batch) >= batch_size:
            _flush()
            batch = store.batch()

    _flush()
    logger.info("%s finished: %s", job, report.as_dict())
    return report


def _coordinates(data: dict[str, Any]) -> tuple[float, float] | None:
    lat, lng = data.get("latitude"), data.get("longitude")
    if lat is not None and lng is not None:
        return float(lat), float(lng)
    return read_lat_lng(data.get("location"))


def backfill_geohash(store: DocumentStore, settings: Settings) -> JobReport:
    """Store `geohash` on spots that have coordinates but no (or an empty) geohash."""
    precision = settings.geo.geohash_precision

    def predicate(doc: Document) -> bool:
        return not doc.data.get("geohash") and _coordinates(doc.data) is not None

    def compute(doc: Document) -> dict[str, Any]:
        lat, lng = _coordinates(doc.data)  # type: ignore[misc]
        return {"geohash": geohash.encode(lat, lng, precision)}

    return run_scan_job(
        store,
        settings.store.collections.spots,
        job="geohash",
        predicate=predicate,
        compute=compute,
        page_size=settings.jobs.page_size,
        batch_size=settings.jobs.batch_size,
    )


def backfill_lat_lng(store: DocumentStore, settings: Settings) -> JobReport:
    """Copy legacy GeoPoint `location` values into flat `latitude`/`longitude` fields."""

    def predicate(doc: Document) -> bool:
        missing = doc.data.get("latitude") is None or doc.data.get("longitude") is None
        return missing and doc.data.get("location") is not None

    def compute(doc: Document) -> dict[str, Any]:
        coords = read_lat_lng(doc.data.get("location"))
        if coords is None:
            raise ValueError("location has no latitude/longitude")
        lat, lng = coords
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise ValueError("location is not finite")
        return {"latitude": lat, "longitude": lng}

    return run_scan_job(
        store,
        settings.store.collections.spots,
        job="lat_lng",
        predicate=predicate,
        compute=compute,
        page_size=settings.jobs.page_size,
        batch_size=settings.jobs.batch_size,
    )


def backfill_duplicate_of(store: DocumentStore, settings: Settings) -> JobReport:
    """Write an explicit `duplicateOf: null` on spots that lack the field entirely."""
    return run_scan_job(
        store,
        settings.store.collections.spots,
        job="duplicate_of",
        predicate=lambda doc: "duplicateOf" not in doc.data,
        compute=lambda doc: {"duplicateOf": None},
        page_size=settings.jobs.page_size,
        batch_size=settings.jobs.batch_size,
    )


def backfill_rankings(store: DocumentStore, settings: Settings, *, rng: random.Random | None = None) -> JobReport:
    """Assign a tie-breaker `ranking` to spots that never got one; existing values are kept."""
    return run_scan_job(
        store,
        settings.store.collections.spots,
        job="ranking",
        predicate=lambda doc: doc.data.get("ranking") is None,
        compute=lambda doc: {"ranking": new_ranking_seed(rng)},
        page_size=settings.jobs.page_size,
        batch_size=settings.jobs.batch_size,
    )


def _ratings_by_spot(store: DocumentStore, settings: Settings) -> dict[str, list[float]]:
    out: dict[str, list[float]] = {}
    for doc in iter_documents(store, settings.store.collections.ratings, page_size=settings.jobs.page_size):
        spot_id = doc.data.get("spotId")
        value = doc.data.get("rating")
        if not spot_id or value is None:
            continue
        try:
            rating = float(value)
        except (TypeError, ValueError):
            logger.warning("ratings: ignoring non-numeric rating %s", doc.id)
            continue
        out.setdefault(str(spot_id), []).append(rating)
    return out


def recompute_rating_aggregates(store: DocumentStore, settings: Settings) -> JobReport:
    """Refold Rating records into each rated spot's cached aggregate fields.

    A spot is considered when its cached `ratingCount` is positive or it has Rating
    records; the write is skipped when the cached values already match.
    """
    ranking = settings.ranking
    ratings = _ratings_by_spot(store, settings)

    def predicate(doc: Document) -> bool:
        return int(doc.data.get("ratingCount") or 0) > 0 or doc.id in ratings

    def compute(doc: Document) -> dict[str, Any]:
        agg = aggregate_ratings(
            ratings.get(doc.id, []),
            confidence=ranking.confidence,
            min_rating=ranking.min_rating,
            max_rating=ranking.max_rating,
        )
        current = (
            float(doc.data.get("averageRating") or 0.0),
            int(doc.data.get("ratingCount") or 0),
            float(doc.data.get("wilsonLowerBound") or 0.0),
        )
        if (
            math.isclose(current[0], agg.average_rating, abs_tol=1e-12)
            and current[1] == agg.rating_count
            and math.isclose(current[2], agg.wilson_lower_bound, abs_tol=1e-12)
        ):
            return {}
        return agg.as_update()

    return run_scan_job(
        store,
        settings.store.collections.spots,
        job="rating_aggregates",
        predicate=predicate,
        compute=compute,
        page_size=settings.jobs.page_size,
        batch_size=settings.jobs.batch_size,
    )


JOBS: dict[str, Callable[[DocumentStore, Settings], JobReport]] = {
    "geohash": backfill_geohash,
    "lat-lng": backfill_lat_lng,
    "duplicate-of": backfill_duplicate_of,
    "rankings": backfill_rankings,
    "ratings": recompute_rating_aggregates,
}
