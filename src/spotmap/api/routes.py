"""
API routes.

Endpoints:
- GET  `/api/spots/nearby`: public spots within a radius, nearest first.
- GET  `/api/spots/bounds`: public spots inside a lat/lon rectangle (antimeridian aware).
- GET  `/api/spots/top`: best-ranked spots inside a rectangle.
- GET  `/api/spots/{spot_id}/duplicates`: spots pointing at `spot_id`.
- POST `/api/spots/{spot_id}/duplicate-of/{original_id}`: mark + merge a duplicate.
- GET  `/api/spots/{spot_id}/audit`: audit history, newest first.
- POST `/api/admin/jobs/{job}`: run a backfill/recompute job.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter, HTTPException, Query

from spotmap.config.settings import get_settings
from spotmap.core.geo import BoundingBox
from spotmap.domain.models import Actor, MergeOptions, SpotQueryResult, TopRankedResult
from spotmap.jobs.backfill import JOBS
from spotmap.remote.callable import CallableClient
from spotmap.services.spots import SpotService
from spotmap.store.factory import build_store

router = APIRouter()


@lru_cache
def _service() -> SpotService:
    settings = get_settings()
    functions = CallableClient(settings.functions) if settings.functions.endpoint_base() else None
    return SpotService(build_store(settings), settings=settings, functions=functions)


def _backend_error(message: str) -> HTTPException:
    return HTTPException(status_code=503, detail={"code": "BACKEND_ERROR", "message": message})


def _spots_payload(result: SpotQueryResult) -> dict:
    if result.error:
        raise _backend_error(result.error)
    return {"count": len(result.spots), "spots": [s.model_dump(mode="json") for s in result.spots]}


def _box(min_lat: float, max_lat: float, min_lon: float, max_lon: float) -> BoundingBox:
    if min_lat > max_lat:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": "min_lat must not exceed max_lat"},
        )
    return BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lon=min_lon, max_lon=max_lon)


@router.get("/api/spots/nearby")
def get_nearby(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(..., ge=0),
) -> dict:
    """Return public spots within `radius_km` of (lat, lon)."""
    max_radius = get_settings().api.nearby_max_radius_km
    if radius_km > max_radius:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": f"radius_km must be <= {max_radius}"},
        )
    return _spots_payload(_service().get_spots_nearby(lat, lon, radius_km))


@router.get("/api/spots/bounds")
def get_in_bounds(
    min_lat: float = Query(..., ge=-90, le=90),
    max_lat: float = Query(..., ge=-90, le=90),
    min_lon: float = Query(..., ge=-180, le=180),
    max_lon: float = Query(..., ge=-180, le=180),
) -> dict:
    """Return public spots inside the rectangle; `min_lon > max_lon` crosses the antimeridian."""
    return _spots_payload(_service().query_bounds(_box(min_lat, max_lat, min_lon, max_lon)))


@router.get("/api/spots/top")
def get_top_ranked(
    min_lat: float = Query(..., ge=-90, le=90),
    max_lat: float = Query(..., ge=-90, le=90),
    min_lon: float = Query(..., ge=-180, le=180),
    max_lon: float = Query(..., ge=-180, le=180),
    limit: int | None = Query(None, ge=1),
    spot_source: str | None = None,
    has_images: bool = False,
) -> dict:
    result: TopRankedResult = _service().get_top_ranked_in_bounds(
        _box(min_lat, max_lat, min_lon, max_lon),
        limit=limit,
        spot_source=spot_source,
        has_images=has_images,
    )
    if result.error:
        raise _backend_error(result.error)
    return result.model_dump(mode="json", exclude={"error"})


@router.get("/api/spots/{spot_id}/duplicates")
def get_duplicates(spot_id: str) -> dict:
    spots = _service().get_duplicates_of_spot(spot_id)
    return {"count": len(spots), "spots": [s.model_dump(mode="json") for s in spots]}


@router.post("/api/spots/{spot_id}/duplicate-of/{original_id}")
def post_mark_duplicate(
    spot_id: str,
    original_id: str,
    options: MergeOptions | None = None,
    user_id: str | None = None,
    user_name: str | None = None,
) -> dict:
    """Mark `spot_id` as a duplicate of `original_id`, folding fields selected in the body."""
    actor = Actor(user_id=user_id, user_name=user_name) if user_id else None
    outcome = _service().mark_as_duplicate(spot_id, original_id, options, actor=actor)
    if outcome.failure is not None:
        raise HTTPException(
            status_code=409,
            detail={"code": outcome.failure.value, "message": outcome.failure.message},
        )
    if not outcome.success:
        raise _backend_error(outcome.error or "unknown error")
    return {"success": True, "original_updates": sorted(outcome.original_updates)}


@router.get("/api/spots/{spot_id}/audit")
def get_audit(spot_id: str, limit: int | None = Query(None, ge=1)) -> dict:
    entries = _service().audit.get_for_spot(spot_id, limit=limit)
    return {"count": len(entries), "entries": [e.model_dump(mode="json") for e in entries]}


@router.post("/api/admin/jobs/{job}")
def post_run_job(job: str) -> dict:
    """Run a named batch job synchronously and return its counters."""
    if job not in JOBS:
        raise HTTPException(
            status_code=404,
            detail={"code": "UNKNOWN_JOB", "message": f"Unknown job '{job}'", "jobs": sorted(JOBS)},
        )
    report = _service().run_job(job)
    if report is None:
        raise _backend_error(f"job '{job}' failed")
    return {"job": job, **report.as_dict()}
