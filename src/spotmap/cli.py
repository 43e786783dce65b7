"""
Spotmap CLI entrypoint.

This CLI is intended for local debugging and operator tasks (backfills, duplicate
merges) without the API server. All logic lives in `spotmap.services.spots.SpotService`.
"""

from __future__ import annotations

import argparse
import json
from typing import Any

from spotmap.config.settings import get_settings
from spotmap.core.geo import BoundingBox
from spotmap.core.logging import configure_logging
from spotmap.domain.models import Actor, MergeOptions, Spot
from spotmap.jobs.backfill import JOBS
from spotmap.remote.callable import CallableClient
from spotmap.services.spots import SpotService
from spotmap.store.factory import build_store


def build_service() -> SpotService:
    settings = get_settings()
    functions = CallableClient(settings.functions) if settings.functions.endpoint_base() else None
    return SpotService(build_store(settings), settings=settings, functions=functions)


def _print_spots(spots: list[Spot], as_json: bool) -> None:
    if as_json:
        print(json.dumps([s.model_dump(mode="json") for s in spots], ensure_ascii=False, indent=2))
        return
    for i, s in enumerate(spots, start=1):
        where = s.city or s.country_code or ""
        print(f"{i:>3}. {s.name} [{s.id}] ({s.latitude:.5f}, {s.longitude:.5f}) {where}".rstrip())


def _cmd_nearby(args: argparse.Namespace) -> int:
    result = build_service().get_spots_nearby(args.lat, args.lon, args.radius_km)
    if result.error:
        print(result.error)
        return 1
    _print_spots(result.spots, args.json)
    return 0


def _cmd_bounds(args: argparse.Namespace) -> int:
    box = BoundingBox(min_lat=args.min_lat, max_lat=args.max_lat, min_lon=args.min_lon, max_lon=args.max_lon)
    result = build_service().query_bounds(box)
    if result.error:
        print(result.error)
        return 1
    _print_spots(result.spots, args.json)
    return 0


def _cmd_mark_duplicate(args: argparse.Namespace) -> int:
    options = MergeOptions(
        transfer_photos=args.transfer_photos,
        transfer_youtube_links=args.transfer_youtube_links,
        overwrite_name=args.overwrite_name,
        overwrite_description=args.overwrite_description,
        overwrite_location=args.overwrite_location,
        overwrite_spot_attributes=args.overwrite_spot_attributes,
    )
    actor = Actor(user_id=args.user_id, user_name=args.user_name) if args.user_id else None
    outcome = build_service().mark_as_duplicate(args.duplicate_id, args.original_id, options, actor=actor)
    if not outcome.success:
        print(f"Failed: {outcome.reason}")
        return 2 if outcome.failure is not None else 1
    updated = ", ".join(sorted(outcome.original_updates)) or "none"
    print(f"{args.duplicate_id} -> {args.original_id} (original fields updated: {updated})")
    return 0


def _cmd_backfill(args: argparse.Namespace) -> int:
    report = build_service().run_job(args.job)
    if report is None:
        return 1
    if args.json:
        print(json.dumps({"job": args.job, **report.as_dict()}, indent=2))
    else:
        counters = " ".join(f"{k}={v}" for k, v in report.as_dict().items())
        print(f"{args.job}: {counters}")
    return 0 if report.failed == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the Spotmap CLI."""
    parser = argparse.ArgumentParser(prog="spotmap")
    sub = parser.add_subparsers(dest="command", required=True)

    near = sub.add_parser("nearby", help="List public spots within a radius, nearest first.")
    near.add_argument("--lat", required=True, type=float)
    near.add_argument("--lon", required=True, type=float)
    near.add_argument("--radius-km", required=True, type=float)
    near.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    near.set_defaults(func=_cmd_nearby)

    bounds = sub.add_parser("bounds", help="List public spots inside a lat/lon rectangle.")
    bounds.add_argument("--min-lat", required=True, type=float)
    bounds.add_argument("--max-lat", required=True, type=float)
    bounds.add_argument("--min-lon", required=True, type=float, help="Greater than --max-lon to cross ±180°")
    bounds.add_argument("--max-lon", required=True, type=float)
    bounds.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    bounds.set_defaults(func=_cmd_bounds)

    dup = sub.add_parser("mark-duplicate", help="Mark a spot as duplicate of a native original.")
    dup.add_argument("duplicate_id")
    dup.add_argument("original_id")
    dup.add_argument("--transfer-photos", action="store_true")
    dup.add_argument("--transfer-youtube-links", action="store_true")
    dup.add_argument("--overwrite-name", action="store_true")
    dup.add_argument("--overwrite-description", action="store_true")
    dup.add_argument("--overwrite-location", action="store_true")
    dup.add_argument("--overwrite-spot-attributes", action="store_true")
    dup.add_argument("--user-id", default=None)
    dup.add_argument("--user-name", default=None)
    dup.set_defaults(func=_cmd_mark_duplicate)

    back = sub.add_parser("backfill", help="Run a scan-all backfill/recompute job (safe to run repeatedly).")
    back.add_argument("job", choices=sorted(JOBS))
    back.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    back.set_defaults(func=_cmd_backfill)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m spotmap.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
