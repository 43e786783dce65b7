from __future__ import annotations
from dataclasses import dataclass
from math import asin, cos, degrees, radians, sin, sqrt

"""
Geospatial helpers.

We keep a tiny geometry layer here so the query planner and services can do
distance and bounding-box math without pulling in heavier GIS dependencies.

All public functions take and return decimal degrees (and kilometers).
"""

EARTH_RADIUS_KM = 6371.0

# Below this cos(latitude) the longitude span of a box is treated as unbounded.
DEFAULT_MIN_COS_LATITUDE = 1e-6


@dataclass(frozen=True)
class BoundingBox:
    """A lat/lon rectangle in decimal degrees.

    `min_lon > max_lon` means the box crosses the antimeridian (±180°).
    """

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.min_lon > self.max_lon

    def contains(self, lat: float, lon: float) -> bool:
        if not (self.min_lat <= lat <= self.max_lat):
            return False
        if self.crosses_antimeridian:
            return lon >= self.min_lon or lon <= self.max_lon
        return self.min_lon <= lon <= self.max_lon


def haversine_km(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    *,
    earth_radius_km: float = EARTH_RADIUS_KM,
) -> float:
    """Compute great-circle distance in kilometers between two points."""
    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dphi = phi2 - phi1
    dlambda = radians(lon2) - radians(lon1)

    h = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlambda / 2) ** 2
    # Rounding can push h a hair above 1 for antipodal points.
    return 2 * earth_radius_km * asin(sqrt(min(1.0, h)))


def _wrap_lon(lon: float) -> float:
    if lon < -180.0:
        return lon + 360.0
    if lon > 180.0:
        return lon - 360.0
    return lon


def bounding_box(
    center_lat: float,
    center_lon: float,
    radius_km: float,
    *,
    earth_radius_km: float = EARTH_RADIUS_KM,
    min_cos_latitude: float = DEFAULT_MIN_COS_LATITUDE,
) -> BoundingBox:
    """Return a lat/lon rectangle containing the circle of `radius_km` around the center.

    The box is a pre-filter for range queries; callers post-filter candidates with
    `haversine_km` against the true radius.

    Notes:
    - The latitude half-height is `radius / R` (in degrees).
    - The longitude half-width is `asin(sin(d) / cos(lat))`. It equals the usual
      `d / cos(lat)` to first order and is slightly wider for large radii, so the
      box never under-covers the circle.
    - If the circle reaches a pole, or `cos(lat)` drops below `min_cos_latitude`,
      the box spans every longitude and latitude is clamped to ±90.
    - Longitudes are wrapped into [-180, 180]; a box that wraps has `min_lon > max_lon`.
    """
    if radius_km < 0:
        raise ValueError("radius_km must be >= 0")

    d = float(radius_km) / float(earth_radius_km)
    dlat = degrees(d)
    min_lat = center_lat - dlat
    max_lat = center_lat + dlat

    cos_lat = cos(radians(center_lat))
    if max_lat >= 90.0 or min_lat <= -90.0 or cos_lat <= min_cos_latitude:
        return BoundingBox(
            min_lat=max(-90.0, min_lat),
            max_lat=min(90.0, max_lat),
            min_lon=-180.0,
            max_lon=180.0,
        )

    ratio = sin(d) / cos_lat
    if ratio >= 1.0:
        dlon = 180.0
    else:
        dlon = degrees(asin(ratio))
    if dlon >= 180.0:
        return BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lon=-180.0, max_lon=180.0)

    return BoundingBox(
        min_lat=min_lat,
        max_lat=max_lat,
        min_lon=_wrap_lon(center_lon - dlon),
        max_lon=_wrap_lon(center_lon + dlon),
    )


def split_antimeridian(box: BoundingBox) -> list[BoundingBox]:
    """Split a seam-crossing box into two non-crossing boxes.

    Non-crossing boxes are returned unchanged as a single-element list. The two
    halves cover `[min_lon, 180]` and `[-180, max_lon]` with the same latitude range.
    """
    if not box.crosses_antimeridian:
        return [box]
    return [
        BoundingBox(min_lat=box.min_lat, max_lat=box.max_lat, min_lon=box.min_lon, max_lon=180.0),
        BoundingBox(min_lat=box.min_lat, max_lat=box.max_lat, min_lon=-180.0, max_lon=box.max_lon),
    ]
