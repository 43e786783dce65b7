"""
Geohash encoding for spatial bucketing.

A geohash interleaves longitude and latitude bisection bits (longitude first)
and renders them 5 bits at a time in a base32 alphabet. Shared prefixes mean
nearby cells, which is what the backfill job stores on each spot.
"""

from __future__ import annotations

from typing import Literal

_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_BITS = (16, 8, 4, 2, 1)

Direction = Literal["n", "s", "e", "w"]

# Adjacency/border tables indexed by [direction][parity], parity 0 = even-length hash.
_NEIGHBORS: dict[str, tuple[str, str]] = {
    "n": ("p0r21436x8zb9dcf5h7kjnmqesgutwvy", "bc01fg45238967deuvhjyznpkmstqrwx"),
    "s": ("14365h7k9dcfesgujnmqp0r2twvyx8zb", "238967debc01fg45kmstqrwxuvhjyznp"),
    "e": ("bc01fg45238967deuvhjyznpkmstqrwx", "p0r21436x8zb9dcf5h7kjnmqesgutwvy"),
    "w": ("238967debc01fg45kmstqrwxuvhjyznp", "14365h7k9dcfesgujnmqp0r2twvyx8zb"),
}
_BORDERS: dict[str, tuple[str, str]] = {
    "n": ("prxz", "bcfguvyz"),
    "s": ("028b", "0145hjnp"),
    "e": ("bcfguvyz", "prxz"),
    "w": ("0145hjnp", "028b"),
}


def encode(lat: float, lon: float, precision: int = 12) -> str:
    """Encode a coordinate into a geohash of `precision` characters."""
    if precision < 1:
        raise ValueError("precision must be >= 1")
    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0

    out: list[str] = []
    bit = 0
    ch = 0
    even = True
    while len(out) < precision:
        if even:
            mid = (lon_lo + lon_hi) / 2
            if lon >= mid:
                ch |= _BITS[bit]
                lon_lo = mid
            else:
                lon_hi = mid
        else:
            mid = (lat_lo + lat_hi) / 2
            if lat >= mid:
                ch |= _BITS[bit]
                lat_lo = mid
            else:
                lat_hi = mid
        even = not even

        if bit < 4:
            bit += 1
        else:
            out.append(_BASE32[ch])
            bit = 0
            ch = 0
    return "".join(out)


def decode_cell(geohash: str) -> tuple[float, float, float, float]:
    """Return the cell of `geohash` as `(min_lat, max_lat, min_lon, max_lon)`."""
    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0
    even = True
    for c in geohash.lower():
        idx = _BASE32.find(c)
        if idx < 0:
            raise ValueError(f"Invalid geohash character: {c!r}")
        for mask in _BITS:
            if even:
                mid = (lon_lo + lon_hi) / 2
                if idx & mask:
                    lon_lo = mid
                else:
                    lon_hi = mid
            else:
                mid = (lat_lo + lat_hi) / 2
                if idx & mask:
                    lat_lo = mid
                else:
                    lat_hi = mid
            even = not even
    return lat_lo, lat_hi, lon_lo, lon_hi


def decode(geohash: str) -> tuple[float, float]:
    """Return the center `(lat, lon)` of the cell."""
    lat_lo, lat_hi, lon_lo, lon_hi = decode_cell(geohash)
    return (lat_lo + lat_hi) / 2, (lon_lo + lon_hi) / 2


def adjacent(geohash: str, direction: Direction) -> str:
    """Return the same-precision cell next to `geohash` in `direction`."""
    if not geohash:
        raise ValueError("geohash must be non-empty")
    if direction not in _NEIGHBORS:
        raise ValueError(f"Invalid direction: {direction!r}")
    gh = geohash.lower()
    last = gh[-1]
    parent = gh[:-1]
    col = len(gh) % 2
    if last in _BORDERS[direction][col] and parent:
        parent = adjacent(parent, direction)
    return parent + _BASE32[_NEIGHBORS[direction][col].index(last)]


def neighbors(geohash: str) -> list[str]:
    """Return the 8 surrounding cells: n, ne, e, se, s, sw, w, nw."""
    n = adjacent(geohash, "n")
    s = adjacent(geohash, "s")
    return [
        n,
        adjacent(n, "e"),
        adjacent(geohash, "e"),
        adjacent(s, "e"),
        s,
        adjacent(s, "w"),
        adjacent(geohash, "w"),
        adjacent(n, "w"),
    ]


def neighbors_with_self(geohash: str) -> list[str]:
    return [geohash, *neighbors(geohash)]
