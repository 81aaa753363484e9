# placebook/core/geo.py
"""
Great-circle distance and radius ranking.

Kept free of storage concerns so the proximity math can be exercised on
plain tuples/objects. The nearby service feeds it rows read from SQLite.
"""
from __future__ import annotations

import math
from typing import Callable, Iterable, List, Tuple, TypeVar

EARTH_RADIUS_M = 6_371_000.0

T = TypeVar("T")


def is_valid_lat(lat: float) -> bool:
    return math.isfinite(lat) and -90.0 <= lat <= 90.0


def is_valid_lng(lng: float) -> bool:
    return math.isfinite(lng) and -180.0 <= lng <= 180.0


def haversine_m(a_lat: float, a_lng: float, b_lat: float, b_lng: float) -> float:
    """
    Distance in metres between two (lat, lng) points on a sphere of
    radius 6371 km.

    >>> haversine_m(0.0, 0.0, 0.0, 0.0)
    0.0
    """
    lat1, lon1 = math.radians(a_lat), math.radians(a_lng)
    lat2, lon2 = math.radians(b_lat), math.radians(b_lng)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    x = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # float error can push x a hair above 1.0 for antipodal points
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(x)))


def rank_by_distance(
    candidates: Iterable[T],
    *,
    lat: float,
    lng: float,
    radius_m: float,
    coords: Callable[[T], Tuple[float, float]],
) -> List[Tuple[T, float]]:
    """
    Keep candidates whose distance to (lat, lng) is <= radius_m and return
    them as (candidate, distance_m) sorted nearest first.

    The sort is stable, so equal distances keep the input order. A radius of
    0 keeps only points that coincide exactly with the centre.
    """
    hits: List[Tuple[T, float]] = []
    for c in candidates:
        c_lat, c_lng = coords(c)
        d = haversine_m(lat, lng, float(c_lat), float(c_lng))
        if d <= radius_m:
            hits.append((c, d))
    hits.sort(key=lambda h: h[1])
    return hits


def distance_fields(distance_m: float) -> Tuple[float, int]:
    """(km rounded to 2 dp, metres rounded to the nearest integer)."""
    return round(distance_m / 1000.0, 2), int(round(distance_m))

