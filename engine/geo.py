"""Spatial and velocity helpers shared by every pipeline stage."""

import math
from typing import Iterable, Optional, Sequence

from records import TrackPoint

EARTH_RADIUS_M = 6_371_000

# GPS error filter thresholds
MAX_HORIZONTAL_ACCURACY_M = 500.0  # discard fixes with accuracy worse than this
MAX_VELOCITY_KMH = 1200.0          # faster than any airliner
MIN_POINT_INTERVAL_S = 1           # drop fixes closer than this to the previous one


# ---------------------------------------------------------------------------
# Distances
# ---------------------------------------------------------------------------

def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in metres between two WGS-84 points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_m(a: TrackPoint, b: TrackPoint) -> float:
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from the first point to the second, 0-360 degrees."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlon = math.radians(lon2 - lon1)
    x = math.sin(dlon) * math.cos(rlat2)
    y = math.cos(rlat1) * math.sin(rlat2) - math.sin(rlat1) * math.cos(rlat2) * math.cos(dlon)
    return (math.degrees(math.atan2(x, y)) + 360) % 360


def path_distance_m(points: Sequence[TrackPoint]) -> float:
    """Sum of the segment lengths along a path."""
    return sum(distance_m(a, b) for a, b in zip(points, points[1:]))


# ---------------------------------------------------------------------------
# Velocity
# ---------------------------------------------------------------------------

def speed_kmh(a: TrackPoint, b: TrackPoint) -> float:
    """Speed between two fixes; 0 when they share a timestamp or run backwards."""
    dt = (b.timestamp - a.timestamp).total_seconds()
    if dt <= 0:
        return 0.0
    return distance_m(a, b) / dt * 3.6


def point_velocity_kmh(point: TrackPoint, previous: Optional[TrackPoint]) -> float:
    """Device velocity when reported, otherwise derived from the previous fix."""
    if point.velocity is not None:
        return point.velocity
    if previous is None:
        return 0.0
    return speed_kmh(previous, point)


# ---------------------------------------------------------------------------
# Centroids and accuracy
# ---------------------------------------------------------------------------

def centroid(points: Sequence[TrackPoint]) -> tuple[float, float]:
    n = len(points)
    return (
        sum(p.latitude for p in points) / n,
        sum(p.longitude for p in points) / n,
    )


def is_accurate(point: TrackPoint, max_accuracy_m: float) -> bool:
    # Fixes without an accuracy value are trusted
    return point.accuracy is None or point.accuracy <= max_accuracy_m


def accuracy_ratio(points: Iterable[TrackPoint], max_accuracy_m: float) -> float:
    """Share of fixes whose accuracy is within max_accuracy_m (1.0 for no fixes)."""
    total = good = 0
    for p in points:
        total += 1
        if is_accurate(p, max_accuracy_m):
            good += 1
    return good / total if total else 1.0


# ---------------------------------------------------------------------------
# GPS error filtering
# ---------------------------------------------------------------------------

def filter_gps_errors(
    points: Sequence[TrackPoint],
    max_accuracy_m: float = MAX_HORIZONTAL_ACCURACY_M,
    max_velocity_kmh: float = MAX_VELOCITY_KMH,
    min_interval_s: float = MIN_POINT_INTERVAL_S,
) -> list[TrackPoint]:
    """Remove fixes that are certainly wrong.

    Filters applied:
    - Coordinates outside the valid WGS-84 range
    - Horizontal accuracy > max_accuracy_m
    - Reported velocity > max_velocity_kmh (physically impossible)
    - Fixes within min_interval_s of, or earlier than, the previously kept one

    Input order is preserved; points are never re-sorted.
    """
    filtered: list[TrackPoint] = []
    last_ts = None

    for pt in points:
        if not (-90 <= pt.latitude <= 90 and -180 <= pt.longitude <= 180):
            continue
        if pt.accuracy is not None and pt.accuracy > max_accuracy_m:
            continue
        if pt.velocity is not None and pt.velocity > max_velocity_kmh:
            continue
        if last_ts is not None and (pt.timestamp - last_ts).total_seconds() < min_interval_s:
            continue

        filtered.append(pt)
        last_ts = pt.timestamp

    return filtered
