"""Trip path simplification (Douglas-Peucker with a metre tolerance).

Tolerance adapts to trip length when enabled: short trips keep detail,
long highway or rail trips tolerate coarser paths. A ``path_max_points``
ceiling is enforced by growing the tolerance, then by even decimation.
"""

import dataclasses
import logging
import math
from typing import Sequence

from geo import EARTH_RADIUS_M, path_distance_m
from records import TimelineTrip, TrackPoint
from timeline_config import TimelineConfig

logger = logging.getLogger(__name__)

MIN_ADAPTIVE_TOLERANCE_M = 5.0
TOLERANCE_GROWTH = 1.5
MAX_TOLERANCE_FACTOR = 10.0

# (upper bound of trip length in km, tolerance multiplier)
ADAPTIVE_BANDS = [
    (1.0, 0.4),
    (2.0, 0.6),
    (5.0, 0.8),
    (10.0, 1.0),
    (25.0, 1.4),
    (50.0, 2.0),
]
LONG_TRIP_MULTIPLIER = 2.5


@dataclasses.dataclass(frozen=True, slots=True)
class SimplificationStats:
    original_points: int
    simplified_points: int
    tolerance_m: float

    @property
    def reduction(self) -> float:
        if not self.original_points:
            return 0.0
        return 1 - self.simplified_points / self.original_points


def adaptive_tolerance(points: Sequence[TrackPoint], base_tolerance: float) -> float:
    length_km = path_distance_m(points) / 1000
    short_km, short_factor = ADAPTIVE_BANDS[0]
    if length_km < short_km:
        return max(base_tolerance * short_factor, MIN_ADAPTIVE_TOLERANCE_M)
    for upper_km, factor in ADAPTIVE_BANDS[1:]:
        if length_km < upper_km:
            return base_tolerance * factor
    return base_tolerance * LONG_TRIP_MULTIPLIER


def _segment_distance_m(p: TrackPoint, a: TrackPoint, b: TrackPoint) -> float:
    """Distance from p to segment a-b on a local equirectangular projection."""
    cos_lat = math.cos(math.radians(a.latitude))

    def project(q):
        return (
            math.radians(q.longitude - a.longitude) * cos_lat * EARTH_RADIUS_M,
            math.radians(q.latitude - a.latitude) * EARTH_RADIUS_M,
        )

    px, py = project(p)
    bx, by = project(b)
    length_sq = bx * bx + by * by
    if length_sq == 0:
        return math.hypot(px, py)
    t = max(0.0, min(1.0, (px * bx + py * by) / length_sq))
    return math.hypot(px - t * bx, py - t * by)


def douglas_peucker(points: Sequence[TrackPoint], tolerance: float) -> list[TrackPoint]:
    n = len(points)
    if n <= 2:
        return list(points)

    keep = [False] * n
    keep[0] = keep[-1] = True
    stack = [(0, n - 1)]
    while stack:
        first, last = stack.pop()
        max_dist = 0.0
        index = first
        for i in range(first + 1, last):
            d = _segment_distance_m(points[i], points[first], points[last])
            if d > max_dist:
                max_dist = d
                index = i
        if max_dist > tolerance:
            keep[index] = True
            stack.append((first, index))
            stack.append((index, last))

    return [p for p, k in zip(points, keep) if k]


def _decimate(points: Sequence[TrackPoint], max_points: int) -> list[TrackPoint]:
    """Evenly spaced subset of max_points fixes, first and last included."""
    n = len(points)
    step = (n - 1) / (max_points - 1)
    return [points[round(i * step)] for i in range(max_points)]


def simplify_with_stats(
    points: Sequence[TrackPoint], config: TimelineConfig,
) -> tuple[list[TrackPoint], SimplificationStats]:
    base = config.path_simplification_tolerance
    if not config.path_simplification_enabled or len(points) <= 2:
        return list(points), SimplificationStats(len(points), len(points), 0.0)

    if base <= 0:
        # No tolerance pass, but the point ceiling still holds
        tolerance = 0.0
        result = list(points)
    else:
        if config.path_adaptive_simplification:
            tolerance = adaptive_tolerance(points, base)
        else:
            tolerance = base
        result = douglas_peucker(points, tolerance)

    max_points = config.path_max_points
    if max_points and len(result) > max_points:
        if tolerance > 0:
            ceiling = tolerance * MAX_TOLERANCE_FACTOR
            current = tolerance
            while len(result) > max_points and current < ceiling:
                current = min(current * TOLERANCE_GROWTH, ceiling)
                result = douglas_peucker(points, current)
            tolerance = current
        if len(result) > max_points:
            result = _decimate(result, max_points)

    return result, SimplificationStats(len(points), len(result), tolerance)


def simplify(points: Sequence[TrackPoint], config: TimelineConfig) -> list[TrackPoint]:
    return simplify_with_stats(points, config)[0]


def simplify_trip(trip: TimelineTrip, config: TimelineConfig) -> TimelineTrip:
    path, stats = simplify_with_stats(trip.path, config)
    if stats.simplified_points < stats.original_points:
        logger.debug(
            "Simplified trip %s: %d -> %d points (tolerance %.1fm, %.0f%% reduction)",
            trip.start_time, stats.original_points, stats.simplified_points,
            stats.tolerance_m, stats.reduction * 100,
        )
    return dataclasses.replace(trip, path=tuple(path))
