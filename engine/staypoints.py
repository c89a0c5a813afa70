"""Stay point detection: velocity/accuracy gated clustering of consecutive fixes.

Algorithm:
- Walk through points chronologically.
- A point is stationary when its velocity (reported, or derived from the
  previous fix) is below the velocity threshold.
- With the accuracy toggle on, fixes worse than the accuracy threshold are
  ignored: they neither join nor break the open cluster.
- A stationary point within the radius of the running centroid joins the
  cluster. Anything else closes it; a stationary point opens a new one.
- A closed cluster becomes a stay if it has at least two members, lasts long
  enough and (toggle on) enough of the fixes over its span are accurate.

The cluster still open after the last fix is what gap stay inference
compares a fix arriving after a silence against.
"""

import datetime
import logging
from typing import Optional, Sequence

from geo import accuracy_ratio, centroid, haversine_m, is_accurate, point_velocity_kmh
from records import TimelineStayPoint, TrackPoint
from timeline_config import TimelineConfig

logger = logging.getLogger(__name__)


def detect_stay_points(config: TimelineConfig, points: Sequence[TrackPoint]) -> list[TimelineStayPoint]:
    if len(points) < 2:
        return []

    stays: list[TimelineStayPoint] = []
    closed, still_open = _scan(config, points)
    for cluster in closed + [still_open]:
        _maybe_emit_stay(config, points, cluster, stays)

    logger.debug("Detected %d stay points in %d points", len(stays), len(points))
    return stays


def open_stay_centroid(config: TimelineConfig, points: Sequence[TrackPoint]) -> Optional[tuple[float, float]]:
    """Centroid of the cluster still open after the last fix, if any."""
    if not points:
        return None
    _, still_open = _scan(config, points)
    if not still_open:
        return None
    return centroid([points[i] for i in still_open])


def _scan(config: TimelineConfig, points: Sequence[TrackPoint]) -> tuple[list[list[int]], list[int]]:
    """Cluster the fixes. Returns (closed clusters, open cluster) as index lists."""
    closed: list[list[int]] = []
    cluster: list[int] = []  # indexes into points
    cx = cy = 0.0
    previous = None

    for i, pt in enumerate(points):
        velocity = point_velocity_kmh(pt, previous)
        previous = pt

        if config.use_velocity_accuracy and not is_accurate(pt, config.staypoint_max_accuracy_threshold):
            continue

        stationary = velocity < config.staypoint_velocity_threshold
        if (
            cluster
            and stationary
            and haversine_m(cx, cy, pt.latitude, pt.longitude) <= config.staypoint_radius_meters
        ):
            cluster.append(i)
            # Update centroid as running mean
            n = len(cluster)
            cx = cx + (pt.latitude - cx) / n
            cy = cy + (pt.longitude - cy) / n
            continue

        if cluster:
            closed.append(cluster)
        if stationary:
            cluster = [i]
            cx, cy = pt.latitude, pt.longitude
        else:
            cluster = []

    return closed, cluster


def _maybe_emit_stay(
    config: TimelineConfig,
    points: Sequence[TrackPoint],
    cluster: list[int],
    stays: list[TimelineStayPoint],
):
    if len(cluster) < 2:
        return

    first, last = cluster[0], cluster[-1]
    arrival = points[first].timestamp
    departure = points[last].timestamp
    if departure - arrival < datetime.timedelta(minutes=config.staypoint_min_duration_minutes):
        return

    if config.use_velocity_accuracy:
        ratio = accuracy_ratio(points[first:last + 1], config.staypoint_max_accuracy_threshold)
        if ratio < config.staypoint_min_accuracy_ratio:
            logger.debug("Discarding stay at %s: accuracy ratio %.2f", arrival, ratio)
            return

    lat, lon = centroid([points[i] for i in cluster])
    stays.append(TimelineStayPoint(
        latitude=lat,
        longitude=lon,
        start_time=arrival,
        end_time=departure,
    ))
