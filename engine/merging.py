"""Merging of adjacent stays that are close in space and time."""

import bisect
import datetime
import logging
from typing import Sequence

from geo import haversine_m
from records import TimelineStayPoint, TimelineTrip
from timeline_config import TimelineConfig

logger = logging.getLogger(__name__)


def _combine(a: TimelineStayPoint, b: TimelineStayPoint) -> TimelineStayPoint:
    """One stay spanning both, centroid weighted by each stay's duration."""
    wa = a.duration.total_seconds()
    wb = b.duration.total_seconds()
    if wa + wb <= 0:
        wa = wb = 1.0
    total = wa + wb
    return TimelineStayPoint(
        latitude=(a.latitude * wa + b.latitude * wb) / total,
        longitude=(a.longitude * wa + b.longitude * wb) / total,
        start_time=min(a.start_time, b.start_time),
        end_time=max(a.end_time, b.end_time),
        location_name=a.location_name or b.location_name,
    )


def merge_stay_points(config: TimelineConfig, stays: Sequence[TimelineStayPoint]) -> list[TimelineStayPoint]:
    """Merge neighbouring stays in one chronological pass.

    A merged stay can keep absorbing the next neighbour, so chains of
    nearby stays collapse into one.
    """
    if not config.is_merge_enabled or len(stays) < 2:
        return list(stays)

    max_gap = datetime.timedelta(minutes=config.merge_max_time_gap_minutes)
    merged = [stays[0]]
    for stay in stays[1:]:
        current = merged[-1]
        dist = haversine_m(current.latitude, current.longitude, stay.latitude, stay.longitude)
        gap = stay.start_time - current.end_time
        if dist <= config.merge_max_distance_meters and gap <= max_gap:
            merged[-1] = _combine(current, stay)
        else:
            merged.append(stay)

    if len(merged) != len(stays):
        logger.debug("Merged %d stays into %d", len(stays), len(merged))
    return merged


def drop_absorbed_trips(
    stays: Sequence[TimelineStayPoint], trips: Sequence[TimelineTrip],
) -> list[TimelineTrip]:
    """Remove trips that now fall inside a (merged) stay."""
    starts = [s.start_time for s in stays]
    kept = []
    for trip in trips:
        # Only the last stay starting before the trip ends can overlap it
        i = bisect.bisect_left(starts, trip.end_time) - 1
        if i >= 0 and stays[i].end_time > trip.start_time:
            continue
        kept.append(trip)
    return kept
