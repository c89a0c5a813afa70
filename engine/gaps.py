"""Data gap detection and gap-based splitting of the point stream.

A gap between two consecutive fixes needs both knobs to agree: the time
delta must exceed ``data_gap_threshold_seconds`` and must be at least
``data_gap_min_duration_seconds``. Either knob set to None disables gaps.

Each gap is then resolved in priority order:
1. Stay inference: the fix after the silence is back inside the stay that
   was open before it, so the stay simply continues (no break).
2. Trip inference: the two fixes are far apart, so the silence becomes a
   two-point trip between them.
3. Otherwise it is a plain data gap.
Both inferences are off by default.
"""

import dataclasses
import logging
from typing import Optional, Sequence

from classification import classify_by_average_speed
from geo import distance_m, haversine_m
from records import TimelineDataGap, TimelineTrip, TrackPoint
from staypoints import open_stay_centroid
from timeline_config import TimelineConfig

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class GapBreak:
    """The stream breaks before points[index]; exactly one of gap/trip is set."""
    index: int
    gap: Optional[TimelineDataGap] = None
    trip: Optional[TimelineTrip] = None


def gap_detection_enabled(config: TimelineConfig) -> bool:
    return (
        config.data_gap_threshold_seconds is not None
        and config.data_gap_min_duration_seconds is not None
    )


def has_gap(config: TimelineConfig, a: TrackPoint, b: TrackPoint) -> bool:
    if not gap_detection_enabled(config):
        return False
    dt = (b.timestamp - a.timestamp).total_seconds()
    return dt > config.data_gap_threshold_seconds and dt >= config.data_gap_min_duration_seconds


def _gap_hours(a: TrackPoint, b: TrackPoint) -> int:
    """Whole hours of silence, truncated."""
    return int((b.timestamp - a.timestamp).total_seconds() // 3600)


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------

def _infers_stay(config: TimelineConfig, segment: Sequence[TrackPoint], b: TrackPoint, hours: int) -> bool:
    if not config.gap_stay_inference_enabled:
        return False
    max_hours = config.gap_stay_inference_max_gap_hours
    if max_hours and hours > max_hours:
        return False

    center = open_stay_centroid(config, segment)
    if center is None:
        return False
    distance = haversine_m(center[0], center[1], b.latitude, b.longitude)
    if distance > config.staypoint_radius_meters:
        logger.debug("No stay inferred at %s: %.0fm from the open stay", b.timestamp, distance)
        return False
    return True


def _infer_trip(config: TimelineConfig, a: TrackPoint, b: TrackPoint, hours: int) -> Optional[TimelineTrip]:
    if not config.gap_trip_inference_enabled:
        return None
    min_hours = config.gap_trip_inference_min_gap_hours
    max_hours = config.gap_trip_inference_max_gap_hours
    if min_hours and hours < min_hours:
        return None
    if max_hours and hours > max_hours:
        return None

    distance = distance_m(a, b)
    if distance < config.gap_trip_inference_min_distance_meters:
        return None

    avg_speed = distance / (b.timestamp - a.timestamp).total_seconds() * 3.6
    mode = classify_by_average_speed(avg_speed, distance, config)
    logger.debug(
        "Inferred %s trip across gap %s..%s: %.0fm at %.1f km/h",
        mode.value, a.timestamp, b.timestamp, distance, avg_speed,
    )
    return TimelineTrip(
        start_time=a.timestamp,
        end_time=b.timestamp,
        path=(a, b),
        distance_meters=distance,
        travel_mode=mode,
    )


# ---------------------------------------------------------------------------
# Breaks, gaps and segments
# ---------------------------------------------------------------------------

def find_gap_breaks(
    config: TimelineConfig,
    points: Sequence[TrackPoint],
    history: Sequence[TrackPoint] = (),
) -> list[GapBreak]:
    """Where the stream breaks, and what each break records.

    ``history`` holds the fixes of the segment still open before points[0];
    its last fix is the predecessor of points[0].
    """
    if not points or not gap_detection_enabled(config):
        return []

    breaks: list[GapBreak] = []
    segment_start = 0
    previous = history[-1] if history else None
    for i, pt in enumerate(points):
        a, previous = previous, pt
        if a is None or not has_gap(config, a, pt):
            continue

        hours = _gap_hours(a, pt)
        if config.gap_stay_inference_enabled:
            segment = list(points[segment_start:i])
            if not breaks:
                segment = [*history, *segment]
            if _infers_stay(config, segment, pt, hours):
                logger.debug("Stay inferred across gap %s..%s", a.timestamp, pt.timestamp)
                continue

        trip = _infer_trip(config, a, pt, hours)
        if trip is not None:
            breaks.append(GapBreak(i, trip=trip))
        else:
            breaks.append(GapBreak(i, gap=TimelineDataGap(a.timestamp, pt.timestamp)))
        segment_start = i

    return breaks


def merge_consecutive_gaps(gaps: Sequence[TimelineDataGap]) -> list[TimelineDataGap]:
    """Join gaps that touch or overlap into one."""
    merged: list[TimelineDataGap] = []
    for gap in gaps:
        if merged and gap.start_time <= merged[-1].end_time:
            last = merged[-1]
            merged[-1] = TimelineDataGap(last.start_time, max(last.end_time, gap.end_time))
        else:
            merged.append(gap)
    return merged


def detect_gaps(config: TimelineConfig, points: Sequence[TrackPoint]) -> list[TimelineDataGap]:
    gaps = [b.gap for b in find_gap_breaks(config, points) if b.gap is not None]
    gaps = merge_consecutive_gaps(gaps)
    if gaps:
        logger.debug("Detected %d data gaps in %d points", len(gaps), len(points))
    return gaps


def split_at_breaks(points: Sequence[TrackPoint], breaks: Sequence[GapBreak]) -> list[list[TrackPoint]]:
    """len(breaks) + 1 pieces; a break at index 0 leaves the first piece empty."""
    bounds = [0, *(b.index for b in breaks), len(points)]
    return [list(points[lo:hi]) for lo, hi in zip(bounds, bounds[1:])]


def split_at_gaps(config: TimelineConfig, points: Sequence[TrackPoint]) -> list[list[TrackPoint]]:
    """One segment per maximal unbroken run; sizes always sum to len(points)."""
    if not points:
        return []
    return split_at_breaks(points, find_gap_breaks(config, points))
