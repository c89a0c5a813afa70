"""Trip detection between consecutive stay points.

Two interchangeable strategies, picked by ``trip_detection_algorithm``:

single
    Trusts the stay boundaries. One trip per stay pair, spanning the first
    stay's end to the next stay's start, through the raw fixes in between.
multi
    Same window, but the fixes in between are scanned with sliding velocity
    windows. The interval is split into several trips only when at least two
    distinct confident modes each cover a substantial share of the fixes.

Both strategies share the finalisation step: classify, force UNKNOWN on
zero displacement, drop noise and resolve overlaps (earlier start wins).
"""

import bisect
import dataclasses
import datetime
import logging
import statistics
from typing import Callable, Iterator, Sequence

from classification import classify, is_zero_displacement
from geo import is_accurate, path_distance_m, point_velocity_kmh
from records import TimelineStayPoint, TimelineTrip, TrackPoint, TravelMode
from timeline_config import TimelineConfig, TimelineConfigError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Multi-segment analysis
# ---------------------------------------------------------------------------

MIN_POINTS_FOR_ANALYSIS = 5
MIN_ACCURATE_POINTS = 3
HIGH_ACCURACY_M = 50.0
MIN_WINDOW_SIZE = 3
WINDOW_DIVISOR = 10
SMALL_SEGMENT_RATIO = 0.1
SUBSTANTIAL_SEGMENT_RATIO = 0.2

DRIVING_MIN_MAX_KMH = 25.0
DRIVING_MIN_MEDIAN_KMH = 15.0
WALKING_MAX_MAX_KMH = 8.0
WALKING_MAX_MEDIAN_KMH = 6.0


@dataclasses.dataclass(frozen=True, slots=True)
class _Candidate:
    trip: TimelineTrip
    confident: bool = True


@dataclasses.dataclass(frozen=True, slots=True)
class _Segment:
    start: int
    end: int  # inclusive
    mode: TravelMode

    @property
    def size(self) -> int:
        return self.end - self.start + 1


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _anchor(stay: TimelineStayPoint, timestamp: datetime.datetime) -> TrackPoint:
    return TrackPoint(timestamp=timestamp, latitude=stay.latitude, longitude=stay.longitude)


def _points_between(
    points: Sequence[TrackPoint],
    timestamps: list[datetime.datetime],
    start: datetime.datetime,
    end: datetime.datetime,
) -> Sequence[TrackPoint]:
    lo = bisect.bisect_right(timestamps, start)
    hi = bisect.bisect_left(timestamps, end)
    return points[lo:hi]


def _stay_pairs(
    points: Sequence[TrackPoint], stays: Sequence[TimelineStayPoint],
) -> Iterator[tuple[TimelineStayPoint, TimelineStayPoint, Sequence[TrackPoint]]]:
    """Yield (previous stay, next stay, fixes strictly between them)."""
    timestamps = [p.timestamp for p in points]
    for prev, nxt in zip(stays, stays[1:]):
        # Adjacent or overlapping stays leave no room for a trip
        if nxt.start_time <= prev.end_time:
            continue
        yield prev, nxt, _points_between(points, timestamps, prev.end_time, nxt.start_time)


def _make_trip(
    start: datetime.datetime, end: datetime.datetime, path: Sequence[TrackPoint],
) -> TimelineTrip:
    path = tuple(path)
    return TimelineTrip(
        start_time=start,
        end_time=end,
        path=path,
        distance_meters=path_distance_m(path),
    )


def _finalize(config: TimelineConfig, candidates: list[_Candidate]) -> list[TimelineTrip]:
    min_distance = config.trip_min_distance_meters
    min_duration = datetime.timedelta(minutes=config.trip_min_duration_minutes)

    trips: list[TimelineTrip] = []
    for candidate in candidates:
        trip = candidate.trip
        if trip.end_time <= trip.start_time:
            continue

        mode = classify(trip, config) if candidate.confident else TravelMode.UNKNOWN
        if is_zero_displacement(trip.path):
            # Kept regardless of the noise filters
            trips.append(dataclasses.replace(trip, travel_mode=TravelMode.UNKNOWN))
            continue

        if trip.distance_meters < min_distance or trip.duration < min_duration:
            logger.debug(
                "Dropping short trip at %s: %.0fm in %s",
                trip.start_time, trip.distance_meters, trip.duration,
            )
            continue
        trips.append(dataclasses.replace(trip, travel_mode=mode))

    return _drop_overlaps(trips)


def _drop_overlaps(trips: list[TimelineTrip]) -> list[TimelineTrip]:
    kept: list[TimelineTrip] = []
    for trip in sorted(trips, key=lambda t: t.start_time):
        if kept and trip.start_time < kept[-1].end_time:
            continue
        kept.append(trip)
    return kept


# ---------------------------------------------------------------------------
# Single-segment strategy
# ---------------------------------------------------------------------------

def detect_trips_single(
    config: TimelineConfig, points: Sequence[TrackPoint], stays: Sequence[TimelineStayPoint],
) -> list[TimelineTrip]:
    candidates = []
    for prev, nxt, between in _stay_pairs(points, stays):
        path = [_anchor(prev, prev.end_time), *between, _anchor(nxt, nxt.start_time)]
        candidates.append(_Candidate(_make_trip(prev.end_time, nxt.start_time, path)))
    return _finalize(config, candidates)


# ---------------------------------------------------------------------------
# Multi-segment strategy
# ---------------------------------------------------------------------------

def _window_mode(velocities: list[float]) -> TravelMode:
    median = statistics.median(velocities)
    peak = max(velocities)
    if peak > DRIVING_MIN_MAX_KMH and median > DRIVING_MIN_MEDIAN_KMH:
        return TravelMode.CAR
    if peak < WALKING_MAX_MAX_KMH and median < WALKING_MAX_MEDIAN_KMH:
        return TravelMode.WALKING
    return TravelMode.UNKNOWN


def _mode_segments(points: Sequence[TrackPoint], previous: TrackPoint) -> list[_Segment]:
    velocities = []
    for pt in points:
        velocities.append(point_velocity_kmh(pt, previous))
        previous = pt

    window = max(MIN_WINDOW_SIZE, len(points) // WINDOW_DIVISOR)
    segments: list[_Segment] = []
    for i in range(len(points) - window + 1):
        mode = _window_mode(velocities[i:i + window])
        if segments and segments[-1].mode == mode:
            continue
        if segments:
            segments[-1] = dataclasses.replace(segments[-1], end=i - 1)
        segments.append(_Segment(i, len(points) - 1, mode))
    return segments


def _merge_small_segments(segments: list[_Segment], total: int) -> list[_Segment]:
    """Fold short UNKNOWN runs into a confident neighbour."""
    merged: list[_Segment] = []
    for i, seg in enumerate(segments):
        if seg.mode == TravelMode.UNKNOWN and seg.size < total * SMALL_SEGMENT_RATIO:
            if merged and merged[-1].mode != TravelMode.UNKNOWN:
                merged[-1] = dataclasses.replace(merged[-1], end=seg.end)
                continue
            if i + 1 < len(segments) and segments[i + 1].mode != TravelMode.UNKNOWN:
                seg = dataclasses.replace(seg, mode=segments[i + 1].mode)
        if merged and merged[-1].mode == seg.mode:
            merged[-1] = dataclasses.replace(merged[-1], end=seg.end)
        else:
            merged.append(seg)
    return merged


def _should_split(segments: list[_Segment], total: int) -> bool:
    if len(segments) < 2:
        return False
    substantial = all(seg.size >= total * SUBSTANTIAL_SEGMENT_RATIO for seg in segments)
    confident = {seg.mode for seg in segments if seg.mode != TravelMode.UNKNOWN}
    return substantial and len(confident) >= 2


def _is_sparse(points: Sequence[TrackPoint]) -> bool:
    if len(points) < MIN_POINTS_FOR_ANALYSIS:
        return True
    accurate = sum(1 for p in points if is_accurate(p, HIGH_ACCURACY_M))
    return accurate < MIN_ACCURATE_POINTS


def detect_trips_multi(
    config: TimelineConfig, points: Sequence[TrackPoint], stays: Sequence[TimelineStayPoint],
) -> list[TimelineTrip]:
    candidates = []
    for prev, nxt, between in _stay_pairs(points, stays):
        start_anchor = _anchor(prev, prev.end_time)
        end_anchor = _anchor(nxt, nxt.start_time)
        whole = [start_anchor, *between, end_anchor]

        if _is_sparse(between):
            candidates.append(_Candidate(_make_trip(prev.end_time, nxt.start_time, whole), confident=False))
            continue

        segments = _merge_small_segments(_mode_segments(between, start_anchor), len(between))
        if not _should_split(segments, len(between)):
            candidates.append(_Candidate(_make_trip(prev.end_time, nxt.start_time, whole)))
            continue

        logger.debug(
            "Splitting trip %s-%s into %d segments: %s",
            prev.end_time, nxt.start_time, len(segments), [s.mode.value for s in segments],
        )
        for n, seg in enumerate(segments):
            path = list(between[seg.start:seg.end + 1])
            # Each piece starts where the previous one ended; the leg across
            # the boundary belongs to the later mode
            if n == 0:
                path.insert(0, start_anchor)
            else:
                path.insert(0, between[segments[n - 1].end])
            if n == len(segments) - 1:
                path.append(end_anchor)
            candidates.append(_Candidate(_make_trip(path[0].timestamp, path[-1].timestamp, path)))

    return _finalize(config, candidates)


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------

TripDetector = Callable[[TimelineConfig, Sequence[TrackPoint], Sequence[TimelineStayPoint]], list[TimelineTrip]]

TRIP_DETECTORS: dict[str, TripDetector] = {
    "single": detect_trips_single,
    "simple": detect_trips_single,
    "uni": detect_trips_single,
    "multi": detect_trips_multi,
    "multiple": detect_trips_multi,
    "multimodal": detect_trips_multi,
}


def get_trip_detector(name: str) -> TripDetector:
    try:
        return TRIP_DETECTORS[name.strip().lower()]
    except KeyError:
        raise TimelineConfigError(
            f"Unknown trip detection algorithm {name!r}; expected one of {sorted(TRIP_DETECTORS)}"
        ) from None


def detect_trips(
    config: TimelineConfig, points: Sequence[TrackPoint], stays: Sequence[TimelineStayPoint],
) -> list[TimelineTrip]:
    detector = get_trip_detector(config.trip_detection_algorithm)
    trips = detector(config, points, stays)
    logger.debug(
        "Detected %d trips between %d stays (%s)",
        len(trips), len(stays), config.trip_detection_algorithm,
    )
    return trips
