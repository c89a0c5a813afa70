"""Timeline engine: turns raw GPS fixes into stays, trips and data gaps.

Processing pipeline (per user and time range):
1. Filter out GPS errors (absurd accuracy or velocity, duplicate fixes)
2. Break the stream at large time gaps. A gap becomes a data gap, an
   inferred trip, or (when the stay resumes in place) no break at all
3. Per segment: detect stay points, detect trips between them with the
   configured strategy, merge nearby stays, simplify trip paths
4. Resolve a place name for each final stay
5. Replace the stored timeline for the range

Long ranges are processed in windows of ``processing_window_days``. The
still-open segment is carried into the next window, so results do not
depend on where window boundaries fall.
"""

import bisect
import dataclasses
import datetime
import logging
import threading
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from gaps import find_gap_breaks, merge_consecutive_gaps, split_at_breaks
from geo import filter_gps_errors
from geocoding import make_place_name_resolver
from merging import drop_absorbed_trips, merge_stay_points
from models import TimelineDataGap, TimelineStay, TimelineTrip
from persistence import PointLoader, location_bounds, location_source, save_timeline
from records import TimelineResult, TimelineStayPoint, TrackPoint
from simplification import simplify_trip
from staypoints import detect_stay_points
from timeline_config import TimelineConfig, resolve_config
from trips import detect_trips, get_trip_detector

logger = logging.getLogger(__name__)

NameResolver = Callable[[float, float], str]


class TimelineCancelled(RuntimeError):
    """Raised when a run is cancelled between windows."""


# ---------------------------------------------------------------------------
# Segment processing
# ---------------------------------------------------------------------------

def process_segment(config: TimelineConfig, points: Sequence[TrackPoint]):
    """Stays and trips for one gap-free segment.

    Returns (stays, trips).
    """
    stays = detect_stay_points(config, points)
    trips = detect_trips(config, points, stays)
    stays = merge_stay_points(config, stays)
    trips = drop_absorbed_trips(stays, trips)
    trips = [simplify_trip(t, config) for t in trips]
    return stays, trips


class _OpenSegment:
    """A gap-free segment that may continue into the next window.

    The newest stay can still grow (and its centroid drift) when the next
    window arrives, so it is held back. Stays before it are settled, and
    trips are emitted only between settled stays. The last settled stay is
    the anchor: only fixes from its arrival onward are kept, and it is
    detected again as the first stay of the next pass.
    Merging and simplification wait until the segment closes.
    """

    def __init__(self):
        self.points: list[TrackPoint] = []
        self.stays: list[TimelineStayPoint] = []
        self.trips = []

    def extend(self, config: TimelineConfig, points: Sequence[TrackPoint]):
        if not points:
            return
        self.points.extend(points)
        settled = detect_stay_points(config, self.points)[:-1]
        fresh = settled[1:] if self.stays else settled
        if not fresh:
            return

        self.trips.extend(detect_trips(config, self.points, settled))
        self.stays.extend(fresh)
        anchor = self.stays[-1]
        timestamps = [p.timestamp for p in self.points]
        self.points = self.points[bisect.bisect_left(timestamps, anchor.start_time):]

    def close(self, config: TimelineConfig):
        stays = detect_stay_points(config, self.points)
        trips = self.trips + detect_trips(config, self.points, stays)
        fresh = stays[1:] if self.stays else stays
        stays = merge_stay_points(config, self.stays + fresh)
        trips = drop_absorbed_trips(stays, trips)
        return stays, [simplify_trip(t, config) for t in trips]


def _with_names(stays, resolve_name: Optional[NameResolver]) -> tuple:
    if resolve_name is None:
        return tuple(stays)
    return tuple(
        dataclasses.replace(s, location_name=resolve_name(s.latitude, s.longitude))
        for s in stays
    )


# ---------------------------------------------------------------------------
# Pure pipeline
# ---------------------------------------------------------------------------

def build_timeline(
    config: TimelineConfig,
    points: Sequence[TrackPoint],
    resolve_name: Optional[NameResolver] = None,
) -> TimelineResult:
    """Run the whole pipeline over an in-memory, time-ordered list of fixes."""
    get_trip_detector(config.trip_detection_algorithm)

    clean = filter_gps_errors(points)
    breaks = find_gap_breaks(config, clean)
    stays, trips = [], []
    for n, segment in enumerate(split_at_breaks(clean, breaks)):
        if n > 0 and breaks[n - 1].trip is not None:
            trips.append(breaks[n - 1].trip)
        seg_stays, seg_trips = process_segment(config, segment)
        stays.extend(seg_stays)
        trips.extend(seg_trips)

    gaps = [b.gap for b in breaks if b.gap is not None]
    return TimelineResult(
        stays=_with_names(stays, resolve_name),
        trips=tuple(trips),
        data_gaps=tuple(merge_consecutive_gaps(gaps)),
    )


def generate_timeline(
    config: TimelineConfig,
    load_points: PointLoader,
    start: datetime.datetime,
    end: datetime.datetime,
    resolve_name: Optional[NameResolver] = None,
    cancel_event: Optional[threading.Event] = None,
) -> TimelineResult:
    """Windowed pipeline over [start, end), loading fixes one window at a time."""
    get_trip_detector(config.trip_detection_algorithm)

    window = datetime.timedelta(days=config.processing_window_days)
    stays, trips, gaps = [], [], []
    segment = _OpenSegment()
    last_point = None
    cursor = start

    while cursor < end:
        if cancel_event is not None and cancel_event.is_set():
            raise TimelineCancelled(f"Timeline run cancelled at {cursor}")

        window_end = min(cursor + window, end)
        raw = load_points(cursor, window_end)
        if last_point is not None:
            # The last fix of the previous window stitches the boundary
            points = filter_gps_errors([last_point, *raw])[1:]
        else:
            points = filter_gps_errors(raw)

        if points:
            # The open segment ends with last_point, so it carries the
            # predecessor across the window boundary
            breaks = find_gap_breaks(config, points, history=segment.points)
            for n, piece in enumerate(split_at_breaks(points, breaks)):
                if n > 0:
                    seg_stays, seg_trips = segment.close(config)
                    stays.extend(seg_stays)
                    trips.extend(seg_trips)
                    segment = _OpenSegment()
                    brk = breaks[n - 1]
                    if brk.gap is not None:
                        gaps.append(brk.gap)
                    if brk.trip is not None:
                        trips.append(brk.trip)
                segment.extend(config, piece)
            last_point = points[-1]

        logger.debug("Window %s..%s: %d points", cursor, window_end, len(points))
        cursor = window_end

    seg_stays, seg_trips = segment.close(config)
    stays.extend(seg_stays)
    trips.extend(seg_trips)

    result = TimelineResult(
        stays=_with_names(stays, resolve_name),
        trips=tuple(trips),
        data_gaps=tuple(merge_consecutive_gaps(gaps)),
    )
    logger.info(
        "Timeline %s..%s: %d stays, %d trips, %d data gaps",
        start, end, len(result.stays), len(result.trips), len(result.data_gaps),
    )
    return result


# ---------------------------------------------------------------------------
# Database-backed runs
# ---------------------------------------------------------------------------

def regenerate_timeline(
    db: Session,
    user_id: int,
    start: Optional[datetime.datetime] = None,
    end: Optional[datetime.datetime] = None,
    config: Optional[TimelineConfig] = None,
    use_geocoder: bool = True,
    cancel_event: Optional[threading.Event] = None,
) -> dict:
    """Rebuild and store the user's timeline for [start, end).

    Missing bounds default to the user's first and last stored location.
    Returns {"stays": int, "trips": int, "data_gaps": int}.
    """
    if config is None:
        config = resolve_config(db, user_id)
    get_trip_detector(config.trip_detection_algorithm)

    if start is None or end is None:
        first, last = location_bounds(db, user_id)
        if first is None:
            logger.info("No locations for user=%d, nothing to regenerate", user_id)
            return {"stays": 0, "trips": 0, "data_gaps": 0}
        start = start or first
        end = end or last + datetime.timedelta(seconds=1)

    result = generate_timeline(
        config,
        location_source(db, user_id),
        start,
        end,
        resolve_name=make_place_name_resolver(db, user_id, use_geocoder),
        cancel_event=cancel_event,
    )
    return save_timeline(db, user_id, start, end, result)


def reprocess_all(db: Session, user_id: int, use_geocoder: bool = True) -> dict:
    """Delete the user's whole timeline and rebuild it from scratch."""
    for model in (TimelineStay, TimelineTrip, TimelineDataGap):
        db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)
    db.commit()

    counts = regenerate_timeline(db, user_id, use_geocoder=use_geocoder)
    logger.info(
        "Reprocessed user=%d: %d stays, %d trips, %d data gaps",
        user_id, counts["stays"], counts["trips"], counts["data_gaps"],
    )
    return counts
