"""Database edges of a timeline run: the point source and the timeline sink."""

import datetime
import logging
from typing import Callable

from sqlalchemy.orm import Session

from models import Location, TimelineDataGap, TimelineStay, TimelineTrip
from records import TimelineResult, TrackPoint

logger = logging.getLogger(__name__)

PointLoader = Callable[[datetime.datetime, datetime.datetime], list[TrackPoint]]


def location_source(db: Session, user_id: int) -> PointLoader:
    """Point loader over the user's stored locations, half-open [start, end)."""

    def load_points(start: datetime.datetime, end: datetime.datetime) -> list[TrackPoint]:
        rows = (
            db.query(Location)
            .filter(
                Location.user_id == user_id,
                Location.timestamp >= start,
                Location.timestamp < end,
            )
            .order_by(Location.timestamp.asc(), Location.id.asc())
            .all()
        )
        return [
            TrackPoint(
                timestamp=loc.timestamp,
                latitude=loc.latitude,
                longitude=loc.longitude,
                accuracy=loc.accuracy,
                velocity=loc.velocity,
            )
            for loc in rows
        ]

    return load_points


def location_bounds(db: Session, user_id: int):
    """(first, last) location timestamp for the user, or (None, None)."""
    first = (
        db.query(Location.timestamp)
        .filter(Location.user_id == user_id)
        .order_by(Location.timestamp.asc())
        .first()
    )
    last = (
        db.query(Location.timestamp)
        .filter(Location.user_id == user_id)
        .order_by(Location.timestamp.desc())
        .first()
    )
    if first is None:
        return None, None
    return first[0], last[0]


def _path_json(path) -> list:
    return [[p.latitude, p.longitude, p.timestamp.isoformat()] for p in path]


def save_timeline(
    db: Session,
    user_id: int,
    start: datetime.datetime,
    end: datetime.datetime,
    result: TimelineResult,
) -> dict:
    """Replace the user's timeline records starting inside [start, end).

    Returns {"stays": int, "trips": int, "data_gaps": int}.
    """
    for model in (TimelineStay, TimelineTrip, TimelineDataGap):
        db.query(model).filter(
            model.user_id == user_id,
            model.start_time >= start,
            model.start_time < end,
        ).delete(synchronize_session=False)

    for stay in result.stays:
        db.add(TimelineStay(
            user_id=user_id,
            latitude=stay.latitude,
            longitude=stay.longitude,
            start_time=stay.start_time,
            end_time=stay.end_time,
            duration_seconds=stay.duration_seconds,
            location_name=stay.location_name,
        ))

    for trip in result.trips:
        db.add(TimelineTrip(
            user_id=user_id,
            start_time=trip.start_time,
            end_time=trip.end_time,
            duration_seconds=trip.duration_seconds,
            distance_meters=trip.distance_meters,
            travel_mode=trip.travel_mode.value,
            path=_path_json(trip.path),
        ))

    for gap in result.data_gaps:
        db.add(TimelineDataGap(
            user_id=user_id,
            start_time=gap.start_time,
            end_time=gap.end_time,
            duration_seconds=gap.duration_seconds,
        ))

    db.commit()
    counts = {
        "stays": len(result.stays),
        "trips": len(result.trips),
        "data_gaps": len(result.data_gaps),
    }
    logger.info("Saved timeline for user=%d %s..%s: %s", user_id, start, end, counts)
    return counts
