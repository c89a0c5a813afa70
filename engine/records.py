"""Immutable value records that flow through the timeline pipeline."""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass
from typing import Optional


class TravelMode(str, enum.Enum):
    WALKING = "WALKING"
    CYCLING = "CYCLING"
    CAR = "CAR"
    TRAIN = "TRAIN"
    FLIGHT = "FLIGHT"
    RUNNING = "RUNNING"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True, slots=True)
class TrackPoint:
    """A single GPS fix.

    Attributes:
        timestamp: Naive UTC datetime of the fix.
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        accuracy: Horizontal accuracy in metres, None when the device did not report it.
        velocity: Device-reported speed in km/h, None when absent.
    """

    timestamp: datetime.datetime
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    velocity: Optional[float] = None


@dataclass(frozen=True, slots=True)
class TimelineStayPoint:
    latitude: float
    longitude: float
    start_time: datetime.datetime
    end_time: datetime.datetime
    location_name: Optional[str] = None

    @property
    def duration(self) -> datetime.timedelta:
        return self.end_time - self.start_time

    @property
    def duration_seconds(self) -> int:
        return int(self.duration.total_seconds())


@dataclass(frozen=True, slots=True)
class TimelineTrip:
    """Movement between two stays.

    The path starts and ends at the bounding stay centroids.
    """

    start_time: datetime.datetime
    end_time: datetime.datetime
    path: tuple[TrackPoint, ...]
    distance_meters: float
    travel_mode: TravelMode = TravelMode.UNKNOWN

    @property
    def duration(self) -> datetime.timedelta:
        return self.end_time - self.start_time

    @property
    def duration_seconds(self) -> int:
        return int(self.duration.total_seconds())


@dataclass(frozen=True, slots=True)
class TimelineDataGap:
    start_time: datetime.datetime
    end_time: datetime.datetime

    @property
    def duration_seconds(self) -> int:
        return int((self.end_time - self.start_time).total_seconds())


@dataclass(frozen=True, slots=True)
class TimelineResult:
    stays: tuple[TimelineStayPoint, ...] = ()
    trips: tuple[TimelineTrip, ...] = ()
    data_gaps: tuple[TimelineDataGap, ...] = ()
