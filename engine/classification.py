"""Travel mode classification for detected trips.

Signals: average speed (path distance over trip duration), a smoothed
maximum speed, the coefficient of variation of the smoothed speeds, the
device-reported velocities on the path, path straightness and the
start-to-end displacement. Weak or missing signal always yields UNKNOWN.

The walking and car bands come from the timeline config. Cycling, train and
flight are opt-in; while they are off, such trips fall into the car band or
stay UNKNOWN.
"""

import logging
import statistics
from typing import Optional, Sequence

from geo import distance_m, path_distance_m, speed_kmh
from records import TimelineTrip, TrackPoint, TravelMode
from timeline_config import TimelineConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fixed thresholds (km/h unless noted)
# ---------------------------------------------------------------------------

MIN_SPEED_SAMPLES = 2
SUSPICIOUS_SPEED_KMH = 1200.0
SMOOTHING_WINDOW = 3
POOR_ACCURACY_M = 100.0
MIN_ACCURATE_SHARE = 0.5

SHORT_WALK_AVG_MARGIN_KMH = 1.0
SHORT_WALK_MAX_MARGIN_KMH = 2.0

CAR_STEADY_AVG_KMH = 25.0
CAR_MAX_AVG_KMH = 200.0

TRAIN_MIN_STRAIGHTNESS = 0.85
TRAIN_MIN_DISPLACEMENT_M = 10_000.0

FLIGHT_MIN_DISPLACEMENT_M = 100_000.0
FLIGHT_MAX_CV = 0.5

RUNNING_MIN_AVG_KMH = 6.0
RUNNING_MAX_AVG_KMH = 12.0
RUNNING_MAX_KMH = 20.0
RUNNING_MIN_CV = 0.05
RUNNING_MAX_CV = 0.6


def is_zero_displacement(path: Sequence[TrackPoint]) -> bool:
    """True when a path starts and ends at exactly the same coordinates."""
    if not path:
        return True
    first, last = path[0], path[-1]
    return first.latitude == last.latitude and first.longitude == last.longitude


def _segment_speeds(path: Sequence[TrackPoint]) -> list[float]:
    speeds = []
    for a, b in zip(path, path[1:]):
        if (b.timestamp - a.timestamp).total_seconds() <= 0:
            continue
        v = speed_kmh(a, b)
        if v > SUSPICIOUS_SPEED_KMH:
            continue
        speeds.append(v)
    return speeds


def _smooth(speeds: list[float]) -> list[float]:
    if len(speeds) < SMOOTHING_WINDOW:
        return speeds
    return [
        sum(speeds[i:i + SMOOTHING_WINDOW]) / SMOOTHING_WINDOW
        for i in range(len(speeds) - SMOOTHING_WINDOW + 1)
    ]


def _has_poor_accuracy(path: Sequence[TrackPoint]) -> bool:
    reported = [p.accuracy for p in path if p.accuracy is not None]
    if not reported:
        return False
    good = sum(1 for acc in reported if acc <= POOR_ACCURACY_M)
    return good / len(reported) < MIN_ACCURATE_SHARE


def classify_by_average_speed(
    avg_speed: float, distance: float, config: Optional[TimelineConfig] = None,
) -> TravelMode:
    """Coarse mode for trips with no usable path, such as one inferred across a gap.

    Only the average speed and the straight-line distance are trusted; the
    fixes at either end say nothing about how the gap was travelled. Trains
    and cars share a speed band, so ground travel is reported as CAR.
    """
    config = config or TimelineConfig()
    if avg_speed <= 0 or distance <= 0:
        return TravelMode.UNKNOWN
    if config.flight_enabled and avg_speed >= config.flight_min_avg_speed:
        return TravelMode.FLIGHT
    if avg_speed <= config.walking_max_avg_speed:
        return TravelMode.WALKING
    if config.car_min_avg_speed < avg_speed <= CAR_MAX_AVG_KMH:
        return TravelMode.CAR
    return TravelMode.UNKNOWN


def classify(trip: TimelineTrip, config: Optional[TimelineConfig] = None) -> TravelMode:
    config = config or TimelineConfig()
    path = trip.path
    duration_s = trip.duration.total_seconds()
    if len(path) < 2 or duration_s <= 0 or is_zero_displacement(path):
        return TravelMode.UNKNOWN

    speeds = _segment_speeds(path)
    if len(speeds) < MIN_SPEED_SAMPLES or _has_poor_accuracy(path):
        return TravelMode.UNKNOWN

    distance = path_distance_m(path)
    displacement = distance_m(path[0], path[-1])
    avg_speed = distance / duration_s * 3.6

    smoothed = _smooth(speeds)
    max_speed = max(smoothed)
    device = [p.velocity for p in path if p.velocity is not None and p.velocity <= SUSPICIOUS_SPEED_KMH]
    if device:
        max_speed = max(max_speed, statistics.median(device))

    mean = statistics.fmean(smoothed)
    spread = statistics.pstdev(smoothed)
    cv = spread / mean if mean > 0 else 0.0
    straightness = displacement / distance if distance > 0 else 1.0

    logger.debug(
        "Classifying trip %s: avg=%.1f max=%.1f cv=%.2f straightness=%.2f displacement=%.0fm",
        trip.start_time, avg_speed, max_speed, cv, straightness, displacement,
    )

    if avg_speed <= config.walking_max_avg_speed and max_speed <= config.walking_max_max_speed:
        return TravelMode.WALKING
    if (
        displacement < config.short_distance_km * 1000
        and avg_speed <= config.walking_max_avg_speed + SHORT_WALK_AVG_MARGIN_KMH
        and max_speed <= config.walking_max_max_speed + SHORT_WALK_MAX_MARGIN_KMH
    ):
        return TravelMode.WALKING

    if (
        config.bicycle_enabled
        and config.bicycle_min_avg_speed <= avg_speed <= config.bicycle_max_avg_speed
        and max_speed <= config.bicycle_max_max_speed
    ):
        return TravelMode.CYCLING

    if avg_speed <= CAR_MAX_AVG_KMH and (
        avg_speed > CAR_STEADY_AVG_KMH
        or (avg_speed > config.car_min_avg_speed and max_speed > config.car_min_max_speed)
    ):
        if (
            config.train_enabled
            and config.train_min_avg_speed <= avg_speed <= config.train_max_avg_speed
            and config.train_min_max_speed <= max_speed <= config.train_max_max_speed
            and spread <= config.train_max_speed_variance
            and straightness >= TRAIN_MIN_STRAIGHTNESS
            and displacement >= TRAIN_MIN_DISPLACEMENT_M
        ):
            return TravelMode.TRAIN
        return TravelMode.CAR

    if (
        config.flight_enabled
        and avg_speed >= config.flight_min_avg_speed
        and max_speed >= config.flight_min_max_speed
        and displacement >= FLIGHT_MIN_DISPLACEMENT_M
        and cv <= FLIGHT_MAX_CV
    ):
        return TravelMode.FLIGHT

    if (
        RUNNING_MIN_AVG_KMH < avg_speed < RUNNING_MAX_AVG_KMH
        and max_speed <= RUNNING_MAX_KMH
        and RUNNING_MIN_CV <= cv <= RUNNING_MAX_CV
    ):
        return TravelMode.RUNNING

    return TravelMode.UNKNOWN
