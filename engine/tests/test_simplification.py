"""Tests for trip path simplification."""

import datetime
import math

import pytest

from geo import path_distance_m
from records import TimelineTrip, TrackPoint
from simplification import adaptive_tolerance, douglas_peucker, simplify, simplify_trip, simplify_with_stats
from timeline_config import TimelineConfig

BASE = datetime.datetime(2024, 6, 1, 9, 0, 0)
METRES_PER_DEG_LAT = 111_195.0
LAT = 45.0


def _lon_offset(metres):
    return metres / (METRES_PER_DEG_LAT * math.cos(math.radians(LAT)))


def _line(length_m, count):
    """Straight path due north, evenly spaced fixes one minute apart."""
    step = length_m / (count - 1) / METRES_PER_DEG_LAT
    return [
        TrackPoint(BASE + datetime.timedelta(minutes=i), LAT + i * step, 7.0)
        for i in range(count)
    ]


def _zigzag(count, amplitude_m, step_m=10.0):
    offset = _lon_offset(amplitude_m)
    return [
        TrackPoint(
            BASE + datetime.timedelta(seconds=30 * i),
            LAT + i * step_m / METRES_PER_DEG_LAT,
            7.0 + (offset if i % 2 else -offset),
        )
        for i in range(count)
    ]


def _bent(length_m, offset_m):
    """Three fixes with the middle one pushed sideways by offset_m."""
    half = length_m / 2 / METRES_PER_DEG_LAT
    return [
        TrackPoint(BASE, LAT, 7.0),
        TrackPoint(BASE + datetime.timedelta(minutes=3), LAT + half, 7.0 + _lon_offset(offset_m)),
        TrackPoint(BASE + datetime.timedelta(minutes=6), LAT + 2 * half, 7.0),
    ]


class TestDouglasPeucker:
    def test_straight_line_reduces_to_endpoints(self):
        points = _line(2000, 50)
        result = douglas_peucker(points, 5.0)
        assert result == [points[0], points[-1]]

    def test_short_paths_unchanged(self):
        points = _line(100, 2)
        assert douglas_peucker(points, 5.0) == points
        assert douglas_peucker([], 5.0) == []

    def test_keeps_corner(self):
        points = _bent(500, 50)
        assert douglas_peucker(points, 15.0) == points


class TestAdaptiveTolerance:
    @pytest.mark.parametrize("length_m,expected", [
        (500, 6.0),
        (1500, 9.0),
        (3000, 12.0),
        (7000, 15.0),
        (20_000, 21.0),
        (30_000, 30.0),
        (60_000, 37.5),
    ])
    def test_bands(self, length_m, expected):
        assert adaptive_tolerance(_line(length_m, 2), 15.0) == pytest.approx(expected)

    def test_short_trip_floor(self):
        assert adaptive_tolerance(_line(500, 2), 10.0) == 5.0


class TestSimplify:
    def test_disabled_passes_through(self):
        points = _zigzag(50, 30)
        config = TimelineConfig(path_simplification_enabled=False)
        assert simplify(points, config) == points

    def test_zero_tolerance_passes_through(self):
        points = _zigzag(50, 30)
        config = TimelineConfig(path_simplification_tolerance=0)
        assert simplify(points, config) == points

    def test_zero_tolerance_still_enforces_max_points(self):
        points = _zigzag(50, 30)
        config = TimelineConfig(path_simplification_tolerance=0, path_max_points=10)
        result, stats = simplify_with_stats(points, config)
        assert len(result) == 10
        assert result[0] == points[0]
        assert result[-1] == points[-1]
        assert stats.tolerance_m == 0.0
        assert stats.simplified_points == 10

    def test_two_points_pass_through(self, config):
        points = _line(1000, 2)
        assert simplify(points, config) == points

    def test_never_adds_points(self, config):
        points = _zigzag(80, 3)
        result = simplify(points, config)
        assert len(result) <= len(points)
        assert result[0] == points[0]
        assert result[-1] == points[-1]

    def test_adaptive_keeps_detail_on_short_trips(self):
        points = _bent(500, 10)
        adaptive = TimelineConfig(path_simplification_tolerance=15.0)
        fixed = TimelineConfig(path_simplification_tolerance=15.0, path_adaptive_simplification=False)
        assert len(simplify(points, adaptive)) == 3
        assert len(simplify(points, fixed)) == 2

    def test_max_points_enforced(self):
        points = _zigzag(200, 250)
        config = TimelineConfig(path_max_points=10)
        result, stats = simplify_with_stats(points, config)
        assert len(result) <= 10
        assert result[0] == points[0]
        assert result[-1] == points[-1]
        assert stats.original_points == 200
        assert stats.simplified_points == len(result)

    def test_max_points_zero_means_unbounded(self):
        points = _zigzag(200, 250)
        config = TimelineConfig(path_max_points=0)
        assert len(simplify(points, config)) > 100

    def test_stats_reduction(self, config):
        points = _line(2000, 40)
        _, stats = simplify_with_stats(points, config)
        assert stats.simplified_points == 2
        assert stats.reduction == pytest.approx(0.95)


class TestSimplifyTrip:
    def test_keeps_distance_and_times(self, config):
        points = _zigzag(60, 2)
        distance = path_distance_m(points)
        trip = TimelineTrip(points[0].timestamp, points[-1].timestamp, tuple(points), distance)

        simplified = simplify_trip(trip, config)

        assert len(simplified.path) < len(trip.path)
        assert simplified.distance_meters == distance
        assert simplified.start_time == trip.start_time
        assert simplified.end_time == trip.end_time
        assert isinstance(simplified.path, tuple)
