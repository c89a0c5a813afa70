"""GPS test fixture data: a morning commute in San Francisco and a NYC workday.

Data sources (for reference and further testing):
- Microsoft GeoLife GPS Trajectory Dataset:
  https://www.microsoft.com/en-us/download/details.aspx?id=52367
- OpenStreetMap public GPS traces:
  https://www.openstreetmap.org/traces/

The San Francisco trace contains 50 points across 5 segments:
1. HOME (7 pts, 12 min) - stationary cluster near 37.7615, -122.4240
2. WALK_TO_COFFEE (10 pts, 5 min) - moving ~595m NE
3. COFFEE_SHOP (5 pts, 8 min) - stationary near 37.7655, -122.4195
4. WALK_TO_OFFICE (16 pts, 12 min) - moving ~1096m N
5. OFFICE (12 pts, 33 min) - stationary near 37.7738, -122.4128

With the default config the walk to the coffee shop (5.5 min between the
stays) is too short to be a trip, so the trace yields 3 stays and 1 trip.

Velocities are km/h (the rows below give device speed in m/s).
"""

import datetime

from records import TrackPoint

# Canonical centers for expected stay detection
HOME_CENTER = {"latitude": 37.7615, "longitude": -122.4240}
COFFEE_SHOP_CENTER = {"latitude": 37.7655, "longitude": -122.4195}
OFFICE_CENTER = {"latitude": 37.7738, "longitude": -122.4128}

_BASE = datetime.datetime(2024, 1, 15, 8, 0, 0)


def _t(minutes, seconds=0):
    return _BASE + datetime.timedelta(minutes=minutes, seconds=seconds)


def _p(lat, lon, accuracy, speed_ms, minutes, seconds=0):
    return TrackPoint(
        timestamp=_t(minutes, seconds),
        latitude=lat,
        longitude=lon,
        accuracy=accuracy,
        velocity=round(speed_ms * 3.6, 2),
    )


# -- Segment 1: Home (7 points over 12 minutes) --
HOME_SEGMENT = [
    _p(37.76148, -122.42405, 8.0, 0.0, 0),
    _p(37.76153, -122.42398, 10.0, 0.2, 2),
    _p(37.76146, -122.42410, 7.0, 0.1, 4),
    _p(37.76155, -122.42393, 12.0, 0.3, 6),
    _p(37.76149, -122.42402, 9.0, 0.0, 8),
    _p(37.76144, -122.42408, 11.0, 0.4, 10),
    _p(37.76151, -122.42400, 8.0, 0.1, 12),
]

# -- Segment 2: Walk to coffee shop (10 points over 5 minutes) --
WALK_TO_COFFEE = [
    _p(37.76180, -122.42370, 6.0, 1.3, 12, 30),
    _p(37.76210, -122.42340, 7.0, 1.4, 13),
    _p(37.76245, -122.42310, 6.0, 1.3, 13, 30),
    _p(37.76280, -122.42280, 8.0, 1.2, 14),
    _p(37.76320, -122.42245, 7.0, 1.5, 14, 30),
    _p(37.76360, -122.42210, 6.0, 1.4, 15),
    _p(37.76400, -122.42170, 9.0, 1.3, 15, 30),
    _p(37.76440, -122.42130, 7.0, 1.4, 16),
    _p(37.76490, -122.42000, 6.0, 1.5, 16, 30),
    _p(37.76540, -122.41960, 8.0, 1.2, 17),
]

# -- Segment 3: Coffee shop (5 points over 8 minutes) --
COFFEE_SEGMENT = [
    _p(37.76552, -122.41955, 18.0, 0.0, 17, 30),
    _p(37.76548, -122.41948, 22.0, 0.2, 19, 30),
    _p(37.76555, -122.41952, 25.0, 0.1, 21, 30),
    _p(37.76545, -122.41958, 20.0, 0.3, 23, 30),
    _p(37.76550, -122.41950, 19.0, 0.0, 25, 30),
]

# -- Segment 4: Walk to office (16 points over 12 minutes) --
WALK_TO_OFFICE = [
    _p(37.76580, -122.41920, 7.0, 1.3, 26),
    _p(37.76620, -122.41880, 6.0, 1.4, 26, 45),
    _p(37.76660, -122.41840, 8.0, 1.2, 27, 30),
    _p(37.76700, -122.41800, 7.0, 1.5, 28, 15),
    _p(37.76750, -122.41750, 6.0, 1.3, 29),
    _p(37.76800, -122.41700, 9.0, 1.4, 29, 45),
    _p(37.76850, -122.41650, 7.0, 1.3, 30, 30),
    _p(37.76900, -122.41600, 6.0, 1.5, 31, 15),
    _p(37.76950, -122.41550, 8.0, 1.2, 32),
    _p(37.77000, -122.41500, 7.0, 1.4, 32, 45),
    _p(37.77060, -122.41440, 6.0, 1.3, 33, 30),
    _p(37.77120, -122.41380, 8.0, 1.5, 34, 15),
    _p(37.77180, -122.41320, 7.0, 1.4, 35),
    _p(37.77240, -122.41300, 6.0, 1.3, 35, 45),
    _p(37.77310, -122.41290, 9.0, 1.2, 36, 30),
    _p(37.77370, -122.41280, 7.0, 1.4, 38),
]

# -- Segment 5: Office (12 points over 33 minutes) --
OFFICE_SEGMENT = [
    _p(37.77382, -122.41278, 15.0, 0.0, 38, 30),
    _p(37.77375, -122.41285, 20.0, 0.2, 41, 30),
    _p(37.77388, -122.41275, 25.0, 0.1, 44, 30),
    _p(37.77378, -122.41282, 18.0, 0.0, 47, 30),
    _p(37.77385, -122.41270, 22.0, 0.3, 50, 30),
    _p(37.77380, -122.41280, 16.0, 0.1, 53, 30),
    _p(37.77390, -122.41268, 28.0, 0.2, 56, 30),
    _p(37.77376, -122.41288, 19.0, 0.0, 59, 30),
    _p(37.77383, -122.41276, 21.0, 0.1, 62, 30),
    _p(37.77379, -122.41283, 17.0, 0.0, 65, 30),
    _p(37.77386, -122.41272, 24.0, 0.2, 68, 30),
    _p(37.77381, -122.41279, 15.0, 0.0, 71, 30),
]

# -- Full trace --
GPS_TRACE = HOME_SEGMENT + WALK_TO_COFFEE + COFFEE_SEGMENT + WALK_TO_OFFICE + OFFICE_SEGMENT

# -- Points with errors (for filter testing) --
BAD_ACCURACY_POINT = TrackPoint(
    timestamp=_t(1), latitude=37.7600, longitude=-122.4300, accuracy=900.0, velocity=0.0,
)

BAD_VELOCITY_POINT = TrackPoint(
    timestamp=_t(3), latitude=37.7620, longitude=-122.4240, accuracy=5.0, velocity=2500.0,
)

DUPLICATE_TIME_POINT = TrackPoint(
    timestamp=_t(0), latitude=37.7616, longitude=-122.4241, accuracy=8.0, velocity=0.0,
)


# =====================================================================
# NYC workday: home -> office
# =====================================================================

NYC_HOME = (40.7589, -73.9851)
NYC_OFFICE = (40.7505, -73.9934)

NYC_DAY = datetime.datetime(2024, 3, 12)


def at(hour, minute=0, day=NYC_DAY):
    return day + datetime.timedelta(hours=hour, minutes=minute)


def stationary_points(location, start, end, step_minutes, accuracy=5.0):
    """Fixes every step_minutes from start up to and including end."""
    lat, lon = location
    points = []
    ts = start
    while ts <= end:
        points.append(TrackPoint(timestamp=ts, latitude=lat, longitude=lon, accuracy=accuracy, velocity=0.0))
        ts += datetime.timedelta(minutes=step_minutes)
    return points


def moving_points(origin, destination, start, end, count, accuracy=8.0, velocity=10.0):
    """count fixes interpolated linearly from origin to destination."""
    points = []
    for i in range(count):
        f = i / (count - 1)
        points.append(TrackPoint(
            timestamp=start + (end - start) * f,
            latitude=origin[0] + (destination[0] - origin[0]) * f,
            longitude=origin[1] + (destination[1] - origin[1]) * f,
            accuracy=accuracy,
            velocity=velocity,
        ))
    return points


def commute_scenario(day=NYC_DAY):
    """Home 08:00-10:00 every 5 min, moving 10:01-10:30, office 10:31-15:00 every 10 min."""
    start, end = at(10, 1, day), at(10, 30, day)
    count = max(2, int((end - start).total_seconds() // 60) // 2)
    return (
        stationary_points(NYC_HOME, at(8, 0, day), at(10, 0, day), 5)
        + moving_points(NYC_HOME, NYC_OFFICE, start, end, count)
        + stationary_points(NYC_OFFICE, at(10, 31, day), at(15, 0, day), 10)
    )


def overnight_scenario():
    """Two days: evening at home across midnight, then the commute on day two."""
    day2 = NYC_DAY + datetime.timedelta(days=1)
    return (
        stationary_points(NYC_HOME, at(20, 0), at(7, 55, day2), 10)
        + commute_scenario(day2)
    )
