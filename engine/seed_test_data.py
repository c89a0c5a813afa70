#!/usr/bin/env python3
"""Seed the database with GPS test fixture data for development.

Usage:
    python seed_test_data.py

This creates a demo user with a favourite "Home" place, stores the
San Francisco commute trace and an NYC workday, then rebuilds the
timeline for the user.
"""

from unittest.mock import patch

from database import init_db, SessionLocal
from models import Location, Place, TimelineDataGap, TimelineStay, TimelineTrip, User
from processing import regenerate_timeline
from tests.gps_test_fixtures import GPS_TRACE, NYC_HOME, commute_scenario


def seed():
    init_db()
    db = SessionLocal()

    existing = db.query(User).filter(User.username == "demo").first()
    if existing:
        print("Demo user already exists. Skipping seed.")
        db.close()
        return

    user = User(username="demo", email="demo@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    print(f"Created user: demo (id={user.id})")

    db.add(Place(user_id=user.id, latitude=NYC_HOME[0], longitude=NYC_HOME[1], name="Home"))

    points = GPS_TRACE + commute_scenario()
    for pt in points:
        db.add(Location(
            user_id=user.id,
            latitude=pt.latitude,
            longitude=pt.longitude,
            accuracy=pt.accuracy,
            velocity=pt.velocity,
            timestamp=pt.timestamp,
        ))
    db.commit()
    print(f"Inserted {len(points)} location points")

    # Mock geocoding to avoid hitting Nominatim
    with patch("geocoding.reverse_geocode", return_value=None):
        counts = regenerate_timeline(db, user.id)
    print(f"Detected {counts['stays']} stays, {counts['trips']} trips, {counts['data_gaps']} data gaps")

    for stay in db.query(TimelineStay).filter(TimelineStay.user_id == user.id).order_by(TimelineStay.start_time):
        print(f"  - stay {stay.location_name}: {stay.duration_seconds // 60}m "
              f"({stay.start_time:%Y-%m-%d %H:%M}-{stay.end_time:%H:%M})")
    for trip in db.query(TimelineTrip).filter(TimelineTrip.user_id == user.id).order_by(TimelineTrip.start_time):
        print(f"  - trip {trip.travel_mode}: {trip.distance_meters:.0f}m "
              f"({trip.start_time:%Y-%m-%d %H:%M}-{trip.end_time:%H:%M})")
    for gap in db.query(TimelineDataGap).filter(TimelineDataGap.user_id == user.id):
        print(f"  - no data {gap.start_time:%Y-%m-%d %H:%M} to {gap.end_time:%Y-%m-%d %H:%M}")

    db.close()
    print("\nDone! Run: python main.py regenerate --user demo --no-geocode")


if __name__ == "__main__":
    seed()
