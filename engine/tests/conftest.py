"""Shared pytest fixtures: in-memory DB, test user, stored location traces."""

import sys
import os

# Add engine root to path so imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Location, User
from timeline_config import TimelineConfig


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite database for each test."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db(engine):
    """Provide a DB session, closed after each test."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def config():
    """System default timeline configuration."""
    return TimelineConfig()


@pytest.fixture
def test_user(db):
    user = User(username="testuser", email="test@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def store_points(db, user, points):
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


@pytest.fixture
def store(db):
    """Callable that stores a list of TrackPoints for a user."""
    return lambda user, points: store_points(db, user, points)


@pytest.fixture
def populated_user(db, test_user):
    """The test user with the San Francisco commute trace stored."""
    from tests.gps_test_fixtures import GPS_TRACE

    store_points(db, test_user, GPS_TRACE)
    return test_user


@pytest.fixture
def commute_user(db, test_user):
    """The test user with the NYC home/office workday stored."""
    from tests.gps_test_fixtures import commute_scenario

    store_points(db, test_user, commute_scenario())
    return test_user
