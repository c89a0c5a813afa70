"""SQLAlchemy engine and sessions for the timeline store, plus system config seeding."""

import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///timeline.db")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables and seed the system-wide timeline defaults."""
    import models  # noqa: F401

    logger.info("Initializing database at %s", DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    _seed_config()


def _seed_config():
    """Insert system default timeline settings if not present."""
    from models import Config
    from timeline_config import default_config_rows

    db = SessionLocal()
    try:
        for key, value in default_config_rows().items():
            exists = (
                db.query(Config)
                .filter(Config.user_id.is_(None), Config.key == key)
                .first()
            )
            if not exists:
                db.add(Config(user_id=None, key=key, value=value))
        db.commit()
    finally:
        db.close()
