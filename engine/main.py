"""Entry point: command-line timeline regeneration for a user."""

import argparse
import datetime
import logging
import logging.handlers
import os
import sys

from database import SessionLocal, init_db
from models import User
from processing import regenerate_timeline, reprocess_all
from timeline_config import TimelineConfigError, resolve_config

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
LOG_DIR = os.environ.get("LOG_DIR", "/data" if os.path.isdir("/data") else ".")
LOG_FILE = os.path.join(LOG_DIR, "timeline-engine.log")

logger = logging.getLogger("timeline")


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(),
            logging.handlers.RotatingFileHandler(
                LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3,
            ),
        ],
    )
    # Quiet noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _parse_time(value: str) -> datetime.datetime:
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 timestamp: {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rebuild a user's GPS timeline.")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    regen = sub.add_parser("regenerate", help="rebuild the timeline for a time range")
    regen.add_argument("--user", required=True, help="username")
    regen.add_argument("--start", type=_parse_time, help="range start (default: first location)")
    regen.add_argument("--end", type=_parse_time, help="range end, exclusive (default: last location)")
    regen.add_argument("--algorithm", help="override trip_detection_algorithm for this run")
    regen.add_argument("--no-geocode", action="store_true", help="skip Nominatim lookups")

    reprocess = sub.add_parser("reprocess", help="delete and rebuild the whole timeline")
    reprocess.add_argument("--user", required=True, help="username")
    reprocess.add_argument("--no-geocode", action="store_true", help="skip Nominatim lookups")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    init_db()

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.username == args.user).first()
        if user is None:
            logger.error("Unknown user %r", args.user)
            return 1

        if args.command == "reprocess":
            counts = reprocess_all(db, user.id, use_geocoder=not args.no_geocode)
        else:
            config = resolve_config(db, user.id)
            if args.algorithm:
                config = config.model_copy(update={"trip_detection_algorithm": args.algorithm.strip().lower()})
            counts = regenerate_timeline(
                db, user.id, args.start, args.end,
                config=config, use_geocoder=not args.no_geocode,
            )
    except TimelineConfigError as e:
        logger.error("%s", e)
        return 2
    finally:
        db.close()

    print(f"{args.user}: {counts['stays']} stays, {counts['trips']} trips, {counts['data_gaps']} data gaps")
    return 0


if __name__ == "__main__":
    sys.exit(main())
