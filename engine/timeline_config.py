"""Timeline configuration: defaults, validation and per-user overrides.

A run resolves one TimelineConfig up front (system rows, then the user's own
rows, layered onto the model defaults) and passes it to every stage.
"""

import logging
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import or_
from sqlalchemy.orm import Session

from models import Config

logger = logging.getLogger(__name__)


class TimelineConfigError(ValueError):
    """Raised for unusable configuration values."""


class TimelineConfig(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False, extra="forbid")

    trip_detection_algorithm: str = "single"
    use_velocity_accuracy: bool = True

    # Stay detection
    staypoint_velocity_threshold: float = Field(2.0, ge=0, description="km/h")
    staypoint_max_accuracy_threshold: float = Field(60.0, ge=0, description="metres")
    staypoint_min_accuracy_ratio: float = Field(0.5, ge=0, le=1)
    staypoint_radius_meters: float = Field(50.0, ge=0)
    staypoint_min_duration_minutes: float = Field(7.0, ge=0)

    # Trip detection
    trip_min_distance_meters: float = Field(50.0, ge=0)
    trip_min_duration_minutes: float = Field(7.0, ge=0)

    # Stay merging
    is_merge_enabled: bool = True
    merge_max_distance_meters: float = Field(150.0, ge=0)
    merge_max_time_gap_minutes: float = Field(10.0, ge=0)

    # Path simplification
    path_simplification_enabled: bool = True
    path_simplification_tolerance: float = Field(15.0, ge=0, description="metres")
    path_max_points: int = Field(100, ge=0, description="0 disables the ceiling")
    path_adaptive_simplification: bool = True

    # Data gaps (None disables detection)
    data_gap_threshold_seconds: Optional[int] = Field(10800, ge=0)
    data_gap_min_duration_seconds: Optional[int] = Field(1800, ge=0)

    # Gap inference (whole hours, as stored)
    gap_stay_inference_enabled: bool = False
    gap_stay_inference_max_gap_hours: int = Field(24, ge=0, description="0 disables the limit")
    gap_trip_inference_enabled: bool = False
    gap_trip_inference_min_gap_hours: int = Field(1, ge=0)
    gap_trip_inference_max_gap_hours: int = Field(24, ge=0, description="0 disables the limit")
    gap_trip_inference_min_distance_meters: float = Field(100000.0, ge=0)

    # Travel classification (km/h)
    walking_max_avg_speed: float = Field(6.0, ge=0)
    walking_max_max_speed: float = Field(8.0, ge=0)
    car_min_avg_speed: float = Field(10.0, ge=0)
    car_min_max_speed: float = Field(15.0, ge=0)
    short_distance_km: float = Field(1.0, ge=0)

    bicycle_enabled: bool = False
    bicycle_min_avg_speed: float = Field(8.0, ge=0)
    bicycle_max_avg_speed: float = Field(25.0, ge=0)
    bicycle_max_max_speed: float = Field(35.0, ge=0)

    train_enabled: bool = False
    train_min_avg_speed: float = Field(30.0, ge=0)
    train_max_avg_speed: float = Field(150.0, ge=0)
    train_min_max_speed: float = Field(80.0, ge=0)
    train_max_max_speed: float = Field(180.0, ge=0)
    train_max_speed_variance: float = Field(15.0, ge=0, description="std dev of smoothed speeds")

    flight_enabled: bool = False
    flight_min_avg_speed: float = Field(400.0, ge=0)
    flight_min_max_speed: float = Field(500.0, ge=0)

    processing_window_days: int = Field(1, ge=1)

    @field_validator("trip_detection_algorithm")
    @classmethod
    def _normalise_algorithm(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("path_max_points")
    @classmethod
    def _check_max_points(cls, value: int) -> int:
        if value == 1:
            raise ValueError("path_max_points must be 0 (no limit) or at least 2")
        return value


CONFIG_KEYS = tuple(TimelineConfig.model_fields)

_NULL_VALUES = {"", "none", "null"}


def _clean(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in _NULL_VALUES:
        return None
    return value


def build_config(overrides: Optional[Mapping[str, Any]] = None) -> TimelineConfig:
    """Build a config from a mapping of overrides (values may be strings)."""
    data = {key: _clean(value) for key, value in (overrides or {}).items()}
    try:
        return TimelineConfig(**data)
    except ValidationError as e:
        raise TimelineConfigError(f"Invalid timeline configuration: {e}") from e


def default_config_rows() -> dict[str, str]:
    """System defaults as the key/value strings stored in the Config table."""
    rows = {}
    for key, value in TimelineConfig().model_dump().items():
        if value is None:
            rows[key] = ""
        elif isinstance(value, bool):
            rows[key] = "true" if value else "false"
        else:
            rows[key] = str(value)
    return rows


def resolve_config(db: Session, user_id: Optional[int] = None) -> TimelineConfig:
    """Merge system-wide rows, then the user's own rows, onto the defaults."""
    query = db.query(Config).filter(Config.key.in_(CONFIG_KEYS))
    if user_id is None:
        query = query.filter(Config.user_id.is_(None))
    else:
        query = query.filter(or_(Config.user_id.is_(None), Config.user_id == user_id))

    rows = query.all()
    overrides: dict[str, Any] = {}
    for row in sorted(rows, key=lambda r: r.user_id is not None):
        overrides[row.key] = row.value

    config = build_config(overrides)
    logger.debug("Resolved timeline config for user=%s: %s", user_id, config)
    return config
