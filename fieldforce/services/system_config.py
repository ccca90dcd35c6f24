from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldforce.errors import ApiError
from fieldforce.models import Employee, SystemConfig
from fieldforce.services.timezones import normalize_ts
from fieldforce.settings import get_settings

logger = logging.getLogger("fieldforce.system_config")

ATTENDANCE_SETTINGS_KEY = "attendance_settings"
MAX_GRACE_PERIOD_MINUTES = 24 * 60
MAX_CLOCK_INTERVAL_HOURS = 24.0


@dataclass(frozen=True)
class AttendanceConfig:
    grace_period_minutes: int
    min_clock_interval_hours: float
    updated_at: datetime | None = None
    updated_by_id: int | None = None


def _default_config() -> AttendanceConfig:
    settings = get_settings()
    return AttendanceConfig(
        grace_period_minutes=settings.grace_period_minutes,
        min_clock_interval_hours=settings.min_clock_interval_hours,
    )


def _from_row(row: SystemConfig) -> AttendanceConfig:
    return AttendanceConfig(
        grace_period_minutes=row.grace_period_minutes,
        min_clock_interval_hours=row.min_clock_interval_hours,
        updated_at=normalize_ts(row.updated_at) if row.updated_at is not None else None,
        updated_by_id=row.updated_by_id,
    )


def _get_row(db: Session) -> SystemConfig | None:
    return db.scalar(select(SystemConfig).where(SystemConfig.config_key == ATTENDANCE_SETTINGS_KEY))


def get_attendance_config(db: Session) -> AttendanceConfig:
    """Attendance rules in force. Falls back to the environment settings until someone saves a row."""
    row = _get_row(db)
    if row is None:
        return _default_config()
    return _from_row(row)


def _validate(grace_period_minutes: int | None, min_clock_interval_hours: float | None) -> None:
    if grace_period_minutes is not None and not 0 <= grace_period_minutes <= MAX_GRACE_PERIOD_MINUTES:
        raise ApiError(
            status_code=422,
            code="INVALID_SYSTEM_CONFIG",
            message=f"Grace period must be between 0 and {MAX_GRACE_PERIOD_MINUTES} minutes.",
        )
    if min_clock_interval_hours is not None and not 0 <= min_clock_interval_hours <= MAX_CLOCK_INTERVAL_HOURS:
        raise ApiError(
            status_code=422,
            code="INVALID_SYSTEM_CONFIG",
            message="Minimum clock interval must be between 0 and 24 hours.",
        )


def update_attendance_config(
    db: Session,
    *,
    actor: Employee,
    grace_period_minutes: int | None = None,
    min_clock_interval_hours: float | None = None,
    now_utc: datetime | None = None,
) -> AttendanceConfig:
    _validate(grace_period_minutes, min_clock_interval_hours)
    now = normalize_ts(now_utc)

    row = _get_row(db)
    if row is None:
        defaults = _default_config()
        row = SystemConfig(
            config_key=ATTENDANCE_SETTINGS_KEY,
            grace_period_minutes=defaults.grace_period_minutes,
            min_clock_interval_hours=defaults.min_clock_interval_hours,
            other_settings={},
        )
        db.add(row)
        try:
            db.flush()
        except IntegrityError:
            # Another writer created the row first.
            db.rollback()
            row = _get_row(db)
            if row is None:
                raise

    if grace_period_minutes is not None:
        row.grace_period_minutes = grace_period_minutes
    if min_clock_interval_hours is not None:
        row.min_clock_interval_hours = min_clock_interval_hours
    row.updated_by_id = actor.id
    row.updated_at = now
    db.commit()
    db.refresh(row)

    logger.info(
        "system_config_updated",
        extra={
            "actor_id": actor.id,
            "grace_period_minutes": row.grace_period_minutes,
            "min_clock_interval_hours": row.min_clock_interval_hours,
        },
    )
    return _from_row(row)
