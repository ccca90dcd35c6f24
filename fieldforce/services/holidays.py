from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldforce.errors import ApiError, HolidayNotFound
from fieldforce.models import Employee, Holiday

logger = logging.getLogger("fieldforce.holidays")


def list_holidays(db: Session, *, year: int | None = None) -> list[Holiday]:
    stmt = select(Holiday).order_by(Holiday.holiday_date.asc())
    if year is not None:
        stmt = stmt.where(Holiday.holiday_date >= date(year, 1, 1), Holiday.holiday_date <= date(year, 12, 31))
    return list(db.scalars(stmt).all())


def holiday_on(db: Session, day: date) -> Holiday | None:
    return db.scalar(select(Holiday).where(Holiday.holiday_date == day))


def get_holiday_or_raise(db: Session, holiday_id: int) -> Holiday:
    holiday = db.get(Holiday, holiday_id)
    if holiday is None:
        raise HolidayNotFound()
    return holiday


def create_holiday(db: Session, *, actor: Employee, holiday_date: date, name: str, description: str = "") -> Holiday:
    holiday = Holiday(
        holiday_date=holiday_date,
        name=name.strip(),
        description=description or "",
        created_by_id=actor.id,
    )
    db.add(holiday)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="HOLIDAY_EXISTS",
            message="A holiday already exists for this date.",
        ) from exc
    db.refresh(holiday)
    logger.info("holiday_created", extra={"holiday_id": holiday.id, "actor_id": actor.id})
    return holiday


def update_holiday(
    db: Session,
    *,
    holiday_id: int,
    name: str | None = None,
    description: str | None = None,
) -> Holiday:
    holiday = get_holiday_or_raise(db, holiday_id)
    if name:
        holiday.name = name.strip()
    if description is not None:
        holiday.description = description
    db.commit()
    db.refresh(holiday)
    return holiday


def delete_holiday(db: Session, *, holiday_id: int) -> None:
    holiday = get_holiday_or_raise(db, holiday_id)
    db.delete(holiday)
    db.commit()
