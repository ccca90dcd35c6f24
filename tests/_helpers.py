from __future__ import annotations

from datetime import datetime, timezone
from math import pi

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fieldforce.db import Base
from fieldforce.models import Assignment, Employee, Location, Role
from fieldforce.services.location import EARTH_RADIUS_M

# 08:50 in Asia/Karachi, inside the 09:00 + 15 minute grace window.
MORNING_UTC = datetime(2026, 3, 2, 3, 50, tzinfo=timezone.utc)
# 09:40 in Asia/Karachi.
LATE_UTC = datetime(2026, 3, 2, 4, 40, tzinfo=timezone.utc)

SITE_LAT = 24.8607
SITE_LNG = 67.0011


def create_test_session() -> tuple[Engine, Session]:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)
    return engine, factory()


def close_test_session(engine: Engine, db: Session) -> None:
    db.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


def north_of(lat: float, lng: float, meters: float) -> tuple[float, float]:
    return lat + (meters / EARTH_RADIUS_M) * 180 / pi, lng


def make_employee(
    db: Session,
    username: str,
    *,
    role: Role = Role.STAFF,
    department: str | None = "operations",
    departments: list[str] | None = None,
    manager_id: int | None = None,
    is_active: bool = True,
    password_hash: str = "",
) -> Employee:
    employee = Employee(
        full_name=username.title(),
        username=username,
        password_hash=password_hash,
        role=role,
        department=department,
        departments=departments or [],
        manager_id=manager_id,
        is_active=is_active,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


def make_location(
    db: Session,
    name: str = "North Site",
    *,
    code: str | None = None,
    lat: float = SITE_LAT,
    lng: float = SITE_LNG,
    radius_m: float = 100.0,
    is_office: bool = False,
    morning_shift_start: str | None = None,
    night_shift_start: str | None = None,
    night_shift_end: str | None = None,
) -> Location:
    location = Location(
        name=name,
        code=code,
        description="",
        center_lat=lat,
        center_lng=lng,
        radius_m=radius_m,
        is_office=is_office,
        morning_shift_start=morning_shift_start,
        night_shift_start=night_shift_start,
        night_shift_end=night_shift_end,
    )
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


def make_assignment(
    db: Session,
    *,
    staff: Employee,
    supervisor: Employee,
    location: Location,
    created_at: datetime | None = None,
    is_active: bool = True,
) -> Assignment:
    assignment = Assignment(
        staff_id=staff.id,
        supervisor_id=supervisor.id,
        location_id=location.id,
        is_active=is_active,
    )
    if created_at is not None:
        assignment.created_at = created_at
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    return assignment
