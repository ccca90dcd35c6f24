from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldforce.errors import ApiError, DepartmentNotFound
from fieldforce.models import Department
from fieldforce.services.approvals import normalize_department

logger = logging.getLogger("fieldforce.departments")


def list_departments(db: Session, *, include_inactive: bool = False) -> list[Department]:
    stmt = select(Department).order_by(Department.code.asc())
    if not include_inactive:
        stmt = stmt.where(Department.is_active.is_(True))
    return list(db.scalars(stmt).all())


def get_department_or_raise(db: Session, code: int) -> Department:
    department = db.scalar(select(Department).where(Department.code == code))
    if department is None:
        raise DepartmentNotFound()
    return department


def create_department(db: Session, *, code: int, label: str, description: str) -> Department:
    department = Department(
        code=code,
        label=label.strip(),
        description=description.strip().upper(),
        is_active=True,
    )
    db.add(department)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="DEPARTMENT_EXISTS",
            message=f"Department with code {code} already exists.",
        ) from exc
    db.refresh(department)
    logger.info("department_created", extra={"code": code, "label": department.label})
    return department


def update_department(
    db: Session,
    *,
    code: int,
    label: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
) -> Department:
    department = get_department_or_raise(db, code)
    if label is not None:
        department.label = label.strip()
    if description is not None:
        department.description = description.strip().upper()
    if is_active is not None:
        department.is_active = is_active
    db.commit()
    db.refresh(department)
    return department


def _known_keys(db: Session) -> set[str]:
    keys: set[str] = set()
    for department in list_departments(db):
        keys.add(str(department.code))
        keys.add(normalize_department(department.label))
        keys.add(normalize_department(department.description))
    return keys


def ensure_known_departments(db: Session, values: Iterable[str | None]) -> None:
    """Reject department names the registry does not know.

    Employees may carry the numeric code, the label or the description of an
    active department. With an empty registry any value is accepted.
    """
    keys = _known_keys(db)
    if not keys:
        return
    unknown = sorted(
        {value.strip() for value in values if value and value.strip() and normalize_department(value) not in keys}
    )
    if unknown:
        raise ApiError(
            status_code=422,
            code="UNKNOWN_DEPARTMENT",
            message=f"Unknown department: {', '.join(unknown)}.",
        )
