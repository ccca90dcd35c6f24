from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldforce.models import Assignment


def resolve_active_assignment(
    db: Session,
    *,
    staff_id: int,
    supervisor_id: int | None = None,
    location_id: int | None = None,
) -> Assignment | None:
    # Several active assignments may match; the most recently created one wins.
    stmt = select(Assignment).where(
        Assignment.staff_id == staff_id,
        Assignment.is_active.is_(True),
    )
    if supervisor_id is not None:
        stmt = stmt.where(Assignment.supervisor_id == supervisor_id)
    if location_id is not None:
        stmt = stmt.where(Assignment.location_id == location_id)
    stmt = stmt.order_by(Assignment.created_at.desc(), Assignment.id.desc()).limit(1)
    return db.scalar(stmt)


def list_assigned_staff_ids(db: Session, *, supervisor_ids: list[int]) -> set[int]:
    if not supervisor_ids:
        return set()
    rows = db.scalars(
        select(Assignment.staff_id).where(
            Assignment.supervisor_id.in_(supervisor_ids),
            Assignment.is_active.is_(True),
        )
    ).all()
    return set(rows)


def is_assigned_supervisor(db: Session, *, staff_id: int, supervisor_id: int) -> bool:
    return resolve_active_assignment(db, staff_id=staff_id, supervisor_id=supervisor_id) is not None
