from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldforce.models import Employee, Role
from fieldforce.services.approvals import is_same_department
from fieldforce.services.assignments import list_assigned_staff_ids
from fieldforce.services.roles import has_full_control, normalize_role


def _active_employees(db: Session) -> list[Employee]:
    return list(
        db.scalars(
            select(Employee).where(Employee.is_active.is_(True)).order_by(Employee.id.asc())
        ).all()
    )


def visible_employee_ids(db: Session, viewer: Employee) -> set[int]:
    """Ids of the employees whose attendance and leave the viewer may see.

    Everybody sees themselves. Supervisors add their assigned staff, managers
    add the supervisors reporting to them and those supervisors' staff,
    general managers add their departments, executives see everyone.
    """
    role = normalize_role(viewer.role)
    visible = {viewer.id}

    if has_full_control(role):
        visible.update(employee.id for employee in _active_employees(db))
        return visible

    if role == Role.GENERAL_MANAGER:
        visible.update(
            employee.id
            for employee in _active_employees(db)
            if is_same_department(viewer, employee.department)
        )
        return visible

    if role == Role.MANAGER:
        supervisor_ids = list(
            db.scalars(
                select(Employee.id).where(
                    Employee.manager_id == viewer.id,
                    Employee.is_active.is_(True),
                )
            ).all()
        )
        visible.update(supervisor_ids)
        visible.update(list_assigned_staff_ids(db, supervisor_ids=supervisor_ids))
        return visible

    if role == Role.SUPERVISOR:
        visible.update(list_assigned_staff_ids(db, supervisor_ids=[viewer.id]))

    return visible


def can_view_employee(db: Session, viewer: Employee, employee_id: int) -> bool:
    if viewer.id == employee_id:
        return True
    return employee_id in visible_employee_ids(db, viewer)
