from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldforce.audit import audit_employee_action
from fieldforce.db import get_db
from fieldforce.errors import ApiError, EmployeeNotFound, LocationNotFound
from fieldforce.models import Assignment, Employee, Location
from fieldforce.schemas import (
    AssignmentCreate,
    AssignmentRead,
    EmployeeCreate,
    EmployeeRead,
    EmployeeUpdate,
    LocationCreate,
    LocationRead,
    LocationUpdate,
)
from fieldforce.security import hash_password, require_employee, require_full_control
from fieldforce.services.departments import ensure_known_departments
from fieldforce.services.roles import has_field_leadership_privileges
from fieldforce.settings import get_settings

router = APIRouter(tags=["admin"])


def _ensure_reference(db: Session, employee_id: int | None, label: str) -> None:
    if employee_id is not None and db.get(Employee, employee_id) is None:
        raise EmployeeNotFound(f"{label} not found.")


@router.get("/api/admin/employees", response_model=list[EmployeeRead])
def list_employees(
    include_inactive: bool = Query(default=False),
    _actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> list[EmployeeRead]:
    stmt = select(Employee).order_by(Employee.full_name.asc(), Employee.id.asc())
    if not include_inactive:
        stmt = stmt.where(Employee.is_active.is_(True))
    return [EmployeeRead.model_validate(employee) for employee in db.scalars(stmt).all()]


@router.post("/api/admin/employees", response_model=EmployeeRead, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: EmployeeCreate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> EmployeeRead:
    _ensure_reference(db, payload.manager_id, "Manager")
    _ensure_reference(db, payload.general_manager_id, "General manager")
    ensure_known_departments(db, [payload.department, *payload.departments])

    employee = Employee(
        full_name=payload.full_name.strip(),
        username=payload.username,
        password_hash=hash_password(payload.password),
        role=payload.role,
        department=payload.department,
        departments=payload.departments,
        manager_id=payload.manager_id,
        general_manager_id=payload.general_manager_id,
        is_active=True,
    )
    db.add(employee)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(status_code=409, code="USERNAME_TAKEN", message="Username is already in use.") from exc
    db.refresh(employee)

    audit_employee_action(
        db,
        request,
        actor=actor,
        action="EMPLOYEE_CREATED",
        entity_type="employee",
        entity_id=employee.id,
        details={"role": employee.role.value, "department": employee.department},
    )
    return EmployeeRead.model_validate(employee)


@router.patch("/api/admin/employees/{employee_id}", response_model=EmployeeRead)
def update_employee(
    employee_id: int,
    payload: EmployeeUpdate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> EmployeeRead:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise EmployeeNotFound()
    if employee.id == actor.id and payload.is_active is False:
        raise ApiError(status_code=422, code="SELF_DEACTIVATION", message="You cannot deactivate your own account.")

    changes = payload.model_dump(exclude_unset=True)
    if "manager_id" in changes:
        _ensure_reference(db, changes["manager_id"], "Manager")
    if "general_manager_id" in changes:
        _ensure_reference(db, changes["general_manager_id"], "General manager")
    if "department" in changes or "departments" in changes:
        ensure_known_departments(db, [changes.get("department"), *(changes.get("departments") or [])])
    for field_name, value in changes.items():
        if field_name in {"role", "is_active", "departments", "full_name"} and value is None:
            continue
        setattr(employee, field_name, value)
    db.commit()
    db.refresh(employee)

    action = "EMPLOYEE_UPDATED"
    if changes.get("is_active") is False:
        action = "EMPLOYEE_DEACTIVATED"
    elif changes.get("is_active") is True:
        action = "EMPLOYEE_REACTIVATED"
    audit_employee_action(
        db,
        request,
        actor=actor,
        action=action,
        entity_type="employee",
        entity_id=employee.id,
        details={"fields": sorted(changes)},
    )
    return EmployeeRead.model_validate(employee)


@router.get("/api/locations", response_model=list[LocationRead])
def list_locations(
    _actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[LocationRead]:
    locations = db.scalars(select(Location).order_by(Location.name.asc(), Location.id.asc())).all()
    return [LocationRead.model_validate(location) for location in locations]


@router.post("/api/admin/locations", response_model=LocationRead, status_code=status.HTTP_201_CREATED)
def create_location(
    payload: LocationCreate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> LocationRead:
    values = payload.model_dump()
    if values["radius_m"] is None:
        values["radius_m"] = get_settings().default_location_radius_m
    location = Location(**values)
    db.add(location)
    db.commit()
    db.refresh(location)

    audit_employee_action(
        db,
        request,
        actor=actor,
        action="LOCATION_CREATED",
        entity_type="location",
        entity_id=location.id,
        details={"name": location.name, "radius_m": location.radius_m, "is_office": location.is_office},
    )
    return LocationRead.model_validate(location)


@router.patch("/api/admin/locations/{location_id}", response_model=LocationRead)
def update_location(
    location_id: int,
    payload: LocationUpdate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> LocationRead:
    location = db.get(Location, location_id)
    if location is None:
        raise LocationNotFound()

    changes = payload.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        if value is None and field_name in {"name", "description", "center_lat", "center_lng", "radius_m", "is_office"}:
            continue
        setattr(location, field_name, value)
    db.commit()
    db.refresh(location)

    audit_employee_action(
        db,
        request,
        actor=actor,
        action="LOCATION_UPDATED",
        entity_type="location",
        entity_id=location.id,
        details={"fields": sorted(changes)},
    )
    return LocationRead.model_validate(location)


@router.get("/api/admin/assignments", response_model=list[AssignmentRead])
def list_assignments(
    staff_id: int | None = Query(default=None, ge=1),
    supervisor_id: int | None = Query(default=None, ge=1),
    include_inactive: bool = Query(default=False),
    _actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> list[AssignmentRead]:
    stmt = select(Assignment).order_by(Assignment.created_at.desc(), Assignment.id.desc())
    if staff_id is not None:
        stmt = stmt.where(Assignment.staff_id == staff_id)
    if supervisor_id is not None:
        stmt = stmt.where(Assignment.supervisor_id == supervisor_id)
    if not include_inactive:
        stmt = stmt.where(Assignment.is_active.is_(True))
    return [AssignmentRead.model_validate(row) for row in db.scalars(stmt).all()]


@router.post("/api/admin/assignments", response_model=AssignmentRead, status_code=status.HTTP_201_CREATED)
def create_assignment(
    payload: AssignmentCreate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> AssignmentRead:
    staff = db.get(Employee, payload.staff_id)
    if staff is None:
        raise EmployeeNotFound("Staff member not found.")
    supervisor = db.get(Employee, payload.supervisor_id)
    if supervisor is None:
        raise EmployeeNotFound("Supervisor not found.")
    if db.get(Location, payload.location_id) is None:
        raise LocationNotFound()
    if staff.id == supervisor.id:
        raise ApiError(status_code=422, code="INVALID_ASSIGNMENT", message="An employee cannot supervise themselves.")
    if not has_field_leadership_privileges(supervisor.role):
        raise ApiError(
            status_code=422,
            code="INVALID_ASSIGNMENT",
            message="Only supervisors and above can be assigned as supervisor.",
        )

    # One active assignment per (staff, location); a new one replaces the old.
    previous = db.scalars(
        select(Assignment).where(
            Assignment.staff_id == staff.id,
            Assignment.location_id == payload.location_id,
            Assignment.is_active.is_(True),
        )
    ).all()
    for row in previous:
        row.is_active = False

    assignment = Assignment(
        staff_id=staff.id,
        supervisor_id=supervisor.id,
        location_id=payload.location_id,
        is_active=True,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)

    audit_employee_action(
        db,
        request,
        actor=actor,
        action="ASSIGNMENT_CREATED",
        entity_type="assignment",
        entity_id=assignment.id,
        details={
            "staff_id": staff.id,
            "supervisor_id": supervisor.id,
            "location_id": payload.location_id,
            "replaced": [row.id for row in previous],
        },
    )
    return AssignmentRead.model_validate(assignment)


@router.patch("/api/admin/assignments/{assignment_id}/deactivate", response_model=AssignmentRead)
def deactivate_assignment(
    assignment_id: int,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> AssignmentRead:
    assignment = db.get(Assignment, assignment_id)
    if assignment is None:
        raise ApiError(status_code=404, code="ASSIGNMENT_NOT_FOUND", message="Assignment not found.")

    assignment.is_active = False
    db.commit()
    db.refresh(assignment)

    audit_employee_action(
        db,
        request,
        actor=actor,
        action="ASSIGNMENT_DEACTIVATED",
        entity_type="assignment",
        entity_id=assignment.id,
    )
    return AssignmentRead.model_validate(assignment)
