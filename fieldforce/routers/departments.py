from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fieldforce.audit import audit_employee_action
from fieldforce.db import get_db
from fieldforce.errors import DepartmentNotFound
from fieldforce.models import Employee
from fieldforce.schemas import DepartmentCreate, DepartmentRead, DepartmentUpdate
from fieldforce.security import require_employee, require_full_control
from fieldforce.services.departments import (
    create_department,
    get_department_or_raise,
    list_departments,
    update_department,
)

router = APIRouter(prefix="/api/departments", tags=["departments"])


@router.get("", response_model=list[DepartmentRead])
def list_departments_endpoint(
    include_inactive: bool = Query(default=False),
    _actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[DepartmentRead]:
    return [DepartmentRead.model_validate(row) for row in list_departments(db, include_inactive=include_inactive)]


@router.get("/{code}", response_model=DepartmentRead)
def get_department_endpoint(
    code: int,
    _actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> DepartmentRead:
    department = get_department_or_raise(db, code)
    if not department.is_active:
        raise DepartmentNotFound()
    return DepartmentRead.model_validate(department)


@router.post("", response_model=DepartmentRead, status_code=status.HTTP_201_CREATED)
def create_department_endpoint(
    payload: DepartmentCreate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> DepartmentRead:
    department = create_department(db, code=payload.code, label=payload.label, description=payload.description)
    audit_employee_action(
        db,
        request,
        actor=actor,
        action="DEPARTMENT_CREATED",
        entity_type="department",
        entity_id=department.code,
        details={"label": department.label},
    )
    return DepartmentRead.model_validate(department)


@router.put("/{code}", response_model=DepartmentRead)
def update_department_endpoint(
    code: int,
    payload: DepartmentUpdate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> DepartmentRead:
    department = update_department(db, code=code, **payload.model_dump(exclude_unset=True))
    audit_employee_action(
        db,
        request,
        actor=actor,
        action="DEPARTMENT_UPDATED",
        entity_type="department",
        entity_id=department.code,
        details={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return DepartmentRead.model_validate(department)
