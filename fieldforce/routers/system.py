from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fieldforce.audit import audit_employee_action
from fieldforce.db import get_db
from fieldforce.models import Employee
from fieldforce.schemas import SystemConfigRead, SystemConfigUpdate
from fieldforce.security import require_employee, require_full_control
from fieldforce.services.system_config import (
    ATTENDANCE_SETTINGS_KEY,
    get_attendance_config,
    update_attendance_config,
)

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/config", response_model=SystemConfigRead)
def read_system_config(
    _actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> SystemConfigRead:
    return SystemConfigRead.model_validate(get_attendance_config(db))


@router.put("/config", response_model=SystemConfigRead)
def write_system_config(
    payload: SystemConfigUpdate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> SystemConfigRead:
    config = update_attendance_config(
        db,
        actor=actor,
        grace_period_minutes=payload.grace_period_minutes,
        min_clock_interval_hours=payload.min_clock_interval_hours,
    )
    audit_employee_action(
        db,
        request,
        actor=actor,
        action="SYSTEM_CONFIG_UPDATED",
        entity_type="system_config",
        entity_id=ATTENDANCE_SETTINGS_KEY,
        details=payload.model_dump(exclude_none=True),
    )
    return SystemConfigRead.model_validate(config)
