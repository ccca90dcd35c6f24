from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fieldforce.audit import audit_employee_action
from fieldforce.db import get_db
from fieldforce.models import Employee
from fieldforce.schemas import HolidayCreate, HolidayRead, HolidayUpdate
from fieldforce.security import require_employee, require_full_control
from fieldforce.services.holidays import create_holiday, delete_holiday, list_holidays, update_holiday

router = APIRouter(prefix="/api/holidays", tags=["holidays"])


@router.get("", response_model=list[HolidayRead])
def list_holidays_endpoint(
    year: int | None = Query(default=None, ge=1970, le=9999),
    _actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[HolidayRead]:
    return [HolidayRead.model_validate(row) for row in list_holidays(db, year=year)]


@router.post("", response_model=HolidayRead, status_code=status.HTTP_201_CREATED)
def create_holiday_endpoint(
    payload: HolidayCreate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> HolidayRead:
    holiday = create_holiday(
        db,
        actor=actor,
        holiday_date=payload.holiday_date,
        name=payload.name,
        description=payload.description,
    )
    audit_employee_action(
        db,
        request,
        actor=actor,
        action="HOLIDAY_CREATED",
        entity_type="holiday",
        entity_id=holiday.id,
        details={"date": holiday.holiday_date.isoformat(), "name": holiday.name},
    )
    return HolidayRead.model_validate(holiday)


@router.put("/{holiday_id}", response_model=HolidayRead)
def update_holiday_endpoint(
    holiday_id: int,
    payload: HolidayUpdate,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> HolidayRead:
    holiday = update_holiday(db, holiday_id=holiday_id, name=payload.name, description=payload.description)
    audit_employee_action(
        db,
        request,
        actor=actor,
        action="HOLIDAY_UPDATED",
        entity_type="holiday",
        entity_id=holiday.id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return HolidayRead.model_validate(holiday)


@router.delete("/{holiday_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_holiday_endpoint(
    holiday_id: int,
    request: Request,
    actor: Employee = Depends(require_full_control),
    db: Session = Depends(get_db),
) -> None:
    delete_holiday(db, holiday_id=holiday_id)
    audit_employee_action(
        db,
        request,
        actor=actor,
        action="HOLIDAY_DELETED",
        entity_type="holiday",
        entity_id=holiday_id,
    )
