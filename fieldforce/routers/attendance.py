from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from fieldforce.audit import audit_employee_action
from fieldforce.db import get_db
from fieldforce.models import DailyStatus, Employee
from fieldforce.schemas import (
    AttendanceRead,
    ClockInRequest,
    ClockInResponse,
    ClockOutRequest,
    ClockOutResponse,
    DailyRecordRead,
)
from fieldforce.security import require_employee
from fieldforce.services.attendance import clock_in, clock_out, resolve_supervisor_id
from fieldforce.services.dashboard import attendance_records_for_day, attendance_report

router = APIRouter(tags=["attendance"])


@router.post("/api/attendance/clock-in", response_model=ClockInResponse)
def clock_in_endpoint(
    payload: ClockInRequest,
    request: Request,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> ClockInResponse:
    staff_id = payload.staff_id or actor.id
    supervisor_id = payload.supervisor_id or resolve_supervisor_id(
        db,
        actor=actor,
        staff_id=staff_id,
        location_id=payload.location_id,
    )
    request.state.staff_id = staff_id

    result = clock_in(
        db,
        actor=actor,
        staff_id=staff_id,
        supervisor_id=supervisor_id,
        location_id=payload.location_id,
        lat=payload.lat,
        lng=payload.lng,
        photo_ref=payload.photo_ref,
        overtime=payload.overtime,
        double_duty=payload.double_duty,
        override=payload.override,
    )

    if not result.already_done:
        audit_employee_action(
            db,
            request,
            actor=actor,
            action="ATTENDANCE_OVERRIDE_CLOCK_IN" if result.override else "ATTENDANCE_CLOCK_IN",
            entity_type="attendance",
            entity_id=result.record.id,
            details={
                "staff_id": staff_id,
                "supervisor_id": supervisor_id,
                "location_id": payload.location_id,
                "override": result.override,
                "distance_m": result.distance_m,
            },
        )

    return ClockInResponse(
        attendance=AttendanceRead.model_validate(result.record),
        already_clocked_in=result.already_done,
        override=result.override,
        distance_m=result.distance_m,
    )


@router.post("/api/attendance/clock-out", response_model=ClockOutResponse)
def clock_out_endpoint(
    payload: ClockOutRequest,
    request: Request,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> ClockOutResponse:
    staff_id = payload.staff_id or actor.id
    request.state.staff_id = staff_id

    result = clock_out(
        db,
        actor=actor,
        staff_id=staff_id,
        location_id=payload.location_id,
        lat=payload.lat,
        lng=payload.lng,
        photo_ref=payload.photo_ref,
        override=payload.override,
    )

    if not result.already_done:
        audit_employee_action(
            db,
            request,
            actor=actor,
            action="ATTENDANCE_OVERRIDE_CLOCK_OUT" if result.override else "ATTENDANCE_CLOCK_OUT",
            entity_type="attendance",
            entity_id=result.record.id,
            details={
                "staff_id": staff_id,
                "location_id": payload.location_id,
                "override": result.override,
                "distance_m": result.distance_m,
            },
        )

    return ClockOutResponse(
        attendance=AttendanceRead.model_validate(result.record),
        already_clocked_out=result.already_done,
        override=result.override,
        distance_m=result.distance_m,
    )


@router.get("/api/attendance/today", response_model=list[AttendanceRead])
def list_today_attendance(
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[AttendanceRead]:
    records = attendance_records_for_day(db, viewer=actor)
    return [AttendanceRead.model_validate(record) for record in records]


@router.get("/api/attendance/report", response_model=list[DailyRecordRead])
def attendance_report_endpoint(
    start_date: date = Query(...),
    end_date: date = Query(...),
    staff_id: int | None = Query(default=None, ge=1),
    supervisor_id: int | None = Query(default=None, ge=1),
    location_id: int | None = Query(default=None, ge=1),
    status: DailyStatus | None = Query(default=None),
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[DailyRecordRead]:
    rows = attendance_report(
        db,
        viewer=actor,
        start_date=start_date,
        end_date=end_date,
        staff_id=staff_id,
        supervisor_id=supervisor_id,
        location_id=location_id,
        status=status,
    )
    return [DailyRecordRead.model_validate(row) for row in rows]
