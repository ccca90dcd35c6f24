from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fieldforce.db import get_db
from fieldforce.models import Employee
from fieldforce.schemas import (
    DailyDashboardResponse,
    DailyRecordRead,
    DailySummaryRead,
    RoleDepartmentStatsRead,
)
from fieldforce.security import require_employee
from fieldforce.services.dashboard import build_daily_records, stats_by_role_and_department, summarize
from fieldforce.services.holidays import holiday_on
from fieldforce.services.timezones import local_day

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/daily", response_model=DailyDashboardResponse)
def daily_dashboard(
    day: date | None = Query(default=None),
    department: str | None = Query(default=None, max_length=255),
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> DailyDashboardResponse:
    target_day = day or local_day()
    records = build_daily_records(db, viewer=actor, day=target_day, department=department)
    holiday = holiday_on(db, target_day)
    return DailyDashboardResponse(
        day=target_day,
        holiday=holiday.name if holiday is not None else None,
        summary=DailySummaryRead.model_validate(summarize(records)),
        records=[DailyRecordRead.model_validate(record) for record in records],
    )


@router.get("/stats-by-role-dept", response_model=list[RoleDepartmentStatsRead])
def stats_by_role_dept(
    day: date | None = Query(default=None),
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[RoleDepartmentStatsRead]:
    rows = stats_by_role_and_department(db, viewer=actor, day=day)
    return [RoleDepartmentStatsRead.model_validate(row) for row in rows]
