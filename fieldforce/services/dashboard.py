from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from fieldforce.errors import ApiError
from fieldforce.models import (
    ApprovalStatus,
    AttendanceRecord,
    DailyStatus,
    Employee,
    Location,
    Role,
)
from fieldforce.services.attendance import can_decide_attendance, can_decide_flags, derive_daily_status
from fieldforce.services.leaves import approved_leave_staff_ids
from fieldforce.services.roles import has_management_privileges, normalize_role
from fieldforce.services.timezones import local_day
from fieldforce.services.visibility import visible_employee_ids

MAX_REPORT_DAYS = 62


@dataclass(frozen=True)
class DailyRecord:
    employee_id: int
    full_name: str
    role: Role
    department: str | None
    attendance_date: date
    status: DailyStatus
    attendance_id: int | None = None
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    location_id: int | None = None
    location_name: str | None = None
    supervisor_id: int | None = None
    overtime: bool = False
    double_duty: bool = False
    approval_status: ApprovalStatus | None = None
    is_override: bool = False


@dataclass
class DailySummary:
    total: int = 0
    present: int = 0
    late: int = 0
    absent: int = 0
    on_leave: int = 0
    missing_clock_out: int = 0
    pending_approvals: int = 0


@dataclass
class RoleDepartmentStats:
    role: Role
    department: str | None
    summary: DailySummary = field(default_factory=DailySummary)


def _load_employees(db: Session, employee_ids: set[int]) -> list[Employee]:
    if not employee_ids:
        return []
    return list(
        db.scalars(
            select(Employee).where(Employee.id.in_(employee_ids)).order_by(Employee.full_name.asc(), Employee.id.asc())
        ).all()
    )


def _load_records(
    db: Session,
    *,
    employee_ids: set[int],
    start_date: date,
    end_date: date,
) -> dict[tuple[int, date], AttendanceRecord]:
    if not employee_ids:
        return {}
    rows = db.scalars(
        select(AttendanceRecord).where(
            AttendanceRecord.staff_id.in_(employee_ids),
            AttendanceRecord.attendance_date >= start_date,
            AttendanceRecord.attendance_date <= end_date,
        )
    ).all()
    return {(row.staff_id, row.attendance_date): row for row in rows}


def _location_names(db: Session, records: list[AttendanceRecord]) -> dict[int, str]:
    location_ids = {record.location_id for record in records}
    if not location_ids:
        return {}
    rows = db.execute(select(Location.id, Location.name).where(Location.id.in_(location_ids))).all()
    return {row.id: row.name for row in rows}


def _build_record(
    employee: Employee,
    day: date,
    record: AttendanceRecord | None,
    *,
    on_leave: bool,
    location_names: dict[int, str],
) -> DailyRecord:
    status = derive_daily_status(record, on_approved_leave=on_leave)
    if record is None:
        return DailyRecord(
            employee_id=employee.id,
            full_name=employee.full_name,
            role=normalize_role(employee.role),
            department=employee.department,
            attendance_date=day,
            status=status,
        )
    return DailyRecord(
        employee_id=employee.id,
        full_name=employee.full_name,
        role=normalize_role(employee.role),
        department=employee.department,
        attendance_date=day,
        status=status,
        attendance_id=record.id,
        clock_in=record.clock_in,
        clock_out=record.clock_out,
        location_id=record.location_id,
        location_name=location_names.get(record.location_id),
        supervisor_id=record.supervisor_id,
        overtime=record.overtime,
        double_duty=record.double_duty,
        approval_status=record.approval_status,
        is_override=record.is_override,
    )


def build_daily_records(
    db: Session,
    *,
    viewer: Employee,
    day: date | None = None,
    department: str | None = None,
) -> list[DailyRecord]:
    target_day = day or local_day()
    employees = _load_employees(db, visible_employee_ids(db, viewer))
    if department is not None:
        wanted = department.strip().lower()
        employees = [e for e in employees if (e.department or "").strip().lower() == wanted]

    employee_ids = {employee.id for employee in employees}
    records = _load_records(db, employee_ids=employee_ids, start_date=target_day, end_date=target_day)
    on_leave_ids = approved_leave_staff_ids(db, day=target_day, staff_ids=employee_ids)
    location_names = _location_names(db, list(records.values()))

    return [
        _build_record(
            employee,
            target_day,
            records.get((employee.id, target_day)),
            on_leave=employee.id in on_leave_ids,
            location_names=location_names,
        )
        for employee in employees
    ]


def summarize(records: list[DailyRecord]) -> DailySummary:
    summary = DailySummary(total=len(records))
    for record in records:
        if record.approval_status == ApprovalStatus.PENDING:
            summary.pending_approvals += 1
        if record.status in (DailyStatus.PRESENT, DailyStatus.LATE):
            # Late arrivals still count as present.
            summary.present += 1
            if record.status == DailyStatus.LATE:
                summary.late += 1
            if record.clock_in is not None and record.clock_out is None:
                summary.missing_clock_out += 1
        elif record.status == DailyStatus.ON_LEAVE:
            summary.on_leave += 1
        else:
            summary.absent += 1
    return summary


def stats_by_role_and_department(
    db: Session,
    *,
    viewer: Employee,
    day: date | None = None,
) -> list[RoleDepartmentStats]:
    if not has_management_privileges(viewer.role):
        raise ApiError(
            status_code=403,
            code="FORBIDDEN",
            message="Role and department statistics are limited to managers and above.",
        )

    grouped: dict[tuple[Role, str | None], list[DailyRecord]] = defaultdict(list)
    for record in build_daily_records(db, viewer=viewer, day=day):
        grouped[(record.role, record.department)].append(record)

    return [
        RoleDepartmentStats(role=role, department=department, summary=summarize(rows))
        for (role, department), rows in sorted(
            grouped.items(), key=lambda item: (item[0][0].value, item[0][1] or "")
        )
    ]


def _matches_report_filters(
    row: DailyRecord,
    supervisor_id: int | None,
    location_id: int | None,
    status: DailyStatus | None,
) -> bool:
    if supervisor_id is not None and row.supervisor_id != supervisor_id:
        return False
    if location_id is not None and row.location_id != location_id:
        return False
    return status is None or row.status == status


def attendance_report(
    db: Session,
    *,
    viewer: Employee,
    start_date: date,
    end_date: date,
    staff_id: int | None = None,
    supervisor_id: int | None = None,
    location_id: int | None = None,
    status: DailyStatus | None = None,
) -> list[DailyRecord]:
    """Per employee, per day rows over a date range.

    The supervisor and location filters match the attendance record, so days
    without one are dropped when either is given.
    """
    if end_date < start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="end_date must be greater than or equal to start_date.",
        )
    if (end_date - start_date).days + 1 > MAX_REPORT_DAYS:
        raise ApiError(
            status_code=422,
            code="DATE_RANGE_TOO_LARGE",
            message=f"Reports are limited to {MAX_REPORT_DAYS} days.",
        )

    employee_ids = visible_employee_ids(db, viewer)
    if staff_id is not None:
        if staff_id not in employee_ids:
            raise ApiError(status_code=403, code="FORBIDDEN", message="You cannot view this employee.")
        employee_ids = {staff_id}

    employees = _load_employees(db, employee_ids)
    records = _load_records(db, employee_ids=employee_ids, start_date=start_date, end_date=end_date)
    location_names = _location_names(db, list(records.values()))

    report: list[DailyRecord] = []
    day = start_date
    while day <= end_date:
        on_leave_ids = approved_leave_staff_ids(db, day=day, staff_ids=employee_ids)
        for employee in employees:
            report.append(
                _build_record(
                    employee,
                    day,
                    records.get((employee.id, day)),
                    on_leave=employee.id in on_leave_ids,
                    location_names=location_names,
                )
            )
        day += timedelta(days=1)
    return [row for row in report if _matches_report_filters(row, supervisor_id, location_id, status)]


def pending_attendance_approvals(db: Session, *, approver: Employee) -> list[AttendanceRecord]:
    rows = db.scalars(
        select(AttendanceRecord)
        .where(AttendanceRecord.approval_status == ApprovalStatus.PENDING)
        .order_by(AttendanceRecord.attendance_date.desc(), AttendanceRecord.id.asc())
    ).all()
    return [row for row in rows if can_decide_attendance(db, actor=approver, record=row)]


def pending_flag_approvals(db: Session, *, approver: Employee) -> list[AttendanceRecord]:
    rows = db.scalars(
        select(AttendanceRecord)
        .where(
            or_(
                AttendanceRecord.overtime_approval_status == ApprovalStatus.PENDING,
                AttendanceRecord.double_duty_approval_status == ApprovalStatus.PENDING,
            )
        )
        .order_by(AttendanceRecord.attendance_date.desc(), AttendanceRecord.id.asc())
    ).all()
    return [row for row in rows if can_decide_flags(db, actor=approver, record=row)]


def attendance_records_for_day(db: Session, *, viewer: Employee, day: date | None = None) -> list[AttendanceRecord]:
    target_day = day or local_day()
    return list(
        db.scalars(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.staff_id.in_(visible_employee_ids(db, viewer)),
                AttendanceRecord.attendance_date == target_day,
            )
            .order_by(AttendanceRecord.clock_in.asc(), AttendanceRecord.id.asc())
        ).all()
    )
