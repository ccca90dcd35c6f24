from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from fieldforce.errors import (
    ApiError,
    ApprovalAlreadyDecided,
    ConflictingLeaveState,
    EmployeeInactive,
    EmployeeNotFound,
    LeaveRequestNotFound,
)
from fieldforce.models import AttendanceRecord, Employee, LeaveRequest, LeaveStatus, Role
from fieldforce.services.approvals import (
    build_subject,
    can_approve,
    ensure_approver_available,
    ensure_can_approve,
    requires_approval,
)
from fieldforce.services.roles import has_field_leadership_privileges, normalize_role
from fieldforce.services.timezones import local_day, normalize_ts
from fieldforce.services.visibility import can_view_employee, visible_employee_ids

logger = logging.getLogger("fieldforce.leaves")

_OPEN_LEAVE_STATUSES = (LeaveStatus.PENDING, LeaveStatus.APPROVED)


@dataclass(frozen=True)
class LeaveDecisionResult:
    leave: LeaveRequest
    already_processed: bool


def _get_active_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise EmployeeNotFound()
    if not employee.is_active:
        raise EmployeeInactive()
    return employee


def approved_leave_covering(db: Session, *, staff_id: int, day: date) -> LeaveRequest | None:
    return db.scalar(
        select(LeaveRequest)
        .where(
            LeaveRequest.staff_id == staff_id,
            LeaveRequest.status == LeaveStatus.APPROVED,
            LeaveRequest.start_date <= day,
            LeaveRequest.end_date >= day,
        )
        .order_by(LeaveRequest.id.asc())
        .limit(1)
    )


def approved_leave_staff_ids(db: Session, *, day: date, staff_ids: set[int] | None = None) -> set[int]:
    stmt = select(LeaveRequest.staff_id).where(
        LeaveRequest.status == LeaveStatus.APPROVED,
        LeaveRequest.start_date <= day,
        LeaveRequest.end_date >= day,
    )
    if staff_ids is not None:
        if not staff_ids:
            return set()
        stmt = stmt.where(LeaveRequest.staff_id.in_(staff_ids))
    return set(db.scalars(stmt).all())


def _has_overlapping_leave(db: Session, *, staff_id: int, start_date: date, end_date: date) -> bool:
    existing = db.scalar(
        select(LeaveRequest.id)
        .where(
            LeaveRequest.staff_id == staff_id,
            LeaveRequest.status.in_(_OPEN_LEAVE_STATUSES),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        .limit(1)
    )
    return existing is not None


def _has_attendance_within(db: Session, *, staff_id: int, start_date: date, end_date: date) -> bool:
    existing = db.scalar(
        select(AttendanceRecord.id)
        .where(
            AttendanceRecord.staff_id == staff_id,
            AttendanceRecord.clock_in.is_not(None),
            AttendanceRecord.attendance_date >= start_date,
            AttendanceRecord.attendance_date <= end_date,
        )
        .limit(1)
    )
    return existing is not None


def _ensure_no_attendance_within(db: Session, leave: LeaveRequest) -> None:
    if _has_attendance_within(
        db, staff_id=leave.staff_id, start_date=leave.start_date, end_date=leave.end_date
    ):
        raise ConflictingLeaveState("The employee already clocked in on a day this leave covers.")


def submit_leave(
    db: Session,
    *,
    actor: Employee,
    staff_id: int,
    leave_type: str,
    start_date: date,
    end_date: date,
    reason: str = "",
    supervisor_id: int | None = None,
    now_utc: datetime | None = None,
) -> LeaveRequest:
    """Create a leave request for ``staff_id``.

    Requests from roles without anyone above them are recorded as approved
    straight away. Everyone else needs at least one approver on the routing
    path, otherwise the request is refused instead of being left orphaned.
    """
    if end_date < start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="end_date must be greater than or equal to start_date.",
        )

    staff = _get_active_employee(db, staff_id)
    if actor.id != staff.id:
        if not has_field_leadership_privileges(actor.role) or not can_view_employee(db, actor, staff.id):
            raise ApiError(
                status_code=403,
                code="FORBIDDEN",
                message="You cannot submit leave on behalf of this employee.",
            )
        if supervisor_id is None and normalize_role(actor.role) == Role.SUPERVISOR:
            supervisor_id = actor.id

    if _has_overlapping_leave(db, staff_id=staff.id, start_date=start_date, end_date=end_date):
        raise ConflictingLeaveState("An open leave request already overlaps these dates.")

    now = normalize_ts(now_utc)
    subject = build_subject(db, staff, supervisor_id=supervisor_id)

    leave = LeaveRequest(
        staff_id=staff.id,
        supervisor_id=supervisor_id,
        leave_type=leave_type.strip(),
        start_date=start_date,
        end_date=end_date,
        reason=reason or "",
        status=LeaveStatus.PENDING,
        created_at=now,
    )

    if not requires_approval(subject.role):
        _ensure_no_attendance_within(db, leave)
        leave.status = LeaveStatus.APPROVED
        leave.approved_by_id = staff.id
        leave.decided_at = now
        logger.info(
            "leave_auto_approved",
            extra={"staff_id": staff.id, "role": subject.role.value},
        )
    else:
        ensure_approver_available(db, subject)

    db.add(leave)
    db.commit()
    db.refresh(leave)
    logger.info(
        "leave_submitted",
        extra={
            "leave_id": leave.id,
            "staff_id": staff.id,
            "submitted_by": actor.id,
            "status": leave.status.value,
        },
    )
    return leave


def get_leave_or_raise(db: Session, leave_id: int) -> LeaveRequest:
    leave = db.get(LeaveRequest, leave_id)
    if leave is None:
        raise LeaveRequestNotFound()
    return leave


def decide_leave(
    db: Session,
    *,
    actor: Employee,
    leave_id: int,
    decision: LeaveStatus,
    now_utc: datetime | None = None,
) -> LeaveDecisionResult:
    if decision == LeaveStatus.PENDING:
        raise ApiError(
            status_code=422,
            code="INVALID_DECISION",
            message="A leave request can only be approved or rejected.",
        )

    leave = get_leave_or_raise(db, leave_id)
    staff = db.get(Employee, leave.staff_id)
    if staff is None:
        raise EmployeeNotFound()

    subject = build_subject(db, staff, supervisor_id=leave.supervisor_id)
    ensure_can_approve(subject, actor)
    if decision == LeaveStatus.APPROVED and leave.status == LeaveStatus.PENDING:
        _ensure_no_attendance_within(db, leave)

    now = normalize_ts(now_utc)
    result = db.execute(
        update(LeaveRequest)
        .where(LeaveRequest.id == leave.id, LeaveRequest.status == LeaveStatus.PENDING)
        .values(status=decision, approved_by_id=actor.id, decided_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(leave)

    if result.rowcount == 0:
        if leave.status == decision:
            return LeaveDecisionResult(leave=leave, already_processed=True)
        raise ApprovalAlreadyDecided(f"This leave request was already {leave.status.value}.")

    logger.info(
        "leave_decided",
        extra={"leave_id": leave.id, "decided_by": actor.id, "status": decision.value},
    )
    return LeaveDecisionResult(leave=leave, already_processed=False)


def list_visible_leaves(
    db: Session,
    *,
    viewer: Employee,
    status: LeaveStatus | None = None,
) -> list[LeaveRequest]:
    stmt = select(LeaveRequest).where(LeaveRequest.staff_id.in_(visible_employee_ids(db, viewer)))
    if status is not None:
        stmt = stmt.where(LeaveRequest.status == status)
    stmt = stmt.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
    return list(db.scalars(stmt).all())


def list_pending_leaves_for_approver(db: Session, *, approver: Employee) -> list[LeaveRequest]:
    pending = list(
        db.scalars(
            select(LeaveRequest)
            .where(LeaveRequest.status == LeaveStatus.PENDING)
            .order_by(LeaveRequest.created_at.asc(), LeaveRequest.id.asc())
        ).all()
    )
    approvable: list[LeaveRequest] = []
    for leave in pending:
        staff = db.get(Employee, leave.staff_id)
        if staff is None:
            continue
        if can_approve(build_subject(db, staff, supervisor_id=leave.supervisor_id), approver):
            approvable.append(leave)
    return approvable


def list_leaves_on_day(
    db: Session,
    *,
    viewer: Employee,
    day: date | None = None,
) -> list[LeaveRequest]:
    target_day = day or local_day()
    return list(
        db.scalars(
            select(LeaveRequest)
            .where(
                LeaveRequest.staff_id.in_(visible_employee_ids(db, viewer)),
                LeaveRequest.status == LeaveStatus.APPROVED,
                LeaveRequest.start_date <= target_day,
                LeaveRequest.end_date >= target_day,
            )
            .order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc())
        ).all()
    )
