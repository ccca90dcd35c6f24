from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldforce.errors import (
    ApprovalAlreadyDecided,
    AssignmentNotFound,
    ClockActionNotPermitted,
    ClockOutTooEarly,
    ConflictingLeaveState,
    EmployeeInactive,
    EmployeeNotFound,
    FlagNotRequested,
    NoAttendanceRecord,
    NotAuthorizedToFlag,
    OfficeLocationRequired,
    OverrideNotPermitted,
)
from fieldforce.models import (
    ApprovalStatus,
    AttendanceRecord,
    AttendanceStatus,
    DailyStatus,
    Employee,
    Location,
    Role,
)
from fieldforce.services.approvals import (
    build_subject,
    can_approve,
    ensure_can_approve,
    is_same_department,
)
from fieldforce.services.assignments import is_assigned_supervisor, resolve_active_assignment
from fieldforce.services.leaves import approved_leave_covering
from fieldforce.services.location import (
    get_location_or_raise,
    is_office_location,
    parse_hhmm,
    resolve_shift_start,
    verify_presence,
)
from fieldforce.services.roles import (
    has_field_leadership_privileges,
    has_full_control,
    has_management_privileges,
    normalize_role,
    outranks,
)
from fieldforce.services.system_config import get_attendance_config
from fieldforce.services.timezones import local_day, local_time, normalize_ts
from fieldforce.settings import get_settings

logger = logging.getLogger("fieldforce.attendance")

OVERTIME = "overtime"
DOUBLE_DUTY = "double_duty"
_FLAGS = (OVERTIME, DOUBLE_DUTY)

_OFFICE_BOUND_ROLES = frozenset({Role.MANAGER, Role.GENERAL_MANAGER})


@dataclass(frozen=True)
class ClockResult:
    record: AttendanceRecord
    already_done: bool
    override: bool = False
    distance_m: float | None = None


@dataclass(frozen=True)
class TransitionResult:
    record: AttendanceRecord
    already_processed: bool


def _get_active_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise EmployeeNotFound()
    if not employee.is_active:
        raise EmployeeInactive()
    return employee


def _get_record_or_raise(db: Session, attendance_id: int) -> AttendanceRecord:
    record = db.get(AttendanceRecord, attendance_id)
    if record is None:
        raise NoAttendanceRecord("Attendance record not found.")
    return record


def _find_record(db: Session, *, staff_id: int, day: date) -> AttendanceRecord | None:
    return db.scalar(
        select(AttendanceRecord).where(
            AttendanceRecord.staff_id == staff_id,
            AttendanceRecord.attendance_date == day,
        )
    )


def _minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def is_late(
    clock_in_utc: datetime,
    location: Location | None,
    *,
    grace_minutes: int | None = None,
    default_shift_start: str | None = None,
) -> bool:
    settings = get_settings()
    grace = settings.grace_period_minutes if grace_minutes is None else grace_minutes
    shift_start = resolve_shift_start(location, default_shift_start or settings.default_shift_start)
    minutes = _minutes_of_day(local_time(clock_in_utc))
    if _is_after_midnight_on_night_shift(location, minutes):
        minutes += 24 * 60
    return minutes > _minutes_of_day(shift_start) + grace


def _is_after_midnight_on_night_shift(location: Location | None, minutes: int) -> bool:
    # Only applies when the night shift is the one clocked against.
    if location is None or parse_hhmm(location.morning_shift_start) is not None:
        return False
    if not _shift_crosses_midnight(location):
        return False
    return minutes < _minutes_of_day(parse_hhmm(location.night_shift_end))


def derive_daily_status(
    record: AttendanceRecord | None,
    *,
    on_approved_leave: bool = False,
) -> DailyStatus:
    """Status of one employee for one day as shown on dashboards and reports.

    A rejected attendance record always counts as absent.
    """
    if record is not None and record.approval_status == ApprovalStatus.REJECTED:
        return DailyStatus.ABSENT
    if on_approved_leave:
        return DailyStatus.ON_LEAVE
    if record is None or record.clock_in is None:
        return DailyStatus.ABSENT
    if record.status == AttendanceStatus.LATE:
        return DailyStatus.LATE
    return DailyStatus.PRESENT


def can_override(actor: Employee, staff: Employee) -> bool:
    if actor.id == staff.id:
        return False
    if not has_management_privileges(actor.role):
        return False
    if not outranks(actor.role, staff.role):
        return False
    if has_full_control(actor.role):
        return True
    return is_same_department(actor, staff.department)


def _resolve_override(actor: Employee, staff: Employee, requested: bool) -> bool:
    if not requested:
        return False
    if not can_override(actor, staff):
        logger.info(
            "attendance_override_denied",
            extra={"actor_id": actor.id, "staff_id": staff.id},
        )
        raise OverrideNotPermitted()
    return True


def _ensure_may_clock_for(
    db: Session,
    *,
    actor: Employee,
    staff: Employee,
    supervisor_id: int,
) -> None:
    if actor.id == staff.id or actor.id == supervisor_id:
        return
    if has_management_privileges(actor.role) and (
        has_full_control(actor.role) or is_same_department(actor, staff.department)
    ):
        return
    if normalize_role(actor.role) == Role.SUPERVISOR and is_assigned_supervisor(
        db, staff_id=staff.id, supervisor_id=actor.id
    ):
        return
    raise ClockActionNotPermitted()


def _ensure_office_rule(actor: Employee, staff: Employee, location: Location) -> None:
    # Managers and GMs clocking themselves must do it from an office, override or not.
    if actor.id != staff.id:
        return
    if normalize_role(staff.role) not in _OFFICE_BOUND_ROLES:
        return
    if not is_office_location(location):
        raise OfficeLocationRequired()


def resolve_supervisor_id(db: Session, *, actor: Employee, staff_id: int, location_id: int) -> int:
    """Supervisor to record when the client does not name one."""
    if actor.id != staff_id and normalize_role(actor.role) == Role.SUPERVISOR:
        return actor.id
    assignment = resolve_active_assignment(db, staff_id=staff_id, location_id=location_id)
    if assignment is not None:
        return assignment.supervisor_id
    return staff_id


def clock_in(
    db: Session,
    *,
    actor: Employee,
    staff_id: int,
    supervisor_id: int,
    location_id: int,
    lat: float | None = None,
    lng: float | None = None,
    photo_ref: str | None = None,
    overtime: bool = False,
    double_duty: bool = False,
    override: bool = False,
    now_utc: datetime | None = None,
) -> ClockResult:
    now = normalize_ts(now_utc)
    today = local_day(now)

    staff = _get_active_employee(db, staff_id)
    if supervisor_id != staff.id:
        _get_active_employee(db, supervisor_id)
    location = get_location_or_raise(db, location_id)
    config = get_attendance_config(db)

    override_used = _resolve_override(actor, staff, override)
    if not override_used:
        _ensure_may_clock_for(db, actor=actor, staff=staff, supervisor_id=supervisor_id)
    _ensure_office_rule(actor, staff, location)

    existing = _find_record(db, staff_id=staff.id, day=today)
    if existing is not None:
        return ClockResult(record=existing, already_done=True, override=override_used)

    if approved_leave_covering(db, staff_id=staff.id, day=today) is not None:
        raise ConflictingLeaveState()

    distance_value: float | None = None
    if not override_used:
        distance_value = verify_presence(location, lat, lng)
        if staff.id == supervisor_id:
            # Only field leadership reports to itself.
            if not has_field_leadership_privileges(staff.role):
                raise AssignmentNotFound()
        elif resolve_active_assignment(
            db,
            staff_id=staff.id,
            supervisor_id=supervisor_id,
            location_id=location.id,
        ) is None:
            raise AssignmentNotFound()

    flagged = overtime or double_duty
    record = AttendanceRecord(
        staff_id=staff.id,
        supervisor_id=supervisor_id,
        location_id=location.id,
        attendance_date=today,
        clock_in=now,
        clock_in_lat=lat,
        clock_in_lng=lng,
        clock_in_photo_ref=photo_ref,
        clocked_in_by_id=actor.id,
        is_override=override_used,
        status=(
            AttendanceStatus.LATE
            if is_late(now, location, grace_minutes=config.grace_period_minutes)
            else AttendanceStatus.PRESENT
        ),
        approval_status=ApprovalStatus.PENDING,
        overtime=overtime,
        overtime_approval_status=ApprovalStatus.PENDING if overtime else None,
        double_duty=double_duty,
        double_duty_approval_status=ApprovalStatus.PENDING if double_duty else None,
        marked_by_id=actor.id if flagged else None,
        created_at=now,
        updated_at=now,
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race for (staff, date); the winner's record stands.
        db.rollback()
        existing = _find_record(db, staff_id=staff.id, day=today)
        if existing is None:
            raise
        return ClockResult(record=existing, already_done=True, override=override_used)
    db.refresh(record)

    logger.info(
        "attendance_clock_in",
        extra={
            "attendance_id": record.id,
            "staff_id": staff.id,
            "actor_id": actor.id,
            "location_id": location.id,
            "status": record.status.value,
            "distance_m": round(distance_value, 1) if distance_value is not None else None,
        },
    )
    if override_used:
        logger.warning(
            "attendance_override_used",
            extra={"attendance_id": record.id, "staff_id": staff.id, "actor_id": actor.id, "action": "clock_in"},
        )
    return ClockResult(record=record, already_done=False, override=override_used, distance_m=distance_value)


def _shift_crosses_midnight(location: Location | None) -> bool:
    if location is None:
        return False
    start = parse_hhmm(location.night_shift_start)
    end = parse_hhmm(location.night_shift_end)
    if start is None or end is None:
        return False
    return end <= start


def _find_record_for_clock_out(db: Session, *, staff_id: int, now: datetime) -> AttendanceRecord | None:
    today = local_day(now)
    record = _find_record(db, staff_id=staff_id, day=today)
    if record is not None:
        return record

    # Night shifts that run past midnight close yesterday's record.
    previous = _find_record(db, staff_id=staff_id, day=today - timedelta(days=1))
    if previous is None or previous.clock_out is not None:
        return None
    if not _shift_crosses_midnight(db.get(Location, previous.location_id)):
        return None
    return previous


def clock_out(
    db: Session,
    *,
    actor: Employee,
    staff_id: int,
    location_id: int,
    lat: float | None = None,
    lng: float | None = None,
    photo_ref: str | None = None,
    override: bool = False,
    now_utc: datetime | None = None,
) -> ClockResult:
    now = normalize_ts(now_utc)

    staff = _get_active_employee(db, staff_id)
    location = get_location_or_raise(db, location_id)
    override_used = _resolve_override(actor, staff, override)

    record = _find_record_for_clock_out(db, staff_id=staff.id, now=now)
    if record is None or record.clock_in is None:
        raise NoAttendanceRecord()

    if not override_used:
        _ensure_may_clock_for(db, actor=actor, staff=staff, supervisor_id=record.supervisor_id)
    _ensure_office_rule(actor, staff, location)

    if record.clock_out is not None:
        return ClockResult(record=record, already_done=True, override=override_used)

    distance_value: float | None = None
    if not override_used:
        distance_value = verify_presence(location, lat, lng)

    clock_in_ts = normalize_ts(record.clock_in)
    if now < clock_in_ts:
        raise ClockOutTooEarly("Clock-out cannot be earlier than clock-in.")
    if not override_used:
        min_interval = timedelta(hours=get_attendance_config(db).min_clock_interval_hours)
        elapsed = now - clock_in_ts
        if elapsed < min_interval:
            remaining_minutes = int((min_interval - elapsed).total_seconds() // 60) + 1
            raise ClockOutTooEarly(
                f"Clock-out is allowed {remaining_minutes} minutes from now."
            )

    values = {
        "clock_out": now,
        "clock_out_lat": lat,
        "clock_out_lng": lng,
        "clock_out_photo_ref": photo_ref,
        "clock_out_location_id": location.id,
        "clocked_out_by_id": actor.id,
        "updated_at": now,
    }
    if override_used:
        values["is_override"] = True

    result = db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id, AttendanceRecord.clock_out.is_(None))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(record)

    if result.rowcount == 0:
        return ClockResult(record=record, already_done=True, override=override_used)

    logger.info(
        "attendance_clock_out",
        extra={
            "attendance_id": record.id,
            "staff_id": staff.id,
            "actor_id": actor.id,
            "location_id": location.id,
        },
    )
    if override_used:
        logger.warning(
            "attendance_override_used",
            extra={"attendance_id": record.id, "staff_id": staff.id, "actor_id": actor.id, "action": "clock_out"},
        )
    return ClockResult(record=record, already_done=False, override=override_used, distance_m=distance_value)


def _ensure_may_flag(db: Session, *, actor: Employee, record: AttendanceRecord) -> None:
    if actor.id == record.staff_id or not has_field_leadership_privileges(actor.role):
        raise NotAuthorizedToFlag()
    if actor.id == record.supervisor_id:
        return
    if normalize_role(actor.role) == Role.SUPERVISOR:
        if is_assigned_supervisor(db, staff_id=record.staff_id, supervisor_id=actor.id):
            return
        raise NotAuthorizedToFlag()

    staff = db.get(Employee, record.staff_id)
    if staff is None or not can_approve(build_subject(db, staff, supervisor_id=record.supervisor_id), actor):
        raise NotAuthorizedToFlag()


def _mark_flag(
    db: Session,
    *,
    actor: Employee,
    attendance_id: int,
    flag: str,
    now_utc: datetime | None = None,
) -> TransitionResult:
    now = normalize_ts(now_utc)
    record = _get_record_or_raise(db, attendance_id)
    if record.clock_in is None or record.attendance_date != local_day(now):
        raise NoAttendanceRecord("Only today's clocked-in attendance can be flagged.")
    _ensure_may_flag(db, actor=actor, record=record)

    status_column = getattr(AttendanceRecord, f"{flag}_approval_status")
    result = db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id, status_column.is_(None))
        .values(
            {
                flag: True,
                f"{flag}_approval_status": ApprovalStatus.PENDING,
                "marked_by_id": actor.id,
                "updated_at": now,
            }
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(record)

    already_processed = result.rowcount == 0
    if already_processed and getattr(record, f"{flag}_approval_status") == ApprovalStatus.REJECTED:
        raise ApprovalAlreadyDecided(f"This {flag.replace('_', ' ')} request was already rejected.")
    if not already_processed:
        logger.info(
            "attendance_flag_marked",
            extra={"attendance_id": record.id, "flag": flag, "actor_id": actor.id},
        )
    return TransitionResult(record=record, already_processed=already_processed)


def mark_overtime(db: Session, *, actor: Employee, attendance_id: int, now_utc: datetime | None = None) -> TransitionResult:
    return _mark_flag(db, actor=actor, attendance_id=attendance_id, flag=OVERTIME, now_utc=now_utc)


def mark_double_duty(
    db: Session, *, actor: Employee, attendance_id: int, now_utc: datetime | None = None
) -> TransitionResult:
    return _mark_flag(db, actor=actor, attendance_id=attendance_id, flag=DOUBLE_DUTY, now_utc=now_utc)


def _decide_flag(
    db: Session,
    *,
    actor: Employee,
    attendance_id: int,
    flag: str,
    decision: ApprovalStatus,
    reason: str | None = None,
    now_utc: datetime | None = None,
) -> TransitionResult:
    if flag not in _FLAGS:
        raise ValueError(f"unknown flag: {flag}")

    now = normalize_ts(now_utc)
    record = _get_record_or_raise(db, attendance_id)
    staff = db.get(Employee, record.staff_id)
    if staff is None:
        raise EmployeeNotFound()
    ensure_can_approve(build_subject(db, staff, supervisor_id=record.supervisor_id), actor)

    if getattr(record, f"{flag}_approval_status") is None:
        raise FlagNotRequested()

    values = {
        f"{flag}_approval_status": decision,
        f"{flag}_decided_by_id": actor.id,
        "updated_at": now,
    }
    if decision == ApprovalStatus.REJECTED:
        values[flag] = False
        values["rejection_reason"] = reason

    status_column = getattr(AttendanceRecord, f"{flag}_approval_status")
    result = db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id, status_column == ApprovalStatus.PENDING)
        .values(values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(record)

    if result.rowcount == 0:
        current = getattr(record, f"{flag}_approval_status")
        if current == decision:
            return TransitionResult(record=record, already_processed=True)
        raise ApprovalAlreadyDecided(f"This {flag.replace('_', ' ')} request was already {current.value}.")

    logger.info(
        "attendance_flag_decided",
        extra={
            "attendance_id": record.id,
            "flag": flag,
            "decision": decision.value,
            "actor_id": actor.id,
        },
    )
    return TransitionResult(record=record, already_processed=False)


def approve_overtime(
    db: Session, *, actor: Employee, attendance_id: int, now_utc: datetime | None = None
) -> TransitionResult:
    return _decide_flag(
        db, actor=actor, attendance_id=attendance_id, flag=OVERTIME, decision=ApprovalStatus.APPROVED, now_utc=now_utc
    )


def reject_overtime(
    db: Session,
    *,
    actor: Employee,
    attendance_id: int,
    reason: str | None = None,
    now_utc: datetime | None = None,
) -> TransitionResult:
    return _decide_flag(
        db,
        actor=actor,
        attendance_id=attendance_id,
        flag=OVERTIME,
        decision=ApprovalStatus.REJECTED,
        reason=reason,
        now_utc=now_utc,
    )


def approve_double_duty(
    db: Session, *, actor: Employee, attendance_id: int, now_utc: datetime | None = None
) -> TransitionResult:
    return _decide_flag(
        db,
        actor=actor,
        attendance_id=attendance_id,
        flag=DOUBLE_DUTY,
        decision=ApprovalStatus.APPROVED,
        now_utc=now_utc,
    )


def reject_double_duty(
    db: Session,
    *,
    actor: Employee,
    attendance_id: int,
    reason: str | None = None,
    now_utc: datetime | None = None,
) -> TransitionResult:
    return _decide_flag(
        db,
        actor=actor,
        attendance_id=attendance_id,
        flag=DOUBLE_DUTY,
        decision=ApprovalStatus.REJECTED,
        reason=reason,
        now_utc=now_utc,
    )


def _is_recording_supervisor(actor: Employee, record: AttendanceRecord) -> bool:
    # The supervisor who took the attendance may confirm it, unless it is their own.
    return (
        actor.id == record.supervisor_id
        and actor.id != record.staff_id
        and has_field_leadership_privileges(actor.role)
    )


def can_decide_attendance(db: Session, *, actor: Employee, record: AttendanceRecord) -> bool:
    if _is_recording_supervisor(actor, record):
        return True
    staff = db.get(Employee, record.staff_id)
    if staff is None:
        return False
    return can_approve(build_subject(db, staff, supervisor_id=record.supervisor_id), actor)


def can_decide_flags(db: Session, *, actor: Employee, record: AttendanceRecord) -> bool:
    staff = db.get(Employee, record.staff_id)
    if staff is None:
        return False
    return can_approve(build_subject(db, staff, supervisor_id=record.supervisor_id), actor)


def _ensure_may_decide_attendance(db: Session, *, actor: Employee, record: AttendanceRecord) -> None:
    if _is_recording_supervisor(actor, record):
        return
    staff = db.get(Employee, record.staff_id)
    if staff is None:
        raise EmployeeNotFound()
    ensure_can_approve(build_subject(db, staff, supervisor_id=record.supervisor_id), actor)


def _decide_attendance(
    db: Session,
    *,
    actor: Employee,
    attendance_id: int,
    decision: ApprovalStatus,
    reason: str | None = None,
    now_utc: datetime | None = None,
) -> TransitionResult:
    now = normalize_ts(now_utc)
    record = _get_record_or_raise(db, attendance_id)
    _ensure_may_decide_attendance(db, actor=actor, record=record)

    values = {"approval_status": decision, "approved_by_id": actor.id, "updated_at": now}
    if decision == ApprovalStatus.REJECTED and reason:
        values["rejection_reason"] = reason

    result = db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id, AttendanceRecord.approval_status == ApprovalStatus.PENDING)
        .values(values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(record)

    if result.rowcount == 0:
        if record.approval_status == decision:
            return TransitionResult(record=record, already_processed=True)
        raise ApprovalAlreadyDecided(f"This attendance was already {record.approval_status.value}.")

    logger.info(
        "attendance_decided",
        extra={"attendance_id": record.id, "decision": decision.value, "actor_id": actor.id},
    )
    return TransitionResult(record=record, already_processed=False)


def approve_attendance(
    db: Session, *, actor: Employee, attendance_id: int, now_utc: datetime | None = None
) -> TransitionResult:
    return _decide_attendance(
        db, actor=actor, attendance_id=attendance_id, decision=ApprovalStatus.APPROVED, now_utc=now_utc
    )


def reject_attendance(
    db: Session,
    *,
    actor: Employee,
    attendance_id: int,
    reason: str | None = None,
    now_utc: datetime | None = None,
) -> TransitionResult:
    return _decide_attendance(
        db,
        actor=actor,
        attendance_id=attendance_id,
        decision=ApprovalStatus.REJECTED,
        reason=reason,
        now_utc=now_utc,
    )


def get_today_record(db: Session, *, staff_id: int, now_utc: datetime | None = None) -> AttendanceRecord | None:
    return _find_record(db, staff_id=staff_id, day=local_day(now_utc))
