from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fieldforce.audit import audit_employee_action
from fieldforce.db import get_db
from fieldforce.models import Employee
from fieldforce.schemas import (
    AttendanceRead,
    AttendanceTransitionResponse,
    DecisionRequest,
    LeaveRead,
    PendingApprovalsResponse,
)
from fieldforce.security import require_employee
from fieldforce.services.attendance import (
    TransitionResult,
    approve_attendance,
    approve_double_duty,
    approve_overtime,
    mark_double_duty,
    mark_overtime,
    reject_attendance,
    reject_double_duty,
    reject_overtime,
)
from fieldforce.services.dashboard import pending_attendance_approvals, pending_flag_approvals
from fieldforce.services.leaves import list_pending_leaves_for_approver

router = APIRouter(prefix="/api/approvals", tags=["approvals"])


def _respond(
    db: Session,
    request: Request,
    *,
    actor: Employee,
    action: str,
    result: TransitionResult,
    reason: str | None = None,
) -> AttendanceTransitionResponse:
    request.state.attendance_id = result.record.id
    if not result.already_processed:
        details: dict[str, object] = {"staff_id": result.record.staff_id}
        if reason:
            details["reason"] = reason
        audit_employee_action(
            db,
            request,
            actor=actor,
            action=action,
            entity_type="attendance",
            entity_id=result.record.id,
            details=details,
        )
    return AttendanceTransitionResponse(
        attendance=AttendanceRead.model_validate(result.record),
        already_processed=result.already_processed,
    )


def _reason(payload: DecisionRequest | None) -> str | None:
    if payload is None or payload.reason is None:
        return None
    return payload.reason.strip() or None


@router.get("/pending", response_model=PendingApprovalsResponse)
def list_pending_approvals(
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> PendingApprovalsResponse:
    return PendingApprovalsResponse(
        attendance=[AttendanceRead.model_validate(row) for row in pending_attendance_approvals(db, approver=actor)],
        leaves=[LeaveRead.model_validate(row) for row in list_pending_leaves_for_approver(db, approver=actor)],
        flags=[AttendanceRead.model_validate(row) for row in pending_flag_approvals(db, approver=actor)],
    )


@router.get("/pending-overtime-doubleduty", response_model=list[AttendanceRead])
def list_pending_flags(
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[AttendanceRead]:
    return [AttendanceRead.model_validate(row) for row in pending_flag_approvals(db, approver=actor)]


@router.put("/attendance/{attendance_id}/approve", response_model=AttendanceTransitionResponse)
def approve_attendance_endpoint(
    attendance_id: int,
    request: Request,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTransitionResponse:
    result = approve_attendance(db, actor=actor, attendance_id=attendance_id)
    return _respond(db, request, actor=actor, action="ATTENDANCE_APPROVED", result=result)


@router.put("/attendance/{attendance_id}/reject", response_model=AttendanceTransitionResponse)
def reject_attendance_endpoint(
    attendance_id: int,
    request: Request,
    payload: DecisionRequest | None = None,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTransitionResponse:
    reason = _reason(payload)
    result = reject_attendance(db, actor=actor, attendance_id=attendance_id, reason=reason)
    return _respond(db, request, actor=actor, action="ATTENDANCE_REJECTED", result=result, reason=reason)


@router.put("/mark-overtime/{attendance_id}", response_model=AttendanceTransitionResponse)
def mark_overtime_endpoint(
    attendance_id: int,
    request: Request,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTransitionResponse:
    result = mark_overtime(db, actor=actor, attendance_id=attendance_id)
    return _respond(db, request, actor=actor, action="OVERTIME_MARKED", result=result)


@router.put("/mark-double-duty/{attendance_id}", response_model=AttendanceTransitionResponse)
def mark_double_duty_endpoint(
    attendance_id: int,
    request: Request,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTransitionResponse:
    result = mark_double_duty(db, actor=actor, attendance_id=attendance_id)
    return _respond(db, request, actor=actor, action="DOUBLE_DUTY_MARKED", result=result)


@router.put("/approve-overtime/{attendance_id}", response_model=AttendanceTransitionResponse)
def approve_overtime_endpoint(
    attendance_id: int,
    request: Request,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTransitionResponse:
    result = approve_overtime(db, actor=actor, attendance_id=attendance_id)
    return _respond(db, request, actor=actor, action="OVERTIME_APPROVED", result=result)


@router.put("/reject-overtime/{attendance_id}", response_model=AttendanceTransitionResponse)
def reject_overtime_endpoint(
    attendance_id: int,
    request: Request,
    payload: DecisionRequest | None = None,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTransitionResponse:
    reason = _reason(payload)
    result = reject_overtime(db, actor=actor, attendance_id=attendance_id, reason=reason)
    return _respond(db, request, actor=actor, action="OVERTIME_REJECTED", result=result, reason=reason)


@router.put("/approve-double-duty/{attendance_id}", response_model=AttendanceTransitionResponse)
def approve_double_duty_endpoint(
    attendance_id: int,
    request: Request,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTransitionResponse:
    result = approve_double_duty(db, actor=actor, attendance_id=attendance_id)
    return _respond(db, request, actor=actor, action="DOUBLE_DUTY_APPROVED", result=result)


@router.put("/reject-double-duty/{attendance_id}", response_model=AttendanceTransitionResponse)
def reject_double_duty_endpoint(
    attendance_id: int,
    request: Request,
    payload: DecisionRequest | None = None,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTransitionResponse:
    reason = _reason(payload)
    result = reject_double_duty(db, actor=actor, attendance_id=attendance_id, reason=reason)
    return _respond(db, request, actor=actor, action="DOUBLE_DUTY_REJECTED", result=result, reason=reason)
