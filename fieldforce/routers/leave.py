from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from fieldforce.audit import audit_employee_action
from fieldforce.db import get_db
from fieldforce.models import Employee, LeaveStatus
from fieldforce.schemas import LeaveCreateRequest, LeaveDecisionResponse, LeaveRead, LeaveStatusUpdateRequest
from fieldforce.security import require_employee
from fieldforce.services.leaves import decide_leave, list_leaves_on_day, list_visible_leaves, submit_leave

router = APIRouter(prefix="/api/leave", tags=["leave"])


@router.get("", response_model=list[LeaveRead])
def list_leave_requests(
    status: LeaveStatus | None = Query(default=None),
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[LeaveRead]:
    leaves = list_visible_leaves(db, viewer=actor, status=status)
    return [LeaveRead.model_validate(leave) for leave in leaves]


@router.post("", response_model=LeaveRead, status_code=201)
def create_leave_request(
    payload: LeaveCreateRequest,
    request: Request,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> LeaveRead:
    leave = submit_leave(
        db,
        actor=actor,
        staff_id=payload.staff_id or actor.id,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        supervisor_id=payload.supervisor_id,
    )
    request.state.leave_id = leave.id
    audit_employee_action(
        db,
        request,
        actor=actor,
        action="LEAVE_SUBMITTED",
        entity_type="leave_request",
        entity_id=leave.id,
        details={
            "staff_id": leave.staff_id,
            "start_date": leave.start_date.isoformat(),
            "end_date": leave.end_date.isoformat(),
            "status": leave.status.value,
        },
    )
    return LeaveRead.model_validate(leave)


@router.put("/{leave_id}/status", response_model=LeaveDecisionResponse)
def update_leave_status(
    leave_id: int,
    payload: LeaveStatusUpdateRequest,
    request: Request,
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> LeaveDecisionResponse:
    result = decide_leave(db, actor=actor, leave_id=leave_id, decision=LeaveStatus(payload.status))
    request.state.leave_id = leave_id
    if not result.already_processed:
        audit_employee_action(
            db,
            request,
            actor=actor,
            action="LEAVE_APPROVED" if result.leave.status == LeaveStatus.APPROVED else "LEAVE_REJECTED",
            entity_type="leave_request",
            entity_id=leave_id,
            details={"staff_id": result.leave.staff_id},
        )
    return LeaveDecisionResponse(
        leave=LeaveRead.model_validate(result.leave),
        already_processed=result.already_processed,
    )


@router.get("/today", response_model=list[LeaveRead])
def list_leave_today(
    day: date | None = Query(default=None),
    actor: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[LeaveRead]:
    return [LeaveRead.model_validate(leave) for leave in list_leaves_on_day(db, viewer=actor, day=day)]
