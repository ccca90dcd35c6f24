from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fieldforce.audit import client_ip, log_audit, user_agent
from fieldforce.db import get_db
from fieldforce.errors import ApiError, EmployeeInactive
from fieldforce.models import AuditActorType, Employee
from fieldforce.schemas import EmployeeRead, LoginRequest, TokenResponse
from fieldforce.security import (
    authenticate_employee,
    create_access_token,
    ensure_login_attempt_allowed,
    register_login_failure,
    register_login_success,
    require_employee,
)

router = APIRouter(tags=["auth"])


@router.post("/api/auth/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> TokenResponse:
    username = payload.username.strip().lower()
    ip = client_ip(request)
    agent = user_agent(request)
    request_id = getattr(request.state, "request_id", None)
    request.state.actor = "system"
    request.state.actor_id = "system"
    throttle_key = f"{ip or 'unknown'}:{username}"

    try:
        ensure_login_attempt_allowed(throttle_key)
    except ApiError:
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=username,
            action="LOGIN_FAIL",
            success=False,
            ip=ip,
            user_agent=agent,
            details={"reason": "TOO_MANY_ATTEMPTS"},
            request_id=request_id,
        )
        raise

    employee = authenticate_employee(db, username, payload.password)
    if employee is None:
        register_login_failure(throttle_key)
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=username,
            action="LOGIN_FAIL",
            success=False,
            ip=ip,
            user_agent=agent,
            details={"reason": "INVALID_CREDENTIALS"},
            request_id=request_id,
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid username or password.")

    if not employee.is_active:
        log_audit(
            db,
            actor_type=AuditActorType.EMPLOYEE,
            actor_id=str(employee.id),
            action="LOGIN_FAIL",
            success=False,
            ip=ip,
            user_agent=agent,
            details={"reason": "EMPLOYEE_INACTIVE"},
            request_id=request_id,
        )
        raise EmployeeInactive("This account has been deactivated.")

    register_login_success(throttle_key)
    token, expires_in, _claims = create_access_token(employee)
    request.state.actor = employee.role.value
    request.state.actor_id = str(employee.id)
    log_audit(
        db,
        actor_type=AuditActorType.EMPLOYEE,
        actor_id=str(employee.id),
        action="LOGIN_SUCCESS",
        success=True,
        ip=ip,
        user_agent=agent,
        request_id=request_id,
    )
    return TokenResponse(
        access_token=token,
        expires_in=expires_in,
        employee=EmployeeRead.model_validate(employee),
    )


@router.get("/api/auth/me", response_model=EmployeeRead)
def me(employee: Employee = Depends(require_employee)) -> EmployeeRead:
    return EmployeeRead.model_validate(employee)
