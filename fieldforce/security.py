from __future__ import annotations

import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError
from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldforce.db import get_db
from fieldforce.errors import ApiError, EmployeeInactive
from fieldforce.models import Employee
from fieldforce.services.roles import (
    has_field_leadership_privileges,
    has_full_control,
    has_management_privileges,
    normalize_role,
)
from fieldforce.settings import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

_LOCK = threading.Lock()
_FAILED_ATTEMPTS: dict[str, deque[datetime]] = defaultdict(deque)
_MAX_ATTEMPTS = 10
_ATTEMPT_WINDOW = timedelta(minutes=10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _cleanup_attempts(key: str, now: datetime) -> None:
    queue = _FAILED_ATTEMPTS[key]
    threshold = now - _ATTEMPT_WINDOW
    while queue and queue[0] < threshold:
        queue.popleft()
    if not queue:
        _FAILED_ATTEMPTS.pop(key, None)


def ensure_login_attempt_allowed(key: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(key, now)
        queue = _FAILED_ATTEMPTS.get(key, deque())
        if len(queue) >= _MAX_ATTEMPTS:
            raise ApiError(
                status_code=429,
                code="TOO_MANY_ATTEMPTS",
                message="Too many failed login attempts. Please try again later.",
            )


def register_login_failure(key: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(key, now)
        _FAILED_ATTEMPTS[key].append(now)


def register_login_success(key: str) -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.pop(key, None)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        # Empty or legacy hashes count as a failed login.
        return False


def authenticate_employee(db: Session, username: str, password: str) -> Employee | None:
    employee = db.scalar(select(Employee).where(Employee.username == username.strip().lower()))
    if employee is None or not verify_password(password, employee.password_hash):
        return None
    return employee


def _signing_key() -> str:
    secret = get_settings().jwt_secret
    if not secret:
        raise ApiError(status_code=500, code="AUTH_NOT_CONFIGURED", message="Token signing is not configured.")
    return secret


def create_access_token(employee: Employee) -> tuple[str, int, dict[str, Any]]:
    settings = get_settings()
    now = _utcnow()
    claims = {
        "sub": str(employee.id),
        "username": employee.username,
        "role": normalize_role(employee.role).value,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.access_token_minutes)).timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, _signing_key(), algorithm="HS256")
    return token, settings.access_token_minutes * 60, claims


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            _signing_key(),
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    if payload.get("typ") != "access":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token type is invalid.")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")

    return payload


def require_employee(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Employee:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    payload = decode_token(credentials.credentials)
    # Role changes and deactivation take effect without waiting for token expiry.
    employee = db.get(Employee, int(payload["sub"]))
    if employee is None:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject no longer exists.")
    if not employee.is_active:
        raise EmployeeInactive("This account has been deactivated.")

    request.state.actor = normalize_role(employee.role).value
    request.state.actor_id = str(employee.id)
    return employee


def _require(predicate: Callable[[Any], bool], message: str) -> Callable[..., Employee]:
    def _dependency(employee: Employee = Depends(require_employee)) -> Employee:
        if not predicate(employee.role):
            raise ApiError(status_code=403, code="FORBIDDEN", message=message)
        return employee

    return _dependency


require_field_leadership = _require(has_field_leadership_privileges, "Supervisor role or above is required.")
require_management = _require(has_management_privileges, "Manager role or above is required.")
require_full_control = _require(has_full_control, "Only CEO or Super Admin can perform this action.")
