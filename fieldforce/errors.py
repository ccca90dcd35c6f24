from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class _DomainError(ApiError):
    status_code = 400
    code = "DOMAIN_ERROR"
    default_message = "Request could not be completed."

    def __init__(self, message: str | None = None):
        super().__init__(
            status_code=type(self).status_code,
            code=type(self).code,
            message=message or type(self).default_message,
        )


class LocationNotFound(_DomainError):
    status_code = 404
    code = "LOCATION_NOT_FOUND"
    default_message = "Location not found."


class EmployeeNotFound(_DomainError):
    status_code = 404
    code = "EMPLOYEE_NOT_FOUND"
    default_message = "Employee not found."


class EmployeeInactive(_DomainError):
    status_code = 403
    code = "EMPLOYEE_INACTIVE"
    default_message = "Inactive employee cannot perform attendance actions."


class OutsideGeofence(_DomainError):
    status_code = 422
    code = "OUTSIDE_GEOFENCE"
    default_message = "You are outside the allowed radius of this location."


class CoordinatesRequired(_DomainError):
    status_code = 422
    code = "COORDINATES_REQUIRED"
    default_message = "A location fix (lat/lng) is required for this action."


class OfficeLocationRequired(_DomainError):
    status_code = 422
    code = "OFFICE_LOCATION_REQUIRED"
    default_message = "Managers and General Managers must clock in and out at an office location."


class NoAttendanceRecord(_DomainError):
    status_code = 404
    code = "NO_ATTENDANCE_RECORD"
    default_message = "No attendance record found for today."


class ClockOutTooEarly(_DomainError):
    status_code = 422
    code = "CLOCK_OUT_TOO_EARLY"
    default_message = "Minimum interval between clock-in and clock-out has not elapsed."


class AssignmentNotFound(_DomainError):
    status_code = 422
    code = "ASSIGNMENT_NOT_FOUND"
    default_message = "Staff is not assigned to this supervisor at this location."


class ClockActionNotPermitted(_DomainError):
    status_code = 403
    code = "CLOCK_ACTION_NOT_PERMITTED"
    default_message = "You are not allowed to clock in or out on behalf of this employee."


class OverrideNotPermitted(_DomainError):
    status_code = 403
    code = "OVERRIDE_NOT_PERMITTED"
    default_message = "Override mode requires management rank over the employee in the same department."


class NotAuthorizedToApprove(_DomainError):
    status_code = 403
    code = "NOT_AUTHORIZED_TO_APPROVE"
    default_message = "You are not authorized to approve this request."


class NotAuthorizedToFlag(_DomainError):
    status_code = 403
    code = "NOT_AUTHORIZED_TO_FLAG"
    default_message = "Only the responsible supervisor can flag overtime or double duty."


class FlagNotRequested(_DomainError):
    status_code = 409
    code = "FLAG_NOT_REQUESTED"
    default_message = "This attendance record has not been flagged for approval."


class ApprovalAlreadyDecided(_DomainError):
    status_code = 409
    code = "APPROVAL_ALREADY_DECIDED"
    default_message = "This request has already been decided."


class NoApproverAvailable(_DomainError):
    status_code = 409
    code = "NO_APPROVER_AVAILABLE"
    default_message = "No approver is available for this request."


class ConflictingLeaveState(_DomainError):
    status_code = 409
    code = "CONFLICTING_LEAVE_STATE"
    default_message = "An approved leave covers this date; clock-in is not allowed."


class LeaveRequestNotFound(_DomainError):
    status_code = 404
    code = "LEAVE_REQUEST_NOT_FOUND"
    default_message = "Leave request not found."


class DepartmentNotFound(_DomainError):
    status_code = 404
    code = "DEPARTMENT_NOT_FOUND"
    default_message = "Department not found."


class HolidayNotFound(_DomainError):
    status_code = 404
    code = "HOLIDAY_NOT_FOUND"
    default_message = "Holiday not found."


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
