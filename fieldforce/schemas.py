from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fieldforce.models import ApprovalStatus, AttendanceStatus, DailyStatus, LeaveStatus, Role
from fieldforce.services.location import parse_hhmm
from fieldforce.services.roles import normalize_role


def _normalize_hhmm(value: str | None) -> str | None:
    if value is None:
        return None
    parsed = parse_hhmm(value)
    if parsed is None:
        raise ValueError("Shift times must use HH:MM (24h).")
    return parsed.strftime("%H:%M")


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=256)


class EmployeeRead(BaseModel):
    id: int
    full_name: str
    username: str
    role: Role
    department: str | None
    departments: list[str] = Field(default_factory=list)
    manager_id: int | None
    general_manager_id: int | None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    employee: EmployeeRead


class EmployeeCreate(BaseModel):
    full_name: str = Field(min_length=2, max_length=255)
    username: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=8, max_length=256)
    role: Role = Role.STAFF
    department: str | None = Field(default=None, max_length=255)
    departments: list[str] = Field(default_factory=list)
    manager_id: int | None = Field(default=None, ge=1)
    general_manager_id: int | None = Field(default=None, ge=1)

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Role:
        return normalize_role(value)

    @field_validator("username")
    @classmethod
    def _normalize_username(cls, value: str) -> str:
        return value.strip().lower()


class EmployeeUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=2, max_length=255)
    role: Role | None = None
    department: str | None = Field(default=None, max_length=255)
    departments: list[str] | None = None
    manager_id: int | None = Field(default=None, ge=1)
    general_manager_id: int | None = Field(default=None, ge=1)
    is_active: bool | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Role | None:
        if value is None:
            return None
        return normalize_role(value)


class LocationCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    code: str | None = Field(default=None, max_length=100)
    description: str = Field(default="", max_length=2000)
    center_lat: float = Field(ge=-90, le=90)
    center_lng: float = Field(ge=-180, le=180)
    radius_m: float | None = Field(default=None, gt=0)
    is_office: bool = False
    morning_shift_start: str | None = None
    morning_shift_end: str | None = None
    night_shift_start: str | None = None
    night_shift_end: str | None = None

    @field_validator("morning_shift_start", "morning_shift_end", "night_shift_start", "night_shift_end")
    @classmethod
    def _validate_shift_time(cls, value: str | None) -> str | None:
        return _normalize_hhmm(value)


class LocationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    code: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=2000)
    center_lat: float | None = Field(default=None, ge=-90, le=90)
    center_lng: float | None = Field(default=None, ge=-180, le=180)
    radius_m: float | None = Field(default=None, gt=0)
    is_office: bool | None = None
    morning_shift_start: str | None = None
    morning_shift_end: str | None = None
    night_shift_start: str | None = None
    night_shift_end: str | None = None

    @field_validator("morning_shift_start", "morning_shift_end", "night_shift_start", "night_shift_end")
    @classmethod
    def _validate_shift_time(cls, value: str | None) -> str | None:
        return _normalize_hhmm(value)


class LocationRead(BaseModel):
    id: int
    name: str
    code: str | None
    description: str
    center_lat: float
    center_lng: float
    radius_m: float
    is_office: bool
    morning_shift_start: str | None
    morning_shift_end: str | None
    night_shift_start: str | None
    night_shift_end: str | None

    model_config = ConfigDict(from_attributes=True)


class AssignmentCreate(BaseModel):
    staff_id: int = Field(ge=1)
    supervisor_id: int = Field(ge=1)
    location_id: int = Field(ge=1)


class AssignmentRead(BaseModel):
    id: int
    staff_id: int
    supervisor_id: int
    location_id: int
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClockInRequest(BaseModel):
    staff_id: int | None = Field(default=None, ge=1)
    supervisor_id: int | None = Field(default=None, ge=1)
    location_id: int = Field(ge=1)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    photo_ref: str | None = Field(default=None, max_length=1024)
    overtime: bool = False
    double_duty: bool = False
    override: bool = False


class ClockOutRequest(BaseModel):
    staff_id: int | None = Field(default=None, ge=1)
    location_id: int = Field(ge=1)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    photo_ref: str | None = Field(default=None, max_length=1024)
    override: bool = False


class AttendanceRead(BaseModel):
    id: int
    staff_id: int
    supervisor_id: int
    location_id: int
    attendance_date: date
    clock_in: datetime | None
    clock_in_lat: float | None
    clock_in_lng: float | None
    clock_in_photo_ref: str | None
    clocked_in_by_id: int | None
    clock_out: datetime | None
    clock_out_lat: float | None
    clock_out_lng: float | None
    clock_out_photo_ref: str | None
    clock_out_location_id: int | None
    clocked_out_by_id: int | None
    is_override: bool
    status: AttendanceStatus
    approval_status: ApprovalStatus
    approved_by_id: int | None
    overtime: bool
    overtime_approval_status: ApprovalStatus | None
    double_duty: bool
    double_duty_approval_status: ApprovalStatus | None
    marked_by_id: int | None
    rejection_reason: str | None

    model_config = ConfigDict(from_attributes=True)


class ClockInResponse(BaseModel):
    attendance: AttendanceRead
    already_clocked_in: bool
    override: bool
    distance_m: float | None = None


class ClockOutResponse(BaseModel):
    attendance: AttendanceRead
    already_clocked_out: bool
    override: bool
    distance_m: float | None = None


class DecisionRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class AttendanceTransitionResponse(BaseModel):
    attendance: AttendanceRead
    already_processed: bool


class LeaveCreateRequest(BaseModel):
    staff_id: int | None = Field(default=None, ge=1)
    supervisor_id: int | None = Field(default=None, ge=1)
    leave_type: str = Field(min_length=1, max_length=100)
    start_date: date
    end_date: date
    reason: str = Field(default="", max_length=1000)

    @model_validator(mode="after")
    def _validate_date_range(self) -> "LeaveCreateRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be greater than or equal to start_date.")
        return self


class LeaveStatusUpdateRequest(BaseModel):
    status: Literal["approved", "rejected"]


class LeaveRead(BaseModel):
    id: int
    staff_id: int
    supervisor_id: int | None
    leave_type: str
    start_date: date
    end_date: date
    reason: str
    status: LeaveStatus
    approved_by_id: int | None
    decided_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LeaveDecisionResponse(BaseModel):
    leave: LeaveRead
    already_processed: bool


class PendingApprovalsResponse(BaseModel):
    attendance: list[AttendanceRead] = Field(default_factory=list)
    leaves: list[LeaveRead] = Field(default_factory=list)
    flags: list[AttendanceRead] = Field(default_factory=list)


class DailyRecordRead(BaseModel):
    employee_id: int
    full_name: str
    role: Role
    department: str | None
    attendance_date: date
    status: DailyStatus
    attendance_id: int | None
    clock_in: datetime | None
    clock_out: datetime | None
    location_id: int | None
    location_name: str | None
    supervisor_id: int | None
    overtime: bool
    double_duty: bool
    approval_status: ApprovalStatus | None
    is_override: bool

    model_config = ConfigDict(from_attributes=True)


class DailySummaryRead(BaseModel):
    total: int
    present: int
    late: int
    absent: int
    on_leave: int
    missing_clock_out: int
    pending_approvals: int

    model_config = ConfigDict(from_attributes=True)


class DailyDashboardResponse(BaseModel):
    day: date
    holiday: str | None = None
    summary: DailySummaryRead
    records: list[DailyRecordRead]


class RoleDepartmentStatsRead(BaseModel):
    role: Role
    department: str | None
    summary: DailySummaryRead

    model_config = ConfigDict(from_attributes=True)


class SystemConfigRead(BaseModel):
    grace_period_minutes: int
    min_clock_interval_hours: float
    updated_at: datetime | None = None
    updated_by_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class SystemConfigUpdate(BaseModel):
    grace_period_minutes: int | None = Field(default=None, ge=0, le=1440)
    min_clock_interval_hours: float | None = Field(default=None, ge=0, le=24)

    @model_validator(mode="after")
    def _require_a_change(self) -> "SystemConfigUpdate":
        if self.grace_period_minutes is None and self.min_clock_interval_hours is None:
            raise ValueError("Provide grace_period_minutes or min_clock_interval_hours.")
        return self


class DepartmentCreate(BaseModel):
    code: int = Field(ge=1)
    label: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=1000)


class DepartmentUpdate(BaseModel):
    label: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1, max_length=1000)
    is_active: bool | None = None


class DepartmentRead(BaseModel):
    id: int
    code: int
    label: str
    description: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class HolidayCreate(BaseModel):
    holiday_date: date
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=1000)


class HolidayUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)


class HolidayRead(BaseModel):
    id: int
    holiday_date: date
    name: str
    description: str
    created_by_id: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
