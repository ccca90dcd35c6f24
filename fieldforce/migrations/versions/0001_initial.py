"""Initial field attendance schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

employee_role = postgresql.ENUM(
    "STAFF",
    "SUPERVISOR",
    "MANAGER",
    "GENERAL_MANAGER",
    "CEO",
    "SUPER_ADMIN",
    name="employee_role",
    create_type=False,
)
attendance_status = postgresql.ENUM(
    "PRESENT",
    "LATE",
    "ABSENT",
    name="attendance_status",
    create_type=False,
)
approval_status = postgresql.ENUM(
    "PENDING",
    "APPROVED",
    "REJECTED",
    name="approval_status",
    create_type=False,
)
leave_status = postgresql.ENUM(
    "PENDING",
    "APPROVED",
    "REJECTED",
    name="leave_status",
    create_type=False,
)
audit_actor_type = postgresql.ENUM(
    "EMPLOYEE",
    "SYSTEM",
    name="audit_actor_type",
    create_type=False,
)

_ENUMS = (employee_role, attendance_status, approval_status, leave_status, audit_actor_type)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in _ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", employee_role, nullable=False, server_default=sa.text("'STAFF'")),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("departments", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("manager_id", sa.Integer(), nullable=True),
        sa.Column("general_manager_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["manager_id"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["general_manager_id"], ["employees.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_employees_username", "employees", ["username"], unique=True)
    op.create_index("ix_employees_department", "employees", ["department"], unique=False)
    op.create_index("ix_employees_manager_id", "employees", ["manager_id"], unique=False)

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=100), nullable=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("center_lat", sa.Float(), nullable=False),
        sa.Column("center_lng", sa.Float(), nullable=False),
        sa.Column("radius_m", sa.Float(), nullable=False, server_default=sa.text("100")),
        sa.Column("is_office", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("morning_shift_start", sa.String(length=5), nullable=True),
        sa.Column("morning_shift_end", sa.String(length=5), nullable=True),
        sa.Column("night_shift_start", sa.String(length=5), nullable=True),
        sa.Column("night_shift_end", sa.String(length=5), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.CheckConstraint("radius_m > 0", name="ck_locations_radius_positive"),
    )

    op.create_table(
        "staff_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("staff_id", sa.Integer(), nullable=False),
        sa.Column("supervisor_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["staff_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["supervisor_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_staff_assignments_staff_active",
        "staff_assignments",
        ["staff_id", "is_active"],
        unique=False,
    )
    op.create_index(
        "ix_staff_assignments_supervisor_active",
        "staff_assignments",
        ["supervisor_id", "is_active"],
        unique=False,
    )

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("staff_id", sa.Integer(), nullable=False),
        sa.Column("supervisor_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("clock_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clock_in_lat", sa.Float(), nullable=True),
        sa.Column("clock_in_lng", sa.Float(), nullable=True),
        sa.Column("clock_in_photo_ref", sa.String(length=1024), nullable=True),
        sa.Column("clocked_in_by_id", sa.Integer(), nullable=True),
        sa.Column("clock_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clock_out_lat", sa.Float(), nullable=True),
        sa.Column("clock_out_lng", sa.Float(), nullable=True),
        sa.Column("clock_out_photo_ref", sa.String(length=1024), nullable=True),
        sa.Column("clock_out_location_id", sa.Integer(), nullable=True),
        sa.Column("clocked_out_by_id", sa.Integer(), nullable=True),
        sa.Column("is_override", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", attendance_status, nullable=False, server_default=sa.text("'PRESENT'")),
        sa.Column("approval_status", approval_status, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("approved_by_id", sa.Integer(), nullable=True),
        sa.Column("overtime", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("overtime_approval_status", approval_status, nullable=True),
        sa.Column("overtime_decided_by_id", sa.Integer(), nullable=True),
        sa.Column("double_duty", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("double_duty_approval_status", approval_status, nullable=True),
        sa.Column("double_duty_decided_by_id", sa.Integer(), nullable=True),
        sa.Column("marked_by_id", sa.Integer(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=1000), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["staff_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["supervisor_id"], ["employees.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["clock_out_location_id"], ["locations.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["clocked_in_by_id"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["clocked_out_by_id"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["approved_by_id"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["overtime_decided_by_id"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["double_duty_decided_by_id"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["marked_by_id"], ["employees.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("staff_id", "attendance_date", name="uq_attendance_records_staff_date"),
        sa.CheckConstraint(
            "clock_out IS NULL OR clock_in IS NULL OR clock_out >= clock_in",
            name="ck_attendance_records_clock_order",
        ),
    )
    op.create_index(
        "ix_attendance_records_attendance_date",
        "attendance_records",
        ["attendance_date"],
        unique=False,
    )
    op.create_index(
        "ix_attendance_records_supervisor_date",
        "attendance_records",
        ["supervisor_id", "attendance_date"],
        unique=False,
    )

    op.create_table(
        "leave_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("staff_id", sa.Integer(), nullable=False),
        sa.Column("supervisor_id", sa.Integer(), nullable=True),
        sa.Column("leave_type", sa.String(length=100), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(length=1000), nullable=False, server_default=sa.text("''")),
        sa.Column("status", leave_status, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("approved_by_id", sa.Integer(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["staff_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["supervisor_id"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["approved_by_id"], ["employees.id"], ondelete="SET NULL"),
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_requests_date_order"),
    )
    op.create_index(
        "ix_leave_requests_staff_status",
        "leave_requests",
        ["staff_id", "status"],
        unique=False,
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_leave_requests_staff_status", table_name="leave_requests")
    op.drop_table("leave_requests")
    op.drop_index("ix_attendance_records_supervisor_date", table_name="attendance_records")
    op.drop_index("ix_attendance_records_attendance_date", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_index("ix_staff_assignments_supervisor_active", table_name="staff_assignments")
    op.drop_index("ix_staff_assignments_staff_active", table_name="staff_assignments")
    op.drop_table("staff_assignments")
    op.drop_table("locations")
    op.drop_index("ix_employees_manager_id", table_name="employees")
    op.drop_index("ix_employees_department", table_name="employees")
    op.drop_index("ix_employees_username", table_name="employees")
    op.drop_table("employees")

    bind = op.get_bind()
    for enum_type in reversed(_ENUMS):
        enum_type.drop(bind, checkfirst=True)
