"""System config, departments and holidays

Revision ID: 0002_system_config_reference_data
Revises: 0001_initial
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002_system_config_reference_data"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    op.create_table(
        "system_config",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("config_key", sa.String(length=100), nullable=False),
        sa.Column("grace_period_minutes", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("min_clock_interval_hours", sa.Float(), nullable=False, server_default=sa.text("6")),
        sa.Column("other_settings", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("updated_by_id", sa.Integer(), nullable=True),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["updated_by_id"], ["employees.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("config_key", name="uq_system_config_config_key"),
        sa.CheckConstraint(
            "grace_period_minutes >= 0 AND grace_period_minutes <= 1440",
            name="ck_system_config_grace_range",
        ),
        sa.CheckConstraint(
            "min_clock_interval_hours >= 0 AND min_clock_interval_hours <= 24",
            name="ck_system_config_interval_range",
        ),
    )

    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("code", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("code", name="uq_departments_code"),
    )
    op.create_index("ix_departments_is_active", "departments", ["is_active"], unique=False)

    op.create_table(
        "holidays",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("holiday_date", sa.Date(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=False, server_default=sa.text("''")),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["created_by_id"], ["employees.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("holiday_date", name="uq_holidays_holiday_date"),
    )


def downgrade() -> None:
    op.drop_table("holidays")
    op.drop_index("ix_departments_is_active", table_name="departments")
    op.drop_table("departments")
    op.drop_table("system_config")
