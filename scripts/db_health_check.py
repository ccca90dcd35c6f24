#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine


EXPECTED_HEAD = "0002_system_config_reference_data"

REQUIRED_TABLES = (
    "employees",
    "locations",
    "staff_assignments",
    "attendance_records",
    "leave_requests",
    "audit_logs",
    "system_config",
    "departments",
    "holidays",
)


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run_checks(engine: Engine) -> dict:
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    tables = set(inspect(engine).get_table_names())

    with engine.connect() as conn:
        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing else "ok", {"tables": missing})
        if missing:
            return report

        orphan_attendance = conn.execute(
            text(
                """
                select a.id
                from attendance_records a
                left join employees e on e.id = a.staff_id
                where e.id is null
                limit 20
                """
            )
        ).fetchall()
        add(
            "attendance_orphan_employee",
            "fail" if orphan_attendance else "ok",
            {"sample_ids": [row[0] for row in orphan_attendance]},
        )

        duplicate_assignments = conn.execute(
            text(
                """
                select staff_id, location_id, count(*)
                from staff_assignments
                where is_active = true
                group by staff_id, location_id
                having count(*) > 1
                """
            )
        ).fetchall()
        add(
            "duplicate_active_assignments",
            "warn" if duplicate_assignments else "ok",
            {"rows": [list(row) for row in duplicate_assignments]},
        )

        stale_pending = conn.execute(
            text(
                """
                select count(*)
                from attendance_records
                where approval_status = 'PENDING'
                  and clock_out is not null
                """
            )
        ).scalar_one()
        add(
            "closed_attendance_awaiting_approval",
            "warn" if stale_pending else "ok",
            {"count": stale_pending},
        )

        inactive_supervisors = conn.execute(
            text(
                """
                select s.id
                from staff_assignments s
                join employees e on e.id = s.supervisor_id
                where s.is_active = true
                  and e.is_active = false
                limit 20
                """
            )
        ).fetchall()
        add(
            "assignments_with_inactive_supervisor",
            "warn" if inactive_supervisors else "ok",
            {"sample_ids": [row[0] for row in inactive_supervisors]},
        )

    return report


def run() -> dict:
    load_env_if_exists()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL not found (.env or env vars).")

    report = run_checks(create_engine(database_url))
    report["database_url"] = database_url
    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
