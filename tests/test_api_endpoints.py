from __future__ import annotations

import os
import unittest
from collections.abc import Generator
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import select

from _helpers import SITE_LAT, SITE_LNG, close_test_session, create_test_session, make_assignment, make_employee, make_location
from fieldforce.db import get_db
from fieldforce.main import app
from fieldforce.models import AuditLog, LeaveStatus, Role
from fieldforce.security import create_access_token, hash_password
from fieldforce.settings import get_settings


class ApiEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.env = patch.dict(os.environ, {"JWT_SECRET": "test-secret-for-endpoints"})
        self.env.start()
        get_settings.cache_clear()

        self.engine, self.db = create_test_session()
        self.ceo = make_employee(self.db, "ceo", role=Role.CEO, department=None)
        self.manager = make_employee(self.db, "manager", role=Role.MANAGER, department="sanitation")
        self.supervisor = make_employee(
            self.db,
            "supervisor",
            role=Role.SUPERVISOR,
            department="sanitation",
            manager_id=self.manager.id,
        )
        self.bilal = make_employee(
            self.db,
            "bilal",
            department="sanitation",
            password_hash=hash_password("bilal-password"),
        )
        self.site = make_location(self.db)
        make_assignment(self.db, staff=self.bilal, supervisor=self.supervisor, location=self.site)

        def _override() -> Generator:
            yield self.db

        app.dependency_overrides[get_db] = _override
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        close_test_session(self.engine, self.db)
        self.env.stop()
        get_settings.cache_clear()

    def _headers(self, employee) -> dict[str, str]:
        token, _expires_in, _claims = create_access_token(employee)
        return {"Authorization": f"Bearer {token}"}

    def _clock_in_bilal(self) -> dict:
        response = self.client.post(
            "/api/attendance/clock-in",
            json={"location_id": self.site.id, "lat": SITE_LAT, "lng": SITE_LNG},
            headers=self._headers(self.bilal),
        )
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def test_login_returns_token_and_writes_audit(self) -> None:
        response = self.client.post(
            "/api/auth/login",
            json={"username": "Bilal", "password": "bilal-password"},
        )
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["token_type"], "bearer")
        self.assertEqual(body["employee"]["id"], self.bilal.id)

        me = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["username"], "bilal")

        actions = self.db.scalars(select(AuditLog.action)).all()
        self.assertIn("LOGIN_SUCCESS", actions)

    def test_login_with_wrong_password(self) -> None:
        response = self.client.post(
            "/api/auth/login",
            json={"username": "bilal", "password": "nope"},
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_CREDENTIALS")

    def test_missing_token_uses_error_envelope(self) -> None:
        response = self.client.get("/api/auth/me", headers={"X-Request-Id": "req-123"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json(),
            {"error": {"code": "INVALID_TOKEN", "message": "Missing bearer token.", "request_id": "req-123"}},
        )
        self.assertEqual(response.headers["X-Request-Id"], "req-123")

    def test_deactivated_employee_token_is_refused(self) -> None:
        headers = self._headers(self.bilal)
        self.bilal.is_active = False
        self.db.commit()

        response = self.client.get("/api/auth/me", headers=headers)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "EMPLOYEE_INACTIVE")

    def test_self_clock_in_is_idempotent(self) -> None:
        first = self._clock_in_bilal()
        second = self._clock_in_bilal()

        self.assertFalse(first["already_clocked_in"])
        self.assertTrue(second["already_clocked_in"])
        self.assertEqual(first["attendance"]["id"], second["attendance"]["id"])
        self.assertEqual(first["attendance"]["supervisor_id"], self.supervisor.id)
        self.assertEqual(first["attendance"]["approval_status"], "pending")

        actions = self.db.scalars(select(AuditLog.action).where(AuditLog.action == "ATTENDANCE_CLOCK_IN")).all()
        self.assertEqual(len(actions), 1)

    def test_clock_in_outside_geofence(self) -> None:
        response = self.client.post(
            "/api/attendance/clock-in",
            json={"location_id": self.site.id, "lat": SITE_LAT + 0.01, "lng": SITE_LNG},
            headers=self._headers(self.bilal),
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "OUTSIDE_GEOFENCE")

    def test_clock_in_validation_error(self) -> None:
        response = self.client.post(
            "/api/attendance/clock-in",
            json={"lat": SITE_LAT, "lng": SITE_LNG},
            headers=self._headers(self.bilal),
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_clock_out_without_record(self) -> None:
        response = self.client.post(
            "/api/attendance/clock-out",
            json={"location_id": self.site.id, "lat": SITE_LAT, "lng": SITE_LNG},
            headers=self._headers(self.bilal),
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "NO_ATTENDANCE_RECORD")

    def test_manager_override_clock_in_for_staff(self) -> None:
        response = self.client.post(
            "/api/attendance/clock-in",
            json={
                "staff_id": self.bilal.id,
                "supervisor_id": self.supervisor.id,
                "location_id": self.site.id,
                "override": True,
            },
            headers=self._headers(self.manager),
        )
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertTrue(body["override"])
        self.assertEqual(body["attendance"]["clocked_in_by_id"], self.manager.id)

        actions = self.db.scalars(select(AuditLog.action)).all()
        self.assertIn("ATTENDANCE_OVERRIDE_CLOCK_IN", actions)

    def test_flag_and_approval_flow(self) -> None:
        attendance_id = self._clock_in_bilal()["attendance"]["id"]

        denied = self.client.put(
            f"/api/approvals/mark-overtime/{attendance_id}",
            headers=self._headers(self.bilal),
        )
        self.assertEqual(denied.status_code, 403)
        self.assertEqual(denied.json()["error"]["code"], "NOT_AUTHORIZED_TO_FLAG")

        marked = self.client.put(
            f"/api/approvals/mark-overtime/{attendance_id}",
            headers=self._headers(self.supervisor),
        )
        self.assertEqual(marked.status_code, 200, marked.text)
        self.assertEqual(marked.json()["attendance"]["overtime_approval_status"], "pending")

        pending = self.client.get("/api/approvals/pending-overtime-doubleduty", headers=self._headers(self.manager))
        self.assertEqual([row["id"] for row in pending.json()], [attendance_id])

        approved = self.client.put(
            f"/api/approvals/approve-overtime/{attendance_id}",
            headers=self._headers(self.manager),
        )
        self.assertEqual(approved.status_code, 200)
        self.assertFalse(approved.json()["already_processed"])

        rejected = self.client.put(
            f"/api/approvals/reject-overtime/{attendance_id}",
            json={"reason": "changed my mind"},
            headers=self._headers(self.manager),
        )
        self.assertEqual(rejected.status_code, 409)
        self.assertEqual(rejected.json()["error"]["code"], "APPROVAL_ALREADY_DECIDED")

    def test_leave_submit_and_decide(self) -> None:
        created = self.client.post(
            "/api/leave",
            json={"leave_type": "annual", "start_date": "2030-01-10", "end_date": "2030-01-11"},
            headers=self._headers(self.bilal),
        )
        self.assertEqual(created.status_code, 201, created.text)
        leave_id = created.json()["id"]

        pending = self.client.get("/api/approvals/pending", headers=self._headers(self.manager))
        self.assertEqual([row["id"] for row in pending.json()["leaves"]], [leave_id])

        decided = self.client.put(
            f"/api/leave/{leave_id}/status",
            json={"status": "approved"},
            headers=self._headers(self.manager),
        )
        self.assertEqual(decided.status_code, 200, decided.text)
        self.assertEqual(decided.json()["leave"]["status"], LeaveStatus.APPROVED.value)

    def test_leave_with_reversed_dates_is_rejected(self) -> None:
        response = self.client.post(
            "/api/leave",
            json={"leave_type": "annual", "start_date": "2030-01-11", "end_date": "2030-01-10"},
            headers=self._headers(self.bilal),
        )
        self.assertEqual(response.status_code, 422)

    def test_dashboard_requires_management_for_stats(self) -> None:
        self._clock_in_bilal()

        daily = self.client.get("/api/dashboard/daily", headers=self._headers(self.supervisor))
        self.assertEqual(daily.status_code, 200, daily.text)
        self.assertEqual(daily.json()["summary"]["total"], 2)
        self.assertEqual(daily.json()["summary"]["present"], 1)

        stats = self.client.get("/api/dashboard/stats-by-role-dept", headers=self._headers(self.supervisor))
        self.assertEqual(stats.status_code, 403)
        self.assertEqual(stats.json()["error"]["code"], "FORBIDDEN")

    def test_admin_routes_need_full_control(self) -> None:
        payload = {
            "full_name": "New Hire",
            "username": "NewHire",
            "password": "long-enough-password",
            "role": "Supervisor",
            "department": "sanitation",
        }
        denied = self.client.post("/api/admin/employees", json=payload, headers=self._headers(self.manager))
        self.assertEqual(denied.status_code, 403)

        created = self.client.post("/api/admin/employees", json=payload, headers=self._headers(self.ceo))
        self.assertEqual(created.status_code, 201, created.text)
        self.assertEqual(created.json()["username"], "newhire")
        self.assertEqual(created.json()["role"], "supervisor")

        duplicate = self.client.post("/api/admin/employees", json=payload, headers=self._headers(self.ceo))
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["error"]["code"], "USERNAME_TAKEN")

    def test_admin_assignment_rejects_self_supervision(self) -> None:
        response = self.client.post(
            "/api/admin/assignments",
            json={"staff_id": self.supervisor.id, "supervisor_id": self.supervisor.id, "location_id": self.site.id},
            headers=self._headers(self.ceo),
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "INVALID_ASSIGNMENT")

    def test_unknown_route_returns_not_found_envelope(self) -> None:
        response = self.client.get("/api/does-not-exist")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
