from __future__ import annotations

import unittest

from _helpers import close_test_session, create_test_session, make_assignment, make_employee, make_location
from fieldforce.errors import NoApproverAvailable, NotAuthorizedToApprove
from fieldforce.models import Employee, Role
from fieldforce.services.approvals import (
    ApprovalSubject,
    approval_authority_label,
    build_subject,
    can_approve,
    ensure_approver_available,
    ensure_can_approve,
    evaluate_approval,
    is_same_department,
    requires_approval,
    resolve_approvers,
)


def _employee(
    employee_id: int,
    role: Role,
    *,
    department: str | None = "sanitation",
    departments: list[str] | None = None,
) -> Employee:
    return Employee(
        id=employee_id,
        full_name=f"Employee {employee_id}",
        username=f"employee{employee_id}",
        role=role,
        department=department,
        departments=departments or [],
    )


class CanApproveTests(unittest.TestCase):
    def test_nobody_approves_their_own_request(self) -> None:
        for role in Role:
            actor = _employee(7, role)
            subject = ApprovalSubject(staff_id=7, role=role, department="sanitation", staff_manager_id=7)
            self.assertFalse(can_approve(subject, actor), role)

    def test_linked_manager_scenario(self) -> None:
        ali = ApprovalSubject(staff_id=1, role=Role.STAFF, department="sanitation", staff_manager_id=10)
        m1 = _employee(10, Role.MANAGER)
        m2 = _employee(11, Role.MANAGER)
        g1 = _employee(20, Role.GENERAL_MANAGER, department=None, departments=["sanitation", "water_supply"])

        self.assertTrue(can_approve(ali, m1))
        self.assertFalse(can_approve(ali, m2))
        self.assertTrue(can_approve(ali, g1))

    def test_manager_can_approve_via_supervisor_link(self) -> None:
        subject = ApprovalSubject(
            staff_id=1,
            role=Role.STAFF,
            department="sanitation",
            staff_manager_id=None,
            supervisor_manager_id=12,
        )
        self.assertTrue(can_approve(subject, _employee(12, Role.MANAGER)))

    def test_manager_approves_supervisor_only_through_direct_link(self) -> None:
        subject = ApprovalSubject(
            staff_id=2,
            role=Role.SUPERVISOR,
            department="sanitation",
            staff_manager_id=None,
            supervisor_manager_id=12,
        )
        self.assertFalse(can_approve(subject, _employee(12, Role.MANAGER)))

        linked = ApprovalSubject(staff_id=2, role=Role.SUPERVISOR, department="sanitation", staff_manager_id=12)
        self.assertTrue(can_approve(linked, _employee(12, Role.MANAGER)))

    def test_managers_never_approve_peers_or_above(self) -> None:
        manager = _employee(12, Role.MANAGER)
        for role in (Role.MANAGER, Role.GENERAL_MANAGER, Role.CEO, Role.SUPER_ADMIN):
            subject = ApprovalSubject(staff_id=3, role=role, department="sanitation", staff_manager_id=12)
            self.assertFalse(can_approve(subject, manager), role)

    def test_general_manager_scope(self) -> None:
        gm = _employee(20, Role.GENERAL_MANAGER, department="sanitation", departments=["water_supply"])
        for role in (Role.STAFF, Role.SUPERVISOR, Role.MANAGER):
            self.assertTrue(can_approve(ApprovalSubject(staff_id=3, role=role, department="Water_Supply "), gm))
            self.assertFalse(can_approve(ApprovalSubject(staff_id=3, role=role, department="roads"), gm))
        for role in (Role.GENERAL_MANAGER, Role.CEO, Role.SUPER_ADMIN):
            self.assertFalse(can_approve(ApprovalSubject(staff_id=3, role=role, department="sanitation"), gm))

    def test_missing_department_stays_approvable(self) -> None:
        gm = _employee(20, Role.GENERAL_MANAGER, department="roads")
        subject = ApprovalSubject(staff_id=3, role=Role.STAFF, department=None)
        self.assertTrue(is_same_department(gm, None))
        self.assertTrue(can_approve(subject, gm))

    def test_executives_approve_anyone_else(self) -> None:
        for executive_role in (Role.CEO, Role.SUPER_ADMIN):
            executive = _employee(30, executive_role, department=None)
            for role in Role:
                subject = ApprovalSubject(staff_id=4, role=role, department="anything")
                self.assertTrue(can_approve(subject, executive), (executive_role, role))

    def test_staff_and_supervisors_cannot_approve(self) -> None:
        subject = ApprovalSubject(staff_id=4, role=Role.STAFF, department="sanitation", staff_manager_id=5)
        self.assertFalse(can_approve(subject, _employee(5, Role.STAFF)))
        self.assertFalse(can_approve(subject, _employee(5, Role.SUPERVISOR)))

    def test_denial_carries_required_authority(self) -> None:
        subject = ApprovalSubject(staff_id=4, role=Role.GENERAL_MANAGER, department="sanitation")
        decision = evaluate_approval(subject, _employee(20, Role.GENERAL_MANAGER))
        self.assertFalse(decision.authorized)
        self.assertEqual(decision.approver_role_required, "CEO / Super Admin")

        with self.assertRaises(NotAuthorizedToApprove) as ctx:
            ensure_can_approve(subject, _employee(20, Role.GENERAL_MANAGER))
        self.assertIn("CEO / Super Admin", ctx.exception.message)

    def test_labels_and_terminal_roles(self) -> None:
        self.assertEqual(approval_authority_label(Role.MANAGER), "General Manager")
        self.assertEqual(approval_authority_label(Role.SUPERVISOR), "Manager")
        self.assertFalse(requires_approval(Role.CEO))
        self.assertFalse(requires_approval(Role.SUPER_ADMIN))
        self.assertTrue(requires_approval(Role.GENERAL_MANAGER))


class ApproverRoutingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, self.db = create_test_session()

    def tearDown(self) -> None:
        close_test_session(self.engine, self.db)

    def test_build_subject_uses_assignment_supervisor_manager(self) -> None:
        manager = make_employee(self.db, "manager", role=Role.MANAGER)
        supervisor = make_employee(self.db, "supervisor", role=Role.SUPERVISOR, manager_id=manager.id)
        staff = make_employee(self.db, "staff")
        make_assignment(self.db, staff=staff, supervisor=supervisor, location=make_location(self.db))

        subject = build_subject(self.db, staff)

        self.assertIsNone(subject.staff_manager_id)
        self.assertEqual(subject.supervisor_manager_id, manager.id)
        self.assertEqual([e.id for e in resolve_approvers(self.db, subject)], [manager.id])

    def test_gm_request_routes_to_executives_only(self) -> None:
        make_employee(self.db, "othergm", role=Role.GENERAL_MANAGER)
        ceo = make_employee(self.db, "ceo", role=Role.CEO, department=None)
        gm = make_employee(self.db, "gm", role=Role.GENERAL_MANAGER)

        approvers = resolve_approvers(self.db, build_subject(self.db, gm))

        self.assertEqual([e.id for e in approvers], [ceo.id])

    def test_staff_request_does_not_route_to_executives(self) -> None:
        make_employee(self.db, "ceo", role=Role.CEO, department=None)
        gm = make_employee(self.db, "gm", role=Role.GENERAL_MANAGER)
        staff = make_employee(self.db, "staff")

        approvers = resolve_approvers(self.db, build_subject(self.db, staff))

        self.assertEqual([e.id for e in approvers], [gm.id])

    def test_dead_end_raises_no_approver_available(self) -> None:
        make_employee(self.db, "gm", role=Role.GENERAL_MANAGER, department="roads")
        make_employee(self.db, "offduty", role=Role.GENERAL_MANAGER, is_active=False)
        staff = make_employee(self.db, "staff", department="sanitation")

        with self.assertRaises(NoApproverAvailable) as ctx:
            ensure_approver_available(self.db, build_subject(self.db, staff))
        self.assertEqual(ctx.exception.status_code, 409)

    def test_executive_requests_need_no_approver(self) -> None:
        ceo = make_employee(self.db, "ceo", role=Role.CEO)
        self.assertEqual(resolve_approvers(self.db, build_subject(self.db, ceo)), [])


if __name__ == "__main__":
    unittest.main()
