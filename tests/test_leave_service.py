from __future__ import annotations

import unittest
from datetime import date

from _helpers import MORNING_UTC, close_test_session, create_test_session, make_assignment, make_employee, make_location
from fieldforce.errors import (
    ApiError,
    ApprovalAlreadyDecided,
    ConflictingLeaveState,
    LeaveRequestNotFound,
    NoApproverAvailable,
    NotAuthorizedToApprove,
)
from fieldforce.models import AttendanceRecord, LeaveStatus, Role
from fieldforce.services.leaves import (
    approved_leave_covering,
    approved_leave_staff_ids,
    decide_leave,
    get_leave_or_raise,
    list_leaves_on_day,
    list_pending_leaves_for_approver,
    list_visible_leaves,
    submit_leave,
)


class LeaveServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, self.db = create_test_session()
        self.gm = make_employee(self.db, "gm", role=Role.GENERAL_MANAGER, department="sanitation")
        self.manager = make_employee(self.db, "manager", role=Role.MANAGER, department="sanitation")
        self.other_manager = make_employee(self.db, "othermanager", role=Role.MANAGER, department="sanitation")
        self.supervisor = make_employee(
            self.db,
            "supervisor",
            role=Role.SUPERVISOR,
            department="sanitation",
            manager_id=self.manager.id,
        )
        self.ali = make_employee(self.db, "ali", department="sanitation")
        self.ceo = make_employee(self.db, "ceo", role=Role.CEO, department=None)
        self.site = make_location(self.db)
        make_assignment(self.db, staff=self.ali, supervisor=self.supervisor, location=self.site)

    def tearDown(self) -> None:
        close_test_session(self.engine, self.db)

    def _submit(self, actor=None, staff=None, start=date(2026, 3, 10), end=date(2026, 3, 12), **kwargs):
        staff = staff or self.ali
        return submit_leave(
            self.db,
            actor=actor or staff,
            staff_id=staff.id,
            leave_type="annual",
            start_date=start,
            end_date=end,
            reason="Family event",
            now_utc=MORNING_UTC,
            **kwargs,
        )

    def test_staff_request_starts_pending(self) -> None:
        leave = self._submit()
        self.assertEqual(leave.status, LeaveStatus.PENDING)
        self.assertIsNone(leave.approved_by_id)
        self.assertIsNone(leave.supervisor_id)
        self.assertEqual(leave.leave_type, "annual")

    def test_reversed_dates_are_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            self._submit(start=date(2026, 3, 12), end=date(2026, 3, 10))
        self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")

    def test_overlapping_open_request_conflicts(self) -> None:
        self._submit()
        with self.assertRaises(ConflictingLeaveState):
            self._submit(start=date(2026, 3, 12), end=date(2026, 3, 14))

    def test_rejected_request_frees_the_dates(self) -> None:
        leave = self._submit()
        decide_leave(self.db, actor=self.manager, leave_id=leave.id, decision=LeaveStatus.REJECTED)
        again = self._submit()
        self.assertEqual(again.status, LeaveStatus.PENDING)

    def test_supervisor_submits_for_assigned_staff(self) -> None:
        leave = self._submit(actor=self.supervisor)
        self.assertEqual(leave.staff_id, self.ali.id)
        self.assertEqual(leave.supervisor_id, self.supervisor.id)

    def test_staff_cannot_submit_for_someone_else(self) -> None:
        peer = make_employee(self.db, "peer", department="sanitation")
        with self.assertRaises(ApiError) as ctx:
            self._submit(actor=peer)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_executive_request_is_auto_approved(self) -> None:
        leave = self._submit(staff=self.ceo)
        self.assertEqual(leave.status, LeaveStatus.APPROVED)
        self.assertEqual(leave.approved_by_id, self.ceo.id)
        self.assertIsNotNone(leave.decided_at)

    def test_executive_request_over_a_worked_day_conflicts(self) -> None:
        self.db.add(
            AttendanceRecord(
                staff_id=self.ceo.id,
                supervisor_id=self.ceo.id,
                location_id=self.site.id,
                attendance_date=date(2026, 3, 11),
                clock_in=MORNING_UTC,
            )
        )
        self.db.commit()

        with self.assertRaises(ConflictingLeaveState):
            self._submit(staff=self.ceo)

    def test_request_without_any_approver_is_refused(self) -> None:
        loner = make_employee(self.db, "loner", department="roads")
        with self.assertRaises(NoApproverAvailable):
            self._submit(staff=loner)
        self.assertEqual(list_visible_leaves(self.db, viewer=loner), [])

    def test_linked_manager_decides_once(self) -> None:
        leave = self._submit()

        first = decide_leave(self.db, actor=self.manager, leave_id=leave.id, decision=LeaveStatus.APPROVED)
        second = decide_leave(self.db, actor=self.manager, leave_id=leave.id, decision=LeaveStatus.APPROVED)

        self.assertFalse(first.already_processed)
        self.assertTrue(second.already_processed)
        self.assertEqual(second.leave.approved_by_id, self.manager.id)
        with self.assertRaises(ApprovalAlreadyDecided):
            decide_leave(self.db, actor=self.gm, leave_id=leave.id, decision=LeaveStatus.REJECTED)

    def test_unlinked_manager_cannot_decide(self) -> None:
        leave = self._submit()
        with self.assertRaises(NotAuthorizedToApprove):
            decide_leave(self.db, actor=self.other_manager, leave_id=leave.id, decision=LeaveStatus.APPROVED)
        self.assertEqual(get_leave_or_raise(self.db, leave.id).status, LeaveStatus.PENDING)

    def test_pending_is_not_a_decision(self) -> None:
        leave = self._submit()
        with self.assertRaises(ApiError) as ctx:
            decide_leave(self.db, actor=self.manager, leave_id=leave.id, decision=LeaveStatus.PENDING)
        self.assertEqual(ctx.exception.code, "INVALID_DECISION")

    def test_unknown_leave_raises(self) -> None:
        with self.assertRaises(LeaveRequestNotFound):
            decide_leave(self.db, actor=self.manager, leave_id=404, decision=LeaveStatus.APPROVED)

    def test_pending_queue_per_approver(self) -> None:
        leave = self._submit()
        self.assertEqual([row.id for row in list_pending_leaves_for_approver(self.db, approver=self.manager)], [leave.id])
        self.assertEqual([row.id for row in list_pending_leaves_for_approver(self.db, approver=self.gm)], [leave.id])
        self.assertEqual(list_pending_leaves_for_approver(self.db, approver=self.other_manager), [])
        self.assertEqual(list_pending_leaves_for_approver(self.db, approver=self.ali), [])

    def test_approved_leave_lookups(self) -> None:
        leave = self._submit()
        decide_leave(self.db, actor=self.gm, leave_id=leave.id, decision=LeaveStatus.APPROVED)

        self.assertIsNotNone(approved_leave_covering(self.db, staff_id=self.ali.id, day=date(2026, 3, 11)))
        self.assertIsNone(approved_leave_covering(self.db, staff_id=self.ali.id, day=date(2026, 3, 13)))
        self.assertEqual(approved_leave_staff_ids(self.db, day=date(2026, 3, 10)), {self.ali.id})
        self.assertEqual(approved_leave_staff_ids(self.db, day=date(2026, 3, 10), staff_ids=set()), set())

        on_day = list_leaves_on_day(self.db, viewer=self.supervisor, day=date(2026, 3, 12))
        self.assertEqual([row.id for row in on_day], [leave.id])

    def test_visibility_of_leave_list(self) -> None:
        leave = self._submit()
        self.assertEqual([row.id for row in list_visible_leaves(self.db, viewer=self.supervisor)], [leave.id])
        self.assertEqual([row.id for row in list_visible_leaves(self.db, viewer=self.manager)], [leave.id])
        self.assertEqual(list_visible_leaves(self.db, viewer=self.other_manager), [])
        self.assertEqual(
            list_visible_leaves(self.db, viewer=self.ceo, status=LeaveStatus.APPROVED),
            [],
        )


if __name__ == "__main__":
    unittest.main()
