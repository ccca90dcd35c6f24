from __future__ import annotations

import unittest

from fieldforce.models import Role
from fieldforce.services.roles import (
    has_field_leadership_privileges,
    has_full_control,
    has_management_privileges,
    normalize_role,
    outranks,
    rank,
    role_label,
)


class RoleHierarchyTests(unittest.TestCase):
    def test_rank_is_ordered_from_staff_to_executives(self) -> None:
        ordered = [Role.STAFF, Role.SUPERVISOR, Role.MANAGER, Role.GENERAL_MANAGER]
        for lower, higher in zip(ordered, ordered[1:]):
            self.assertLess(rank(lower), rank(higher))
        self.assertLess(rank(Role.GENERAL_MANAGER), rank(Role.CEO))
        self.assertEqual(rank(Role.CEO), rank(Role.SUPER_ADMIN))

    def test_executives_do_not_outrank_each_other(self) -> None:
        self.assertFalse(outranks(Role.CEO, Role.SUPER_ADMIN))
        self.assertFalse(outranks(Role.SUPER_ADMIN, Role.CEO))
        self.assertTrue(outranks(Role.CEO, Role.GENERAL_MANAGER))

    def test_privilege_predicates(self) -> None:
        self.assertFalse(has_management_privileges(Role.SUPERVISOR))
        self.assertTrue(has_management_privileges(Role.MANAGER))
        self.assertTrue(has_management_privileges(Role.SUPER_ADMIN))

        self.assertFalse(has_full_control(Role.GENERAL_MANAGER))
        self.assertTrue(has_full_control(Role.CEO))
        self.assertTrue(has_full_control(Role.SUPER_ADMIN))

        self.assertFalse(has_field_leadership_privileges(Role.STAFF))
        self.assertTrue(has_field_leadership_privileges(Role.SUPERVISOR))

    def test_normalize_role_accepts_loose_spelling(self) -> None:
        self.assertEqual(normalize_role("  General-Manager "), Role.GENERAL_MANAGER)
        self.assertEqual(normalize_role("super admin"), Role.SUPER_ADMIN)
        self.assertEqual(normalize_role("CEO"), Role.CEO)
        self.assertEqual(normalize_role(Role.MANAGER), Role.MANAGER)

    def test_unknown_role_falls_back_to_staff(self) -> None:
        self.assertEqual(normalize_role("janitor"), Role.STAFF)
        self.assertEqual(normalize_role(None), Role.STAFF)
        self.assertEqual(normalize_role(42), Role.STAFF)
        self.assertFalse(has_management_privileges("owner"))  # type: ignore[arg-type]

    def test_role_label(self) -> None:
        self.assertEqual(role_label(Role.GENERAL_MANAGER), "General Manager")
        self.assertEqual(role_label("supervisor"), "Supervisor")  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
