from __future__ import annotations

from typing import Any

from fieldforce.models import Role

_ROLE_RANK: dict[Role, int] = {
    Role.STAFF: 0,
    Role.SUPERVISOR: 1,
    Role.MANAGER: 2,
    Role.GENERAL_MANAGER: 3,
    # ceo and super_admin are both maximal.
    Role.CEO: 4,
    Role.SUPER_ADMIN: 4,
}

_ROLE_LABELS: dict[Role, str] = {
    Role.STAFF: "Staff",
    Role.SUPERVISOR: "Supervisor",
    Role.MANAGER: "Manager",
    Role.GENERAL_MANAGER: "General Manager",
    Role.CEO: "Chief Executive Officer",
    Role.SUPER_ADMIN: "Super Admin",
}


def normalize_role(value: Any) -> Role:
    """Map an incoming role value to the closed Role enum.

    Unknown or missing values fall back to the least privileged role.
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return Role.STAFF
    normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return Role(normalized)
    except ValueError:
        return Role.STAFF


def rank(role: Role) -> int:
    return _ROLE_RANK[normalize_role(role)]


def has_management_privileges(role: Role) -> bool:
    return rank(role) >= _ROLE_RANK[Role.MANAGER]


def has_full_control(role: Role) -> bool:
    return normalize_role(role) in (Role.CEO, Role.SUPER_ADMIN)


def has_field_leadership_privileges(role: Role) -> bool:
    return rank(role) >= _ROLE_RANK[Role.SUPERVISOR]


def outranks(role: Role, other: Role) -> bool:
    return rank(role) > rank(other)


def role_label(role: Role) -> str:
    return _ROLE_LABELS.get(normalize_role(role), "Unknown")
