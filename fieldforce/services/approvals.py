"""Hierarchical approval routing.

Decides who may approve a pending leave, overtime or double-duty request
given the requester's role, department and reporting links:

    staff           -> the linked manager (own or supervisor's) or a GM of the department
    supervisor      -> the linked manager, otherwise a GM of the department
    manager         -> a GM of the department
    general_manager -> ceo / super_admin
    ceo/super_admin -> nobody (self-terminal)

ceo and super_admin can approve anything except their own requests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldforce.errors import NoApproverAvailable, NotAuthorizedToApprove
from fieldforce.models import Employee, Role
from fieldforce.services.assignments import resolve_active_assignment
from fieldforce.services.roles import has_full_control, has_management_privileges, normalize_role

logger = logging.getLogger("fieldforce.approvals")

_GM_APPROVABLE_ROLES = frozenset({Role.STAFF, Role.SUPERVISOR, Role.MANAGER})


@dataclass(frozen=True)
class ApprovalSubject:
    """The requester side of an approval: who asked, and how they hang in the org graph."""

    staff_id: int
    role: Role
    department: str | None = None
    staff_manager_id: int | None = None
    supervisor_manager_id: int | None = None


@dataclass(frozen=True)
class ApprovalDecision:
    authorized: bool
    approver_role_required: str
    reason: str | None = None


def normalize_department(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized or None


def department_set(employee: Employee) -> set[str]:
    values: list[str | None] = [employee.department]
    if normalize_role(employee.role) == Role.GENERAL_MANAGER:
        values.extend(employee.departments or [])
    return {dept for dept in (normalize_department(v) for v in values) if dept is not None}


def is_same_department(actor: Employee, subject_department: str | None) -> bool:
    """Department match between an approver/viewer and a subject.

    A subject without a department stays visible to every department-scoped
    approver so that such requests do not get orphaned.
    """
    normalized_subject = normalize_department(subject_department)
    if normalized_subject is None:
        return True
    return normalized_subject in department_set(actor)


def can_approve(subject: ApprovalSubject, actor: Employee) -> bool:
    if subject.staff_id == actor.id:
        return False

    request_role = normalize_role(subject.role)
    actor_role = normalize_role(actor.role)

    if has_full_control(actor_role):
        return True

    if actor_role == Role.GENERAL_MANAGER:
        return request_role in _GM_APPROVABLE_ROLES and is_same_department(actor, subject.department)

    if actor_role == Role.MANAGER:
        if request_role == Role.SUPERVISOR:
            return subject.staff_manager_id == actor.id
        if request_role == Role.STAFF:
            return actor.id in (subject.staff_manager_id, subject.supervisor_manager_id)
        return False

    return False


def approval_authority_label(role: Role) -> str:
    normalized = normalize_role(role)
    if normalized == Role.GENERAL_MANAGER:
        return "CEO / Super Admin"
    if normalized == Role.MANAGER:
        return "General Manager"
    if normalized == Role.SUPERVISOR:
        return "Manager"
    if normalized == Role.STAFF:
        return "Manager / General Manager"
    return "No further approval"


def requires_approval(role: Role) -> bool:
    return not has_full_control(role)


def _denial_reason(subject: ApprovalSubject, actor: Employee) -> str:
    if subject.staff_id == actor.id:
        return "You cannot approve your own request."
    actor_role = normalize_role(actor.role)
    if not has_management_privileges(actor_role):
        return "Staff and supervisors cannot approve requests."
    if actor_role == Role.GENERAL_MANAGER:
        if normalize_role(subject.role) not in _GM_APPROVABLE_ROLES:
            return "General managers cannot approve requests from general managers or executives."
        return "The requester is outside your departments."
    return "The requester does not report to you."


def evaluate_approval(subject: ApprovalSubject, actor: Employee) -> ApprovalDecision:
    required = approval_authority_label(subject.role)
    if can_approve(subject, actor):
        return ApprovalDecision(authorized=True, approver_role_required=required)
    return ApprovalDecision(
        authorized=False,
        approver_role_required=required,
        reason=_denial_reason(subject, actor),
    )


def ensure_can_approve(subject: ApprovalSubject, actor: Employee) -> ApprovalDecision:
    decision = evaluate_approval(subject, actor)
    if not decision.authorized:
        logger.info(
            "approval_denied",
            extra={
                "actor_id": actor.id,
                "actor_role": normalize_role(actor.role).value,
                "subject_id": subject.staff_id,
                "subject_role": normalize_role(subject.role).value,
                "reason": decision.reason,
            },
        )
        raise NotAuthorizedToApprove(
            f"{decision.reason} Awaiting approval from: {decision.approver_role_required}."
        )
    return decision


def build_subject(
    db: Session,
    staff: Employee,
    *,
    supervisor_id: int | None = None,
) -> ApprovalSubject:
    """Collect the reporting links for a requester.

    The supervisor is the one named on the request when given, otherwise the
    supervisor of the staff member's current assignment.
    """
    supervisor: Employee | None = None
    if supervisor_id is not None and supervisor_id != staff.id:
        supervisor = db.get(Employee, supervisor_id)
    elif supervisor_id is None:
        assignment = resolve_active_assignment(db, staff_id=staff.id)
        if assignment is not None:
            supervisor = db.get(Employee, assignment.supervisor_id)

    return ApprovalSubject(
        staff_id=staff.id,
        role=normalize_role(staff.role),
        department=staff.department,
        staff_manager_id=staff.manager_id,
        supervisor_manager_id=supervisor.manager_id if supervisor is not None else None,
    )


def _approver_candidates(db: Session) -> Iterable[Employee]:
    return db.scalars(
        select(Employee)
        .where(
            Employee.is_active.is_(True),
            Employee.role.in_([Role.MANAGER, Role.GENERAL_MANAGER, Role.CEO, Role.SUPER_ADMIN]),
        )
        .order_by(Employee.id.asc())
    ).all()


def resolve_approvers(db: Session, subject: ApprovalSubject) -> list[Employee]:
    """Active employees in the tier that is expected to approve this subject.

    Executives can approve anything, but they only count as the routing target
    for general manager requests.
    """
    if not requires_approval(subject.role):
        return []
    executives_in_tier = normalize_role(subject.role) == Role.GENERAL_MANAGER
    approvers: list[Employee] = []
    for candidate in _approver_candidates(db):
        if has_full_control(candidate.role) and not executives_in_tier:
            continue
        if can_approve(subject, candidate):
            approvers.append(candidate)
    return approvers


def ensure_approver_available(db: Session, subject: ApprovalSubject) -> list[Employee]:
    approvers = resolve_approvers(db, subject)
    if not approvers:
        logger.warning(
            "approval_routing_dead_end",
            extra={
                "subject_id": subject.staff_id,
                "subject_role": normalize_role(subject.role).value,
                "department": subject.department,
            },
        )
        raise NoApproverAvailable(
            f"No {approval_authority_label(subject.role)} is available to approve this request."
        )
    return approvers
