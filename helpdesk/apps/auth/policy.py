"""
Authorization policy.

Single place that answers "may this actor do this?". Every ticket and user
operation goes through `authorize`; nothing else branches on role.

Decisions depend only on the arguments: actor role and id, the ticket owner
for ticket-scoped reads, and the target user's id and role for user
management. Callers evaluate role-only gates before loading the target so a
missing target reports 404 while an existing-but-forbidden one reports 403.
"""

from enum import Enum
from typing import Optional

from helpdesk.utils.exceptions import PermissionDeniedException

EMPLOYEE = "employee"
IT_STAFF = "it_staff"
MANAGER = "manager"

ALL_ROLES = frozenset({EMPLOYEE, IT_STAFF, MANAGER})
STAFF = frozenset({IT_STAFF, MANAGER})
MANAGERS = frozenset({MANAGER})


class Action(str, Enum):
    CREATE_TICKET = "create_ticket"
    LIST_MY_TICKETS = "list_my_tickets"
    LIST_TICKETS = "list_tickets"
    VIEW_STATS = "view_stats"
    VIEW_SLA_BREACHES = "view_sla_breaches"
    VIEW_TICKET = "view_ticket"
    COMMENT_TICKET = "comment_ticket"
    UPDATE_STATUS = "update_status"
    UPDATE_PRIORITY = "update_priority"
    ASSIGN_TICKET = "assign_ticket"
    DELETE_TICKET = "delete_ticket"

    LIST_USERS = "list_users"
    VIEW_USER = "view_user"
    VIEW_USER_STATS = "view_user_stats"
    CREATE_USER = "create_user"
    UPDATE_USER_ROLE = "update_user_role"
    UPDATE_USER_STATUS = "update_user_status"
    UPDATE_USER_DEPARTMENT = "update_user_department"
    DELETE_USER = "delete_user"
    RESEND_USER_VERIFICATION = "resend_user_verification"


# Actions decided by role alone
ROLE_RULES = {
    Action.CREATE_TICKET: ALL_ROLES,
    Action.LIST_MY_TICKETS: ALL_ROLES,
    Action.LIST_TICKETS: STAFF,
    Action.VIEW_STATS: STAFF,
    Action.VIEW_SLA_BREACHES: STAFF,
    Action.UPDATE_STATUS: STAFF,
    Action.UPDATE_PRIORITY: STAFF,
    Action.ASSIGN_TICKET: STAFF,
    Action.DELETE_TICKET: MANAGERS,
    Action.LIST_USERS: STAFF,
    Action.VIEW_USER: STAFF,
    Action.VIEW_USER_STATS: MANAGERS,
    Action.CREATE_USER: STAFF,
    # Gates below are refined by target checks in `is_allowed`
    Action.VIEW_TICKET: ALL_ROLES,
    Action.COMMENT_TICKET: ALL_ROLES,
    Action.UPDATE_USER_ROLE: MANAGERS,
    Action.UPDATE_USER_STATUS: STAFF,
    Action.UPDATE_USER_DEPARTMENT: STAFF,
    Action.DELETE_USER: MANAGERS,
    Action.RESEND_USER_VERIFICATION: STAFF,
}

TICKET_OWNER_SCOPED = frozenset({Action.VIEW_TICKET, Action.COMMENT_TICKET})
NO_SELF_ACTION = frozenset({Action.UPDATE_USER_ROLE, Action.UPDATE_USER_STATUS, Action.DELETE_USER})
IT_STAFF_NOT_ON_MANAGERS = frozenset(
    {Action.UPDATE_USER_STATUS, Action.UPDATE_USER_DEPARTMENT, Action.RESEND_USER_VERIFICATION}
)

DENIAL_MESSAGES = {
    Action.UPDATE_USER_ROLE: "You cannot change your own role.",
    Action.UPDATE_USER_STATUS: "You cannot change your own status.",
    Action.DELETE_USER: "You cannot delete your own account.",
}


def role_allows(action: Action, actor_role: str) -> bool:
    """Role-only part of the decision; safe to call before loading a target."""
    return actor_role in ROLE_RULES.get(action, frozenset())


def is_allowed(
    action: Action,
    actor_role: str,
    actor_id: Optional[int] = None,
    *,
    ticket_owner_id: Optional[int] = None,
    target_user_id: Optional[int] = None,
    target_role: Optional[str] = None,
) -> bool:
    """
    Full decision for `action`.

    Ticket-scoped reads need `ticket_owner_id`; user management needs
    `target_user_id` and `target_role`.
    """
    if not role_allows(action, actor_role):
        return False

    if action in TICKET_OWNER_SCOPED and actor_role == EMPLOYEE:
        return actor_id is not None and ticket_owner_id == actor_id

    if action in NO_SELF_ACTION and target_user_id is not None and target_user_id == actor_id:
        return False

    if action in IT_STAFF_NOT_ON_MANAGERS and actor_role == IT_STAFF:
        return target_role != MANAGER

    return True


def authorize(
    action: Action,
    actor_role: str,
    actor_id: Optional[int] = None,
    **target,
) -> None:
    """Raise PermissionDeniedException unless `is_allowed`."""
    if is_allowed(action, actor_role, actor_id, **target):
        return
    if role_allows(action, actor_role) and target.get("target_user_id") == actor_id:
        raise PermissionDeniedException(
            DENIAL_MESSAGES.get(action, "You do not have the required permissions for this action.")
        )
    raise PermissionDeniedException()


def authorize_role(action: Action, actor_role: str) -> None:
    """Role-only gate, for use before the target has been looked up."""
    if not role_allows(action, actor_role):
        raise PermissionDeniedException()


def effective_new_user_role(actor_role: str, requested_role: Optional[str]) -> str:
    """IT staff can only provision employees, whatever they asked for."""
    if actor_role == IT_STAFF:
        return EMPLOYEE
    return requested_role or EMPLOYEE
