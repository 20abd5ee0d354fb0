"""
Ticket lifecycle rules.

Status is a plain enum. Any allowed actor may move a ticket to any of the
five statuses; there are no transition guards. The only derived behaviour is
listed in STATUS_SIDE_EFFECTS. `closed_at` is stamped on entering resolved
or closed and left as-is when a ticket is reopened.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from helpdesk.apps.tickets.models import (
    ISSUE_TYPES,
    TICKET_PRIORITIES,
    TICKET_STATUSES,
    Ticket,
)
from helpdesk.utils.clock import utcnow
from helpdesk.utils.exceptions import ValidationFailedException

INITIAL_STATUS = "open"
DEFAULT_PRIORITY = "medium"
ASSIGNED_STATUS = "assigned"
CLOSING_STATUSES = frozenset({"resolved", "closed"})
# Statuses the stale-ticket sweep considers still awaiting a first response
ACTIVE_STATUSES = ("open", "assigned", "in_progress")


def _stamp_closed_at(ticket: Ticket, now: datetime) -> None:
    ticket.closed_at = now


STATUS_SIDE_EFFECTS: Dict[str, Callable[[Ticket, datetime], None]] = {
    status: _stamp_closed_at for status in CLOSING_STATUSES
}


def validate_status(value: Any) -> str:
    if value not in TICKET_STATUSES:
        raise ValidationFailedException(
            f"Invalid status. Must be one of: {', '.join(TICKET_STATUSES)}"
        )
    return value


def validate_priority(value: Any) -> str:
    if value not in TICKET_PRIORITIES:
        raise ValidationFailedException(
            f"Invalid priority. Must be one of: {', '.join(TICKET_PRIORITIES)}"
        )
    return value


def validate_issue_type(value: Any) -> Optional[str]:
    if value is None:
        return None
    if value not in ISSUE_TYPES:
        raise ValidationFailedException(
            f"Invalid issue type. Must be one of: {', '.join(ISSUE_TYPES)}"
        )
    return value


def parse_assignee_id(value: Any) -> int:
    """Accept ints and integer strings ("3"); reject anything else."""
    if isinstance(value, bool):
        raise ValidationFailedException("assigned_to must be an integer user id")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationFailedException("assigned_to must be an integer user id")


def apply_status(ticket: Ticket, status: str, now: Optional[datetime] = None) -> Ticket:
    ticket.status = validate_status(status)
    effect = STATUS_SIDE_EFFECTS.get(status)
    if effect:
        effect(ticket, now or utcnow())
    return ticket


def apply_priority(ticket: Ticket, priority: str) -> Ticket:
    ticket.priority = validate_priority(priority)
    return ticket


def apply_assignment(ticket: Ticket, assignee_id: int) -> Ticket:
    """Assignment always forces status to "assigned", even from resolved."""
    ticket.assigned_to = assignee_id
    ticket.status = ASSIGNED_STATUS
    return ticket
