"""
Ticket services.

Orchestrates each ticket operation: authorize -> load -> validate -> write ->
commit -> notify. Notifications are dispatched after the commit and never
awaited, so a mail failure cannot undo or fail the change.
"""

import math
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from helpdesk.apps.auth.models import User
from helpdesk.apps.auth.policy import Action, authorize, authorize_role
from helpdesk.apps.tickets import lifecycle
from helpdesk.apps.tickets.models import TICKET_STATUSES, Ticket, TicketComment
from helpdesk.apps.tickets.schemas import TicketCreate
from helpdesk.apps.users.services import staff_emails
from helpdesk.config.settings import settings
from helpdesk.db.base_model import LIKE_ESCAPE, MAX_ID, contains_pattern
from helpdesk.core.notifier import EmailNotifier
from helpdesk.utils.clock import as_utc
from helpdesk.utils.exceptions import ResourceNotFoundException, ValidationFailedException
from helpdesk.utils.logger import get_logger
from helpdesk.utils.metrics import tickets_created, ticket_transitions

logger = get_logger(__name__)

MY_TICKETS_LIMIT = 1000


# ── Loading ───────────────────────────────────────────────────────────────────

async def load_ticket(
    session: AsyncSession, ticket_id: int, with_comments: bool = False
) -> Optional[Ticket]:
    """Ticket with creator and assignee (and optionally comments) joined."""
    if not 1 <= ticket_id <= MAX_ID:
        return None
    options = [selectinload(Ticket.creator), selectinload(Ticket.assignee)]
    if with_comments:
        options.append(selectinload(Ticket.comments).selectinload(TicketComment.author))
    query = (
        select(Ticket)
        .where(Ticket.id == ticket_id)
        .options(*options)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def _get_or_404(session: AsyncSession, ticket_id: int, with_comments: bool = False) -> Ticket:
    ticket = await load_ticket(session, ticket_id, with_comments=with_comments)
    if not ticket:
        raise ResourceNotFoundException("Ticket not found")
    return ticket


def _stakeholders(ticket: Ticket) -> List[Optional[str]]:
    """Creator and assignee emails, either may be missing."""
    return [
        ticket.creator.email if ticket.creator else None,
        ticket.assignee.email if ticket.assignee else None,
    ]


def _describe(ticket: Ticket) -> str:
    return (
        f"Ticket #{ticket.id}: {ticket.title}\n"
        f"Status: {ticket.status}\n"
        f"Priority: {ticket.priority}\n"
    )


# ── Create / read ─────────────────────────────────────────────────────────────

async def create_ticket(
    session: AsyncSession,
    actor: dict,
    data: TicketCreate,
    notifier: EmailNotifier,
) -> Ticket:
    """
    File a new ticket as the actor.

    Priority defaults to medium. The creator gets a confirmation and all
    IT staff and managers get a new-ticket broadcast.
    """
    authorize(Action.CREATE_TICKET, actor["role"], actor["id"])

    priority = (
        lifecycle.validate_priority(data.priority)
        if data.priority is not None
        else lifecycle.DEFAULT_PRIORITY
    )
    issue_type = lifecycle.validate_issue_type(data.issue_type)

    ticket = await Ticket.create(
        db=session,
        title=data.title,
        description=data.description,
        status=lifecycle.INITIAL_STATUS,
        priority=priority,
        issue_type=issue_type,
        sla_category=data.sla_category,
        due_at=data.due_at,
        department=data.department,
        cost_estimate=data.cost_estimate,
        user_id=actor["id"],
    )
    tickets_created.labels(priority=priority).inc()
    logger.info(
        "Ticket created",
        extra={"ticket_id": ticket.id, "user_id": actor["id"], "priority": priority},
    )

    ticket = await _get_or_404(session, ticket.id)
    notifier.dispatch(
        [actor["email"]],
        f"Your ticket #{ticket.id} has been created",
        f"Thanks {actor['name']}, we have received your request.\n\n{_describe(ticket)}",
    )
    notifier.dispatch(
        await staff_emails(session),
        f"New Ticket #{ticket.id}: {ticket.title}",
        f"A new ticket was filed by {actor['name']} <{actor['email']}>.\n\n{_describe(ticket)}",
    )
    return ticket


async def get_ticket(session: AsyncSession, actor: dict, ticket_id: int) -> Ticket:
    """Ticket with comments. Employees may only see their own."""
    authorize_role(Action.VIEW_TICKET, actor["role"])
    ticket = await _get_or_404(session, ticket_id, with_comments=True)
    authorize(Action.VIEW_TICKET, actor["role"], actor["id"], ticket_owner_id=ticket.user_id)
    return ticket


async def list_my_tickets(session: AsyncSession, actor: dict) -> List[Ticket]:
    """The actor's own tickets, newest first, at most MY_TICKETS_LIMIT of them."""
    authorize(Action.LIST_MY_TICKETS, actor["role"], actor["id"])
    return await Ticket.find_many(
        session,
        filters={"user_id": actor["id"]},
        limit=MY_TICKETS_LIMIT,
        options=[selectinload(Ticket.creator), selectinload(Ticket.assignee)],
    )


async def list_tickets(
    session: AsyncSession,
    actor: dict,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    issue_type: Optional[str] = None,
    department: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Filtered, paginated ticket list, newest first.

    Filters combine with AND; `q` matches title OR description, case-insensitive.
    `limit` is capped at TICKET_PAGE_SIZE_MAX.
    """
    authorize_role(Action.LIST_TICKETS, actor["role"])

    filters: Dict[str, Any] = {}
    if status:
        filters["status"] = lifecycle.validate_status(status)
    if priority:
        filters["priority"] = lifecycle.validate_priority(priority)
    if issue_type:
        filters["issue_type"] = lifecycle.validate_issue_type(issue_type)
    if department:
        filters["department"] = department
    conditions = []
    if q and q.strip():
        pattern = contains_pattern(q.strip())
        conditions.append(
            or_(
                Ticket.title.ilike(pattern, escape=LIKE_ESCAPE),
                Ticket.description.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )

    result = await Ticket.paginate(
        session,
        page=page,
        per_page=limit or settings.TICKET_PAGE_SIZE_DEFAULT,
        max_per_page=settings.TICKET_PAGE_SIZE_MAX,
        filters=filters,
        conditions=conditions,
        options=[selectinload(Ticket.creator), selectinload(Ticket.assignee)],
    )
    return {
        "page": result["page"],
        "total_pages": result["pages"],
        "total": result["total"],
        "page_size": result["per_page"],
        "results": result["items"],
    }


# ── Transitions ───────────────────────────────────────────────────────────────

async def update_status(
    session: AsyncSession,
    actor: dict,
    ticket_id: int,
    status: Any,
    notifier: EmailNotifier,
) -> Ticket:
    """Any of the five statuses, from any status. Resolved/closed stamp closed_at."""
    authorize_role(Action.UPDATE_STATUS, actor["role"])
    status = lifecycle.validate_status(status)
    ticket = await _get_or_404(session, ticket_id)

    previous = ticket.status
    lifecycle.apply_status(ticket, status)
    await ticket.save(session)
    ticket_transitions.labels(field="status", value=status).inc()
    logger.info(
        "Ticket status changed",
        extra={"ticket_id": ticket_id, "from": previous, "to": status, "actor_id": actor["id"]},
    )

    ticket = await _get_or_404(session, ticket_id)
    notifier.dispatch(
        _stakeholders(ticket),
        f"Ticket #{ticket.id} status changed to {status}",
        f"{actor['name']} changed the status from {previous} to {status}.\n\n{_describe(ticket)}",
    )
    return ticket


async def update_priority(
    session: AsyncSession,
    actor: dict,
    ticket_id: int,
    priority: Any,
    notifier: EmailNotifier,
) -> Ticket:
    authorize_role(Action.UPDATE_PRIORITY, actor["role"])
    priority = lifecycle.validate_priority(priority)
    ticket = await _get_or_404(session, ticket_id)

    lifecycle.apply_priority(ticket, priority)
    await ticket.save(session)
    ticket_transitions.labels(field="priority", value=priority).inc()
    logger.info("Ticket priority changed", extra={"ticket_id": ticket_id, "to": priority})

    ticket = await _get_or_404(session, ticket_id)
    notifier.dispatch(
        _stakeholders(ticket),
        f"Ticket #{ticket.id} priority updated to {priority}",
        f"{actor['name']} set the priority to {priority}.\n\n{_describe(ticket)}",
    )
    return ticket


async def assign_ticket(
    session: AsyncSession,
    actor: dict,
    ticket_id: int,
    assigned_to: Any,
    notifier: EmailNotifier,
) -> Ticket:
    """
    Assign to an existing user. Status is forced to "assigned" whatever it
    was before, resolved and closed included.
    """
    authorize_role(Action.ASSIGN_TICKET, actor["role"])
    assignee_id = lifecycle.parse_assignee_id(assigned_to)
    ticket = await _get_or_404(session, ticket_id)

    assignee = await User.get_by_id(session, assignee_id)
    if not assignee:
        raise ResourceNotFoundException("Assignee not found")

    lifecycle.apply_assignment(ticket, assignee.id)
    await ticket.save(session)
    ticket_transitions.labels(field="assigned_to", value="assigned").inc()
    logger.info("Ticket assigned", extra={"ticket_id": ticket_id, "assignee_id": assignee.id})

    ticket = await _get_or_404(session, ticket_id)
    notifier.dispatch(
        _stakeholders(ticket),
        f"Ticket #{ticket.id} assigned to {assignee.name}",
        f"{actor['name']} assigned this ticket to {assignee.name}.\n\n{_describe(ticket)}",
    )
    return ticket


async def delete_ticket(session: AsyncSession, actor: dict, ticket_id: int) -> None:
    """Hard delete, comments included."""
    authorize_role(Action.DELETE_TICKET, actor["role"])
    ticket = await _get_or_404(session, ticket_id)

    await session.execute(delete(TicketComment).where(TicketComment.ticket_id == ticket_id))
    await ticket.delete(session)
    logger.info("Ticket deleted", extra={"ticket_id": ticket_id, "actor_id": actor["id"]})


# ── Comments ──────────────────────────────────────────────────────────────────

async def add_comment(
    session: AsyncSession,
    actor: dict,
    ticket_id: int,
    body: Optional[str],
    notifier: EmailNotifier,
) -> TicketComment:
    """Creator and assignee are notified; the commenter is not, unless one of those."""
    body = (body or "").strip()
    if not body:
        raise ValidationFailedException("Comment body is required")

    authorize_role(Action.COMMENT_TICKET, actor["role"])
    ticket = await _get_or_404(session, ticket_id)
    authorize(Action.COMMENT_TICKET, actor["role"], actor["id"], ticket_owner_id=ticket.user_id)

    comment = await TicketComment.create(
        db=session, ticket_id=ticket.id, user_id=actor["id"], body=body
    )
    logger.info("Comment added", extra={"ticket_id": ticket_id, "comment_id": comment.id})

    notifier.dispatch(
        _stakeholders(ticket),
        f"New comment on Ticket #{ticket.id}",
        f"{actor['name']} commented:\n\n{body}\n\n{_describe(ticket)}",
    )
    return await _load_comment(session, comment.id)


async def _load_comment(session: AsyncSession, comment_id: int) -> TicketComment:
    result = await session.execute(
        select(TicketComment)
        .where(TicketComment.id == comment_id)
        .options(selectinload(TicketComment.author))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def list_comments(session: AsyncSession, actor: dict, ticket_id: int) -> List[TicketComment]:
    """Oldest first."""
    authorize_role(Action.COMMENT_TICKET, actor["role"])
    ticket = await _get_or_404(session, ticket_id)
    authorize(Action.COMMENT_TICKET, actor["role"], actor["id"], ticket_owner_id=ticket.user_id)

    return await TicketComment.find_many(
        session,
        filters={"ticket_id": ticket_id},
        order_by="created_at",
        order_desc=False,
        limit=1000,
        options=[selectinload(TicketComment.author)],
    )


# ── Stats ─────────────────────────────────────────────────────────────────────

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


async def get_stats(session: AsyncSession, actor: dict) -> Dict[str, Any]:
    """
    Counts per status and department, and mean resolution time in whole
    hours over resolved tickets (0 when there are none).
    """
    authorize_role(Action.VIEW_STATS, actor["role"])

    total = await Ticket.count(session)
    by_status = await Ticket.count_by(session, "status")

    by_department: Dict[str, int] = {}
    for department, count in (await Ticket.count_by(session, "department")).items():
        label = department or "Unknown"
        by_department[label] = by_department.get(label, 0) + count

    result = await session.execute(
        select(Ticket.created_at, Ticket.closed_at).where(
            Ticket.status == "resolved", Ticket.closed_at.is_not(None)
        )
    )
    durations = [
        (as_utc(closed_at) - as_utc(created_at)).total_seconds() / 3600
        for created_at, closed_at in result.all()
    ]
    avg_hours = round_half_up(sum(durations) / len(durations)) if durations else 0

    stats: Dict[str, Any] = {"total": total}
    stats.update({status: by_status.get(status, 0) for status in TICKET_STATUSES})
    stats["avg_resolution_hours"] = avg_hours
    stats["tickets_by_department"] = [
        {"department": department, "count": count}
        for department, count in sorted(by_department.items(), key=lambda item: -item[1])
    ]
    return stats
