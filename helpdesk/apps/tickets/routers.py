"""
Tickets router.

Entry/exit only — no logic here. Calls ticket and SLA services.
Static paths (/my, /stats, /sla/breaches) are declared before /{ticket_id}.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.apps.auth.services import verify_user
from helpdesk.apps.sla.services import get_sla_breaches
from helpdesk.apps.tickets import services
from helpdesk.apps.tickets.schemas import (
    AssignRequest,
    CommentCreate,
    CommentResponse,
    PriorityUpdate,
    StatusUpdate,
    TicketCreate,
    TicketDetailResponse,
    TicketPage,
    TicketResponse,
    TicketStats,
)
from helpdesk.core.dependencies import get_notifier
from helpdesk.core.notifier import EmailNotifier
from helpdesk.db.base_model import MAX_PAGE
from helpdesk.db.session import get_session
from helpdesk.utils.responses import success_response

router = APIRouter(prefix="/api/v1/tickets", tags=["Tickets"])


def _ticket(ticket) -> dict:
    return TicketResponse.model_validate(ticket).model_dump()


@router.post("", status_code=201)
async def create(
    data: TicketCreate,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    notifier: EmailNotifier = Depends(get_notifier),
):
    ticket = await services.create_ticket(session=session, actor=actor, data=data, notifier=notifier)
    return success_response(status_code=201, message="Ticket created", data=_ticket(ticket))


@router.get("/my")
async def my_tickets(
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """Tickets the caller created."""
    tickets = await services.list_my_tickets(session=session, actor=actor)
    return success_response(
        status_code=200, message="Your tickets", data=[_ticket(t) for t in tickets]
    )


@router.get("")
async def list_all(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    issue_type: Optional[str] = None,
    department: Optional[str] = None,
    q: Optional[str] = None,
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(20, ge=1),
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """IT staff and managers. Filters AND together; `q` searches title or description."""
    result = await services.list_tickets(
        session=session,
        actor=actor,
        status=status,
        priority=priority,
        issue_type=issue_type,
        department=department,
        q=q,
        page=page,
        limit=limit,
    )
    return success_response(
        status_code=200, message="Tickets", data=TicketPage.model_validate(result).model_dump()
    )


@router.get("/stats")
async def stats(
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    data = await services.get_stats(session=session, actor=actor)
    return success_response(
        status_code=200, message="Ticket statistics", data=TicketStats.model_validate(data).model_dump()
    )


@router.get("/sla/breaches")
async def sla_breaches(
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """Open tickets past their due date."""
    tickets = await get_sla_breaches(session=session, actor=actor)
    return success_response(
        status_code=200, message="SLA breaches", data=[_ticket(t) for t in tickets]
    )


@router.get("/{ticket_id}")
async def detail(
    ticket_id: int,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    ticket = await services.get_ticket(session=session, actor=actor, ticket_id=ticket_id)
    return success_response(
        status_code=200,
        message="Ticket",
        data=TicketDetailResponse.model_validate(ticket).model_dump(),
    )


@router.put("/{ticket_id}/status")
async def set_status(
    ticket_id: int,
    data: StatusUpdate,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    notifier: EmailNotifier = Depends(get_notifier),
):
    ticket = await services.update_status(
        session=session, actor=actor, ticket_id=ticket_id, status=data.status, notifier=notifier
    )
    return success_response(status_code=200, message="Ticket status updated", data=_ticket(ticket))


@router.put("/{ticket_id}/priority")
async def set_priority(
    ticket_id: int,
    data: PriorityUpdate,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    notifier: EmailNotifier = Depends(get_notifier),
):
    ticket = await services.update_priority(
        session=session, actor=actor, ticket_id=ticket_id, priority=data.priority, notifier=notifier
    )
    return success_response(status_code=200, message="Ticket priority updated", data=_ticket(ticket))


@router.put("/{ticket_id}/assign")
async def assign(
    ticket_id: int,
    data: AssignRequest,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    notifier: EmailNotifier = Depends(get_notifier),
):
    ticket = await services.assign_ticket(
        session=session,
        actor=actor,
        ticket_id=ticket_id,
        assigned_to=data.assigned_to,
        notifier=notifier,
    )
    return success_response(status_code=200, message="Ticket assigned", data=_ticket(ticket))


@router.delete("/{ticket_id}")
async def remove(
    ticket_id: int,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    await services.delete_ticket(session=session, actor=actor, ticket_id=ticket_id)
    return success_response(status_code=200, message="Ticket deleted")


@router.get("/{ticket_id}/comments")
async def comments(
    ticket_id: int,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    items = await services.list_comments(session=session, actor=actor, ticket_id=ticket_id)
    return success_response(
        status_code=200,
        message="Comments",
        data=[CommentResponse.model_validate(c).model_dump() for c in items],
    )


@router.post("/{ticket_id}/comments", status_code=201)
async def comment(
    ticket_id: int,
    data: CommentCreate,
    actor: dict = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    notifier: EmailNotifier = Depends(get_notifier),
):
    created = await services.add_comment(
        session=session, actor=actor, ticket_id=ticket_id, body=data.body, notifier=notifier
    )
    return success_response(
        status_code=201,
        message="Comment added",
        data=CommentResponse.model_validate(created).model_dump(),
    )
