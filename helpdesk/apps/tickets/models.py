"""
Ticket ORM models.

Deleting a user nulls the ticket's creator/assignee references but removes
the comments they authored.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import String, Text, DateTime, Numeric, Enum as SAEnum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.apps.auth.models import User
from helpdesk.db.base_model import BaseModel

TICKET_STATUSES = ("open", "assigned", "in_progress", "resolved", "closed")
TICKET_PRIORITIES = ("low", "medium", "high")
ISSUE_TYPES = (
    "hardware",
    "software",
    "networking",
    "access_control",
    "email",
    "printer",
    "phone",
    "other",
)


class Ticket(BaseModel):
    """Support request filed by a user."""

    __tablename__ = "tickets"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        SAEnum(*TICKET_STATUSES, name="ticket_status_enum"),
        nullable=False,
        default="open",
        index=True,
    )
    priority: Mapped[str] = mapped_column(
        SAEnum(*TICKET_PRIORITIES, name="ticket_priority_enum"),
        nullable=False,
        default="medium",
        index=True,
    )
    issue_type: Mapped[Optional[str]] = mapped_column(
        SAEnum(*ISSUE_TYPES, name="issue_type_enum"), nullable=True
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    assigned_to: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    sla_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    cost_estimate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    creator: Mapped[Optional[User]] = relationship(foreign_keys=[user_id], lazy="selectin")
    assignee: Mapped[Optional[User]] = relationship(foreign_keys=[assigned_to], lazy="selectin")
    comments: Mapped[List["TicketComment"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TicketComment.created_at",
        lazy="raise",
    )


class TicketComment(BaseModel):
    """Comment on a ticket. Never edited after creation."""

    __tablename__ = "ticket_comments"

    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)

    ticket: Mapped[Ticket] = relationship(back_populates="comments")
    author: Mapped[User] = relationship(lazy="selectin")
