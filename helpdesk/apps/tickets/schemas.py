"""
Ticket Pydantic schemas.

Enum-valued fields (status, priority, issue_type) are accepted as plain
strings here and checked by the lifecycle rules so a bad value is a 400
with the list of allowed values.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union
from pydantic import BaseModel, Field, field_validator

from helpdesk.apps.auth.schemas import UserSummary


# ── Request Schemas ───────────────────────────────────────────────────────────

class TicketCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    priority: Optional[str] = None
    issue_type: Optional[str] = None
    sla_category: Optional[str] = Field(default=None, max_length=100)
    due_at: Optional[datetime] = None
    department: Optional[str] = Field(default=None, max_length=100)
    cost_estimate: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)

    @field_validator("title", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class StatusUpdate(BaseModel):
    status: str


class PriorityUpdate(BaseModel):
    priority: str


class AssignRequest(BaseModel):
    assigned_to: Union[int, str, None] = None


class CommentCreate(BaseModel):
    # Emptiness is checked in the service so it reports as a 400
    body: str = ""


# ── Response Schemas ──────────────────────────────────────────────────────────

class CommentResponse(BaseModel):
    id: int
    ticket_id: int
    user_id: int
    body: str
    created_at: datetime
    author: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


class TicketResponse(BaseModel):
    id: int
    title: str
    description: str
    status: str
    priority: str
    issue_type: Optional[str] = None
    user_id: Optional[int] = None
    assigned_to: Optional[int] = None
    sla_category: Optional[str] = None
    due_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    department: Optional[str] = None
    cost_estimate: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime
    creator: Optional[UserSummary] = None
    assignee: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


class TicketDetailResponse(TicketResponse):
    comments: List[CommentResponse] = []


class TicketPage(BaseModel):
    page: int
    total_pages: int
    total: int
    page_size: int
    results: List[TicketResponse]

    model_config = {"from_attributes": True}


class DepartmentCount(BaseModel):
    department: str
    count: int


class TicketStats(BaseModel):
    total: int
    open: int
    assigned: int
    in_progress: int
    resolved: int
    closed: int
    avg_resolution_hours: int
    tickets_by_department: List[DepartmentCount]
