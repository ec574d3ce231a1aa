"""
Tickets Application DTOs
========================

Pydantic models for request/response validation.

Responses populate users (assignee, reply authors) as compact summaries;
`createdBy` stays an id.
"""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import Field

from ticketmate.accounts.application.dto import CamelModel, UserSummary


# ========== Request DTOs ==========

class CreateTicketRequest(CamelModel):
    """Request model for ticket submission."""
    title: str = Field(..., description="Short summary of the problem")
    description: str = Field(..., description="Full problem description")


class ReplyRequest(CamelModel):
    message: str = Field(..., description="Reply text")
    status: Optional[str] = Field(default=None, description="Optional new status")


class StatusRequest(CamelModel):
    status: Optional[str] = None


class UpdateTicketRequest(CamelModel):
    """
    General update. Only fields present in the body are applied;
    `createdBy` is not accepted.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    helpful_notes: Optional[str] = None
    related_skills: Optional[List[str]] = None
    reply_suggestions: Optional[List[str]] = None
    assigned_to: Optional[UUID] = None
    deadline: Optional[datetime] = None


# ========== Response DTOs ==========

def _summary(user: Any) -> Optional[UserSummary]:
    return UserSummary.model_validate(user) if user is not None else None


class ReplyResponse(CamelModel):
    id: UUID
    message: str
    author: Optional[UserSummary] = None
    created_at: datetime

    @classmethod
    def from_model(cls, reply: Any) -> "ReplyResponse":
        return cls(
            id=reply.id,
            message=reply.message,
            author=_summary(reply.author),
            created_at=reply.created_at,
        )


class TicketResponse(CamelModel):
    """Full ticket view."""
    id: UUID
    title: str
    description: str
    status: str
    priority: Optional[str] = None
    helpful_notes: Optional[str] = None
    related_skills: List[str] = Field(default_factory=list)
    reply_suggestions: List[str] = Field(default_factory=list)
    created_by: UUID
    assigned_to: Optional[UserSummary] = None
    replies: List[ReplyResponse] = Field(default_factory=list)
    deadline: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, ticket: Any) -> "TicketResponse":
        return cls(
            id=ticket.id,
            title=ticket.title,
            description=ticket.description,
            status=ticket.status,
            priority=ticket.priority,
            helpful_notes=ticket.helpful_notes,
            related_skills=list(ticket.related_skills or []),
            reply_suggestions=list(ticket.reply_suggestions or []),
            created_by=ticket.created_by,
            assigned_to=_summary(ticket.assignee),
            replies=[ReplyResponse.from_model(r) for r in ticket.replies],
            deadline=ticket.deadline,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            resolved_at=ticket.resolved_at,
            assigned_at=ticket.assigned_at,
        )


class TicketEnvelope(CamelModel):
    ticket: TicketResponse


class TicketMessageResponse(CamelModel):
    message: str
    ticket: TicketResponse
