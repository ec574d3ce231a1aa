"""
Tickets Controllers (API Routes)
================================

FastAPI routes under `/tickets`. All routes require a bearer token.

Controllers delegate to TicketService.
"""

from typing import Any, List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketmate.accounts.application import MessageResponse
from ticketmate.accounts.infrastructure import SQLAlchemyUserRepository
from ticketmate.accounts.interfaces.dependencies import get_current_user, get_event_publisher
from ticketmate.infrastructure.database import get_session
from ticketmate.infrastructure.workflow import EventPublisher
from ticketmate.tickets.application import (
    CreateTicketRequest,
    ReplyRequest,
    StatusRequest,
    TicketEnvelope,
    TicketMessageResponse,
    TicketResponse,
    TicketService,
    UpdateTicketRequest,
)
from ticketmate.tickets.infrastructure import SQLAlchemyTicketRepository

router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Example payloads for Swagger ==========

CREATE_TICKET_EXAMPLE = {
    "title": "Login API returns 500",
    "description": "Since this morning POST /login fails with a 500 from our Node.js backend."
}


# ========== Dependencies ==========

def get_ticket_service(
    session: AsyncSession = Depends(get_session),
    events: EventPublisher = Depends(get_event_publisher),
) -> TicketService:
    return TicketService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyUserRepository(session),
        events,
    )


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TicketMessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Title or description missing"}},
)
async def create_ticket(
    body: CreateTicketRequest,
    user: Any = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketMessageResponse:
    """
    Submit a ticket.

    Returns at once with status TODO; triage (classification, moderator
    assignment, notification) runs in the background.
    """
    ticket = await service.create_ticket(user, body.title, body.description)
    return TicketMessageResponse(
        message="Ticket Created and Processing",
        ticket=TicketResponse.from_model(ticket),
    )


@router.get("", response_model=List[TicketResponse])
async def list_tickets(
    user: Any = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> List[TicketResponse]:
    """Newest first. Users see tickets they created or are assigned to."""
    tickets = await service.list_tickets(user)
    return [TicketResponse.from_model(t) for t in tickets]


@router.get("/{ticket_id}", response_model=TicketEnvelope)
async def get_ticket(
    ticket_id: str,
    user: Any = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketEnvelope:
    ticket = await service.get_ticket(user, ticket_id)
    return TicketEnvelope(ticket=TicketResponse.from_model(ticket))


@router.post("/{ticket_id}/reply", response_model=TicketMessageResponse)
async def add_reply(
    ticket_id: str,
    body: ReplyRequest,
    user: Any = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketMessageResponse:
    ticket = await service.add_reply(user, ticket_id, body.message, body.status)
    message = "Reply added and status updated successfully" if body.status else "Reply added successfully"
    return TicketMessageResponse(message=message, ticket=TicketResponse.from_model(ticket))


@router.patch("/{ticket_id}/status", response_model=TicketMessageResponse)
@router.patch("/{ticket_id}/resolve", response_model=TicketMessageResponse)
async def update_status(
    ticket_id: str,
    body: StatusRequest,
    user: Any = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketMessageResponse:
    ticket = await service.set_status(user, ticket_id, body.status)
    return TicketMessageResponse(
        message="Ticket status updated successfully",
        ticket=TicketResponse.from_model(ticket),
    )


@router.patch("/{ticket_id}/assign", response_model=TicketMessageResponse)
@router.patch("/{ticket_id}", response_model=TicketMessageResponse)
async def update_ticket(
    ticket_id: str,
    body: UpdateTicketRequest,
    user: Any = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketMessageResponse:
    """Update editable fields; only fields present in the body change."""
    ticket = await service.update_ticket(user, ticket_id, body.model_dump(exclude_unset=True))
    return TicketMessageResponse(
        message="Ticket updated successfully",
        ticket=TicketResponse.from_model(ticket),
    )


@router.delete("/{ticket_id}", response_model=MessageResponse)
async def delete_ticket(
    ticket_id: str,
    user: Any = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> MessageResponse:
    """Admin only."""
    await service.delete_ticket(user, ticket_id)
    return MessageResponse(message="Ticket deleted successfully")
