"""
Tickets Application Layer
=========================

Contains:
- Services: Business logic orchestration
- DTOs: Data transfer objects for API serialization
- Repository interface
"""

from ticketmate.tickets.application.interfaces import ITicketRepository
from ticketmate.tickets.application.dto import (
    CreateTicketRequest,
    ReplyRequest,
    StatusRequest,
    UpdateTicketRequest,
    ReplyResponse,
    TicketResponse,
    TicketEnvelope,
    TicketMessageResponse,
)
from ticketmate.tickets.application.services import TicketService, EDITABLE_FIELDS

__all__ = [
    "ITicketRepository",
    "CreateTicketRequest",
    "ReplyRequest",
    "StatusRequest",
    "UpdateTicketRequest",
    "ReplyResponse",
    "TicketResponse",
    "TicketEnvelope",
    "TicketMessageResponse",
    "TicketService",
    "EDITABLE_FIELDS",
]
