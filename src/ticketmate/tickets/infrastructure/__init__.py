"""
Tickets Infrastructure Layer
============================

SQLAlchemy models and repository for tickets and replies.
"""

from ticketmate.tickets.infrastructure.models import TicketModel, TicketReplyModel
from ticketmate.tickets.infrastructure.repositories import SQLAlchemyTicketRepository

__all__ = ["TicketModel", "TicketReplyModel", "SQLAlchemyTicketRepository"]
