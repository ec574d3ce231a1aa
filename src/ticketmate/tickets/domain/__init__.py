"""
Tickets Domain Layer
====================

Authorization rules and status helpers. Pure Python only.
"""

from ticketmate.tickets.domain.permissions import TicketAction, authorize
from ticketmate.config import TicketStatus


def is_resolved_status(status: str) -> bool:
    """`resolved` in any letter case marks the ticket resolved."""
    return status.strip().lower() == TicketStatus.RESOLVED


__all__ = ["TicketAction", "authorize", "is_resolved_status"]
