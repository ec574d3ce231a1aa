"""
Tickets Interfaces Layer
========================

HTTP routes for the ticket lifecycle.
"""

from ticketmate.tickets.interfaces.controllers import router as tickets_router

__all__ = ["tickets_router"]
