"""
Accounts Interfaces Layer
=========================

HTTP routes and request dependencies.
"""

from ticketmate.accounts.interfaces.controllers import router as accounts_router

__all__ = ["accounts_router"]
