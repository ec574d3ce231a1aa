"""
Triage Interfaces Layer
=======================

Workflow function registration.
"""

from ticketmate.triage.interfaces.functions import ON_TICKET_CREATED, register_triage_functions

__all__ = ["ON_TICKET_CREATED", "register_triage_functions"]
