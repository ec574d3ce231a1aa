"""
TicketMate
==========

AI-assisted helpdesk: ticket intake, LLM triage, moderator assignment.
"""

__version__ = "1.0.0"
