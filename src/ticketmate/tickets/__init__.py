"""
Tickets Module
==============

Ticket store, permission rules and the ticket HTTP API.
"""
