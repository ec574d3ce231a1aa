"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (accounts, tickets,
triage).

Architecture Pattern: Modular Monolith
- Each module (accounts, tickets, triage) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from accounts, tickets or triage to the shared kernel.
"""

__version__ = "1.0.0"
