"""
Accounts Module
===============

User accounts: password and OAuth login, access tokens, admin management
of roles and skills.
"""
