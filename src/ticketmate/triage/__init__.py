"""
Triage Module
=============

Background classification, moderator assignment and assignee notification
for newly created tickets.
"""
