"""
Notifications Module
====================

Background mail for account and ticket activity.
"""

from ticketmate.notifications.workflows import (
    ON_TICKET_ACTIVITY,
    ON_USER_SIGNUP,
    NotificationWorkflows,
    build_activity_email,
    build_welcome_email,
    register_notification_functions,
)

__all__ = [
    "ON_TICKET_ACTIVITY",
    "ON_USER_SIGNUP",
    "NotificationWorkflows",
    "build_activity_email",
    "build_welcome_email",
    "register_notification_functions",
]
