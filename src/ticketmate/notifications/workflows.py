"""
Notification Workflows
======================

Mail sent in the background in response to account and ticket events:

- on-user-signup      welcome mail to the new account
- on-ticket-activity  mail to the ticket creator when someone else replies,
                      changes the status or edits the ticket

Mail errors propagate so the engine retries the run. The send is its own
checkpointed step, so a retry never mails twice once the send succeeded.
"""

from typing import Any, Dict, Optional

from ticketmate.accounts.infrastructure import SQLAlchemyUserRepository
from ticketmate.config import EventName
from ticketmate.infrastructure.database import Database
from ticketmate.infrastructure.mail import IEmailService
from ticketmate.infrastructure.workflow import RunContext, Step, WorkflowEngine, WorkflowFunction
from ticketmate.shared.infrastructure.logging import get_logger
from ticketmate.tickets.infrastructure import SQLAlchemyTicketRepository

logger = get_logger(__name__)

ON_USER_SIGNUP = "on-user-signup"
ON_TICKET_ACTIVITY = "on-ticket-activity"

TICKET_ACTIVITY_EVENTS = [
    EventName.TICKET_REPLY_ADDED,
    EventName.TICKET_STATUS_UPDATED,
    EventName.TICKET_UPDATED,
]


# ========== Messages ==========

def build_welcome_email(email: str) -> tuple[str, str]:
    subject = "Welcome to TicketMate"
    body = (
        f"Hi {email},\n\n"
        "Your account has been created. You can now submit support tickets "
        "and follow their progress from your dashboard.\n\n"
        "Thanks for signing up!"
    )
    return subject, body


def _describe_value(value: Any) -> str:
    if value is None:
        return "cleared"
    if isinstance(value, list):
        return ", ".join(str(item) for item in value) or "none"
    return str(value)


def build_activity_email(event_name: str, data: Dict[str, Any], title: str) -> Optional[tuple[str, str]]:
    """Subject and body for a ticket activity event, None for unknown events."""
    if event_name == EventName.TICKET_REPLY_ADDED:
        author = data.get("author") or "A support agent"
        return (
            f"New reply on your ticket: {title}",
            f"{author} replied to your ticket \"{title}\":\n\n{data.get('reply', '')}",
        )

    if event_name == EventName.TICKET_STATUS_UPDATED:
        updated_by = data.get("updatedBy") or "A support agent"
        return (
            f"Ticket status updated: {title}",
            f"{updated_by} changed the status of your ticket \"{title}\" to {data.get('newStatus')}.",
        )

    if event_name == EventName.TICKET_UPDATED:
        updated_by = data.get("updatedBy") or "A support agent"
        changes = data.get("updates") or {}
        lines = [f"{updated_by} updated your ticket \"{title}\":", ""]
        lines += [f"- {field}: {_describe_value(value)}" for field, value in sorted(changes.items())]
        return f"Your ticket was updated: {title}", "\n".join(lines)

    return None


# ========== Handlers ==========

class NotificationWorkflows:
    """Handlers for the notification workflow functions."""

    def __init__(self, database: Database, email_service: IEmailService):
        self._database = database
        self._mail = email_service

    async def on_user_signup(self, ctx: RunContext, step: Step) -> Dict[str, Any]:
        email = ctx.event.data.get("email")
        if not email:
            ctx.logger.warning("Signup event without email, nothing to send")
            return {"notified": False, "reason": "missing_email"}

        subject, body = build_welcome_email(email)
        await step.run("send-welcome-email", self._mail.send_email, email, subject, body)
        return {"notified": True, "to": email}

    async def on_ticket_activity(self, ctx: RunContext, step: Step) -> Dict[str, Any]:
        data = ctx.event.data
        recipient = await step.run(
            "load-recipient", self.load_recipient, data.get("ticketId"), data.get("createdBy")
        )
        if recipient is None:
            ctx.logger.info("Ticket or creator gone, skipping notification", extra={"ticket_id": data.get("ticketId")})
            return {"notified": False, "reason": "recipient_not_found"}

        message = build_activity_email(ctx.event.name, data, recipient["title"])
        if message is None:
            return {"notified": False, "reason": "unsupported_event"}

        subject, body = message
        await step.run("send-email", self._mail.send_email, recipient["email"], subject, body)
        return {"notified": True, "to": recipient["email"]}

    async def load_recipient(self, ticket_id: Optional[str], creator_id: Optional[str]) -> Optional[Dict[str, str]]:
        if not ticket_id or not creator_id:
            return None

        async with self._database.session() as session:
            ticket = await SQLAlchemyTicketRepository(session).get(ticket_id)
            creator = await SQLAlchemyUserRepository(session).get_by_id(creator_id)

            if ticket is None or creator is None:
                return None
            return {"email": creator.email, "title": ticket.title}


def register_notification_functions(engine: WorkflowEngine, workflows: NotificationWorkflows) -> None:
    engine.register(WorkflowFunction(
        id=ON_USER_SIGNUP,
        trigger=EventName.USER_SIGNUP,
        handler=workflows.on_user_signup,
        retries=2,
        idempotency="data.userId",
    ))
    engine.register(WorkflowFunction(
        id=ON_TICKET_ACTIVITY,
        trigger=TICKET_ACTIVITY_EVENTS,
        handler=workflows.on_ticket_activity,
        retries=2,
    ))
