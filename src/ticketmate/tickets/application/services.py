"""
Tickets Application Services
============================

Ticket lifecycle: submission, listing, replies, status changes, general
updates and deletion.

Every operation authorizes the caller once through `authorize()`. VIEW
failures look like a missing ticket (404); all others are 403. Operations
by someone other than the creator publish a notification event.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from ticketmate.accounts.application.interfaces import IUserRepository
from ticketmate.accounts.application.services import IEventPublisher
from ticketmate.config import EventName, Role, TicketStatus, VALID_PRIORITIES
from ticketmate.core import (
    PermissionDeniedException,
    ResourceNotFoundException,
    ValidationException,
)
from ticketmate.tickets.application.interfaces import ITicketRepository
from ticketmate.tickets.domain import TicketAction, authorize, is_resolved_status
from ticketmate.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

EDITABLE_FIELDS = (
    "title",
    "description",
    "status",
    "priority",
    "helpful_notes",
    "related_skills",
    "reply_suggestions",
    "assigned_to",
    "deadline",
)

_CAMEL_NAMES = {
    "helpful_notes": "helpfulNotes",
    "related_skills": "relatedSkills",
    "reply_suggestions": "replySuggestions",
    "assigned_to": "assignedTo",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Column widths of the tickets table
MAX_LENGTHS = {"title": 500, "status": 50}


def _check_length(value: str, field: str) -> None:
    limit = MAX_LENGTHS.get(field)
    if limit is not None and len(value) > limit:
        raise ValidationException(f"{field} must be at most {limit} characters", field=field)


def _required_text(value: Optional[str], field: str, message: str) -> str:
    if value is None or not value.strip():
        raise ValidationException(message, field=field)
    _check_length(value, field)
    return value


def _event_payload(updates: Dict[str, Any]) -> Dict[str, Any]:
    """camelCase, JSON-safe copy of an update set."""
    payload: Dict[str, Any] = {}
    for key, value in updates.items():
        if isinstance(value, UUID):
            value = str(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        payload[_CAMEL_NAMES.get(key, key)] = value
    return payload


class TicketService:
    """
    Application service for tickets.

    Orchestrates:
    1. Permission checks (domain rules)
    2. Persistence through the repositories
    3. Event publishing (`ticket/created` starts triage; the others notify
       the creator)
    """

    def __init__(
        self,
        tickets: ITicketRepository,
        users: IUserRepository,
        events: Optional[IEventPublisher] = None,
    ):
        self._tickets = tickets
        self._users = users
        self._events = events

    async def _publish(self, name: str, data: Dict[str, Any]) -> None:
        if self._events is not None:
            await self._events.publish(name, data)

    async def _load(self, ticket_id: str) -> Any:
        ticket = await self._tickets.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    @staticmethod
    def _require(user: Any, action: TicketAction, ticket: Any, updates: Optional[Dict[str, Any]] = None) -> None:
        if not authorize(user, action, ticket, updates):
            logger.info(
                "Ticket action denied",
                extra={"user_id": str(user.id), "action": action.value,
                       "ticket_id": str(ticket.id) if ticket is not None else None}
            )
            raise PermissionDeniedException("Access denied")

    # ========== Queries ==========

    async def list_tickets(self, user: Any) -> List[Any]:
        """Role user: own and assigned tickets. Moderators/admins: all."""
        scope = user.id if user.role == Role.USER else None
        return await self._tickets.list_visible_to(scope)

    async def get_ticket(self, user: Any, ticket_id: str) -> Any:
        ticket = await self._tickets.get(ticket_id)
        if ticket is None or not authorize(user, TicketAction.VIEW, ticket):
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    # ========== Commands ==========

    async def create_ticket(self, user: Any, title: str, description: str) -> Any:
        """
        Persist a new ticket and enqueue its triage.

        The ticket is returned immediately with status TODO and no
        classification; triage runs in the background.
        """
        self._require(user, TicketAction.CREATE, None)
        _required_text(title, "title", "Title and Description are required")
        _required_text(description, "description", "Title and Description are required")

        ticket = await self._tickets.create(
            title=title.strip(),
            description=description,
            status=TicketStatus.TODO,
            created_by=user.id,
        )

        await self._publish(EventName.TICKET_CREATED, {
            "ticketId": str(ticket.id),
            "title": ticket.title,
            "description": ticket.description,
            "createdBy": str(user.id),
        })

        logger.info("Ticket created", extra={"ticket_id": str(ticket.id), "user_id": str(user.id)})
        return ticket

    async def add_reply(
        self,
        user: Any,
        ticket_id: str,
        message: Optional[str],
        status: Optional[str] = None,
    ) -> Any:
        """Append a reply; optionally change status in the same write."""
        _required_text(message, "message", "Reply message is required")
        if status:
            _check_length(status, "status")
        ticket = await self._load(ticket_id)

        self._require(user, TicketAction.REPLY, ticket)
        if status:
            self._require(user, TicketAction.SET_STATUS, ticket)

        now = _utcnow()
        await self._tickets.add_reply(ticket, message, user.id)
        ticket.updated_at = now
        if status:
            ticket.status = status
            if is_resolved_status(status):
                ticket.resolved_at = now

        ticket = await self._tickets.save(ticket)

        if str(user.id) != str(ticket.created_by):
            await self._publish(EventName.TICKET_REPLY_ADDED, {
                "ticketId": str(ticket.id),
                "reply": message,
                "author": user.email,
                "createdBy": str(ticket.created_by),
            })

        return ticket

    async def set_status(self, user: Any, ticket_id: str, status: Optional[str]) -> Any:
        _required_text(status, "status", "Status is required")
        ticket = await self._load(ticket_id)
        self._require(user, TicketAction.SET_STATUS, ticket)

        now = _utcnow()
        ticket.status = status
        ticket.updated_at = now
        if is_resolved_status(status):
            ticket.resolved_at = now

        ticket = await self._tickets.save(ticket)

        if str(user.id) != str(ticket.created_by):
            await self._publish(EventName.TICKET_STATUS_UPDATED, {
                "ticketId": str(ticket.id),
                "newStatus": status,
                "updatedBy": user.email,
                "createdBy": str(ticket.created_by),
            })

        logger.info("Ticket status updated", extra={"ticket_id": str(ticket.id), "status": status})
        return ticket

    async def update_ticket(self, user: Any, ticket_id: str, updates: Dict[str, Any]) -> Any:
        """
        Apply a general update.

        `updates` holds snake_case editable fields; anything else (notably
        `created_by`) is ignored. Changing the assignee to a user stamps
        `assigned_at`; an unknown assignee is rejected.
        """
        updates = {key: value for key, value in updates.items() if key in EDITABLE_FIELDS}
        ticket = await self._load(ticket_id)
        self._require(user, TicketAction.UPDATE, ticket, updates)

        for field in ("title", "description", "status"):
            if field in updates:
                _required_text(updates[field], field, f"{field} cannot be empty")

        if updates.get("priority") is not None and updates["priority"] not in VALID_PRIORITIES:
            raise ValidationException(
                f"priority must be one of {', '.join(VALID_PRIORITIES)}", field="priority"
            )

        now = _utcnow()
        new_assignee = updates.get("assigned_to")
        if new_assignee is not None:
            if await self._users.get_by_id(new_assignee) is None:
                raise ValidationException("Assignee does not exist", field="assignedTo")
            if str(new_assignee) != str(ticket.assigned_to):
                ticket.assigned_at = now

        for field, value in updates.items():
            if field in ("related_skills", "reply_suggestions") and value is None:
                value = []
            setattr(ticket, field, value)

        if updates.get("status") and is_resolved_status(updates["status"]):
            ticket.resolved_at = now
        ticket.updated_at = now

        ticket = await self._tickets.save(ticket)

        if str(user.id) != str(ticket.created_by):
            await self._publish(EventName.TICKET_UPDATED, {
                "ticketId": str(ticket.id),
                "updates": _event_payload(updates),
                "updatedBy": user.email,
                "createdBy": str(ticket.created_by),
            })

        logger.info(
            "Ticket updated",
            extra={"ticket_id": str(ticket.id), "fields": sorted(updates)}
        )
        return ticket

    async def delete_ticket(self, user: Any, ticket_id: str) -> None:
        self._require(user, TicketAction.DELETE, None)
        ticket = await self._load(ticket_id)
        await self._tickets.delete(ticket)
        logger.info("Ticket deleted", extra={"ticket_id": str(ticket_id), "user_id": str(user.id)})
