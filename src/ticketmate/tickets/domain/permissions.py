"""
Ticket Permissions
==================

Single authorization point for ticket operations.

| Action     | role user                                   | moderator | admin |
|------------|---------------------------------------------|-----------|-------|
| VIEW       | creator or assignee                         | yes       | yes   |
| CREATE     | yes                                         | yes       | yes   |
| REPLY      | creator or assignee                         | yes       | yes   |
| SET_STATUS | assignee                                    | yes       | yes   |
| UPDATE     | assignee, or the update assigns it to them  | yes       | yes   |
| DELETE     | no                                          | no        | yes   |
"""

from enum import Enum
from typing import Any, Mapping, Optional

from ticketmate.config import Role


class TicketAction(Enum):
    VIEW = "view"
    CREATE = "create"
    REPLY = "reply"
    SET_STATUS = "set_status"
    UPDATE = "update"
    DELETE = "delete"


def _same(left: Any, right: Any) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def authorize(
    user: Any,
    action: TicketAction,
    ticket: Optional[Any] = None,
    updates: Optional[Mapping[str, Any]] = None,
) -> bool:
    """
    Decide whether `user` may perform `action` on `ticket`.

    `user` needs `id` and `role`; `ticket` needs `created_by` and
    `assigned_to`. `updates` is the requested change set for UPDATE.
    """
    if action is TicketAction.DELETE:
        return user.role == Role.ADMIN

    if user.role in (Role.MODERATOR, Role.ADMIN):
        return True

    if action is TicketAction.CREATE:
        return True

    if ticket is None:
        return False

    is_creator = _same(ticket.created_by, user.id)
    is_assignee = _same(ticket.assigned_to, user.id)

    if action in (TicketAction.VIEW, TicketAction.REPLY):
        return is_creator or is_assignee

    if action is TicketAction.SET_STATUS:
        return is_assignee

    if action is TicketAction.UPDATE:
        assigns_self = bool(updates) and _same(updates.get("assigned_to"), user.id)
        return is_assignee or assigns_self

    return False
