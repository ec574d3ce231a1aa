"""
Tickets Repository Interface
============================
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional
from uuid import UUID


class ITicketRepository(ABC):
    """Interface for ticket persistence."""

    @abstractmethod
    async def get(self, ticket_id: str | UUID, refresh: bool = False) -> Optional[Any]:
        """
        Get ticket with replies, authors and assignee loaded.

        `refresh` re-reads rows already in the session (after writes).
        """

    @abstractmethod
    async def list_visible_to(self, user_id: Optional[UUID] = None) -> List[Any]:
        """Newest first; with `user_id`, only tickets created by or assigned to them."""

    @abstractmethod
    async def create(self, **fields: Any) -> Any:
        """Create a ticket."""

    @abstractmethod
    async def save(self, ticket: Any) -> Any:
        """Persist changes made to a loaded ticket."""

    @abstractmethod
    async def add_reply(self, ticket: Any, message: str, author_id: UUID) -> Any:
        """Append a reply to the ticket."""

    @abstractmethod
    async def delete(self, ticket: Any) -> None:
        """Delete the ticket and its replies."""
