"""
Accounts Repository Interface
=============================

Abstract persistence contract for user accounts. The tickets and triage
modules depend on this interface, never on the SQLAlchemy implementation.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional
from uuid import UUID


class IUserRepository(ABC):
    """Interface for user persistence."""

    @abstractmethod
    async def get_by_id(self, user_id: str | UUID) -> Optional[Any]:
        """Get user by id; None for unknown or malformed ids."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Any]:
        """Get user by (lower-cased) email."""

    @abstractmethod
    async def get_by_provider_id(self, provider: str, provider_id: str) -> Optional[Any]:
        """Get user linked to an OAuth provider account."""

    @abstractmethod
    async def create(self, **fields: Any) -> Any:
        """Create a user. Raises ConflictException on duplicate email."""

    @abstractmethod
    async def save(self, user: Any) -> Any:
        """Persist changes made to a loaded user."""

    @abstractmethod
    async def list_all(self) -> List[Any]:
        """All users in storage order."""

    @abstractmethod
    async def list_by_roles(self, roles: Iterable[str]) -> List[Any]:
        """Users having one of `roles`, in storage order."""
