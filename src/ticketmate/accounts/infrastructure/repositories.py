"""
Accounts Infrastructure Repositories
====================================

SQLAlchemy implementation of the user repository.
"""

from typing import Any, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketmate.accounts.application.interfaces import IUserRepository
from ticketmate.accounts.infrastructure.models import UserModel
from ticketmate.core import ConflictException


def _to_uuid(value: str | UUID) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class SQLAlchemyUserRepository(IUserRepository):
    """
    SQLAlchemy implementation of user repository.

    Listing methods return users in storage (creation) order.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, user_id: str | UUID) -> Optional[UserModel]:
        user_uuid = _to_uuid(user_id)
        if user_uuid is None:
            return None
        return await self._session.get(UserModel, user_uuid)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        stmt = select(UserModel).where(UserModel.email == email.lower())
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_provider_id(self, provider: str, provider_id: str) -> Optional[UserModel]:
        column = UserModel.google_id if provider == "google" else UserModel.facebook_id
        stmt = select(UserModel).where(column == provider_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **fields: Any) -> UserModel:
        user = UserModel(**fields)
        self._session.add(user)
        try:
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            raise ConflictException("User with this email already exists")
        return user

    async def save(self, user: UserModel) -> UserModel:
        await self._session.flush()
        return user

    async def list_all(self) -> List[UserModel]:
        stmt = select(UserModel).order_by(UserModel.created_at.asc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_roles(self, roles: Iterable[str]) -> List[UserModel]:
        stmt = (
            select(UserModel)
            .where(UserModel.role.in_(list(roles)))
            .order_by(UserModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

