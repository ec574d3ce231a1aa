"""
Tickets Infrastructure Repositories
===================================

SQLAlchemy implementation of the ticket repository.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketmate.tickets.application.interfaces import ITicketRepository
from ticketmate.tickets.infrastructure.models import TicketModel, TicketReplyModel


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Relationships are selectin-loaded so serialization never triggers lazy
    IO on the async session.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, ticket_id: str | UUID, refresh: bool = False) -> Optional[TicketModel]:
        try:
            ticket_uuid = ticket_id if isinstance(ticket_id, UUID) else UUID(str(ticket_id))
        except ValueError:
            return None

        stmt = select(TicketModel).where(TicketModel.id == ticket_uuid)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_visible_to(self, user_id: Optional[UUID] = None) -> List[TicketModel]:
        stmt = select(TicketModel)
        if user_id is not None:
            stmt = stmt.where(or_(TicketModel.created_by == user_id, TicketModel.assigned_to == user_id))
        stmt = stmt.order_by(TicketModel.created_at.desc())

        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **fields: Any) -> TicketModel:
        ticket = TicketModel(**fields)
        self._session.add(ticket)
        await self._session.flush()
        return await self.get(ticket.id, refresh=True)

    async def save(self, ticket: TicketModel) -> TicketModel:
        await self._session.flush()
        return await self.get(ticket.id, refresh=True)

    async def add_reply(self, ticket: TicketModel, message: str, author_id: UUID) -> TicketReplyModel:
        reply = TicketReplyModel(
            ticket_id=ticket.id,
            message=message,
            author_id=author_id,
            created_at=datetime.now(timezone.utc),
        )
        ticket.replies.append(reply)
        await self._session.flush()
        await self._session.refresh(reply, ["author"])
        return reply

    async def delete(self, ticket: TicketModel) -> None:
        await self._session.delete(ticket)
        await self._session.flush()
