"""
Tickets Infrastructure Models
=============================

SQLAlchemy ORM models for tickets and their replies.

Replies are owned by the ticket: they are created only through the reply
operation and removed only when the ticket is deleted.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketmate.accounts.infrastructure.models import UserModel
from ticketmate.config import TicketStatus
from ticketmate.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Content
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TicketStatus.TODO)

    # Ownership
    created_by: Mapped[UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Triage output
    priority: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    helpful_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    related_skills: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    reply_suggestions: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Timestamps
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    replies: Mapped[List["TicketReplyModel"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketReplyModel.created_at",
        lazy="selectin",
    )
    creator: Mapped[UserModel] = relationship(foreign_keys=[created_by], lazy="selectin")
    assignee: Mapped[Optional[UserModel]] = relationship(foreign_keys=[assigned_to], lazy="selectin")


class TicketReplyModel(Base):
    """
    Database model for a reply on a ticket.

    Maps to the 'ticket_replies' table.
    """
    __tablename__ = "ticket_replies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    ticket: Mapped[TicketModel] = relationship(back_populates="replies")
    author: Mapped[Optional[UserModel]] = relationship(lazy="selectin")
