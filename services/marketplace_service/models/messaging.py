"""Marketplace messaging models: order conversations and support tickets."""

from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.marketplace_service.models.enums import TicketStatus, enum_values
from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# BUYER/SELLER MESSAGES
# ============================================================================


class Message(Base):
    """A message between the buyer and seller of an order.

    A conversation between two users is every message they exchanged, across
    all of their orders.
    """

    __tablename__ = "marketplace_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("marketplace_orders.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    sender_id: Mapped[int] = mapped_column(Integer, nullable=False)
    receiver_id: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        Index("ix_marketplace_messages_receiver_read", "receiver_id", "is_read"),
        Index("ix_marketplace_messages_pair", "sender_id", "receiver_id"),
    )


# ============================================================================
# SUPPORT TICKETS
# ============================================================================


class SupportTicket(Base):
    __tablename__ = "marketplace_support_tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        SAEnum(
            TicketStatus,
            values_callable=enum_values,
            name="marketplace_ticket_status_enum",
        ),
        default=TicketStatus.OPEN,
        nullable=False,
    )
    # Latest admin answer, shown on the ticket list
    response: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    messages = relationship(
        "SupportTicketMessage",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="SupportTicketMessage.id",
    )

    def __repr__(self):
        return f"<SupportTicket {self.id} status={self.status}>"


class SupportTicketMessage(Base):
    __tablename__ = "marketplace_support_ticket_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("marketplace_support_tickets.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    sender_id: Mapped[int] = mapped_column(Integer, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    ticket = relationship("SupportTicket", back_populates="messages")
