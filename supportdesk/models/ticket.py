# supportdesk/models/ticket.py
from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import relationship
import uuid

from .base import Base, TimestampMixin


class Ticket(Base, TimestampMixin):
    """An unanswered user question awaiting operator input."""
    __tablename__ = "ticket"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chat_id = Column(Uuid(as_uuid=True), ForeignKey("chat.id", ondelete="CASCADE"), nullable=False)
    question = Column(Text, nullable=False)
    message_id = Column(Uuid(as_uuid=True), nullable=False)
    resolved = Column(Boolean, nullable=False, default=False)

    chat = relationship("Chat", back_populates="tickets")
    subscriptions = relationship(
        "UserTicket",
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_ticket_resolved", "resolved"),
        Index("idx_ticket_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<Ticket {self.id}>"


class UserTicket(Base):
    """A user waiting on the answer to a ticket (fanout target)."""
    __tablename__ = "user_ticket"

    user_id = Column(String(255), primary_key=True)
    ticket_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("ticket.id", ondelete="CASCADE"),
        primary_key=True,
    )
    chat_id = Column(Uuid(as_uuid=True), ForeignKey("chat.id", ondelete="CASCADE"), nullable=False)

    ticket = relationship("Ticket", back_populates="subscriptions")

    __table_args__ = (
        Index("idx_user_ticket_ticket", "ticket_id"),
    )

    def __repr__(self):
        return f"<UserTicket {self.user_id} -> {self.ticket_id}>"
