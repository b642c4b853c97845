# supportdesk/models/chat.py
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship
import uuid

from supportdesk.utils.datetime_utils import utc_now
from .base import Base


class Chat(Base):
    """A user's conversation; counts answers delivered by ticket resolution."""
    __tablename__ = "chat"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False)
    title = Column(Text, nullable=False, default="")
    question_answered_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    messages = relationship("ChatMessage", back_populates="chat", cascade="all, delete-orphan")
    tickets = relationship("Ticket", back_populates="chat", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_chat_user", "user_id"),
    )

    def __repr__(self):
        return f"<Chat {self.id}>"


class ChatMessage(Base):
    __tablename__ = "chat_message"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chat_id = Column(Uuid(as_uuid=True), ForeignKey("chat.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(32), nullable=False)
    content = Column(Text, nullable=False)
    token_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    chat = relationship("Chat", back_populates="messages")

    __table_args__ = (
        Index("idx_chat_message_chat", "chat_id"),
    )

    def __repr__(self):
        return f"<ChatMessage {self.role} in {self.chat_id}>"
