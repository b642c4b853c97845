# supportdesk/models/__init__.py
from .base import Base
from .chat import Chat, ChatMessage
from .ticket import Ticket, UserTicket

__all__ = [
    "Base",
    "Chat",
    "ChatMessage",
    "Ticket",
    "UserTicket",
]
