# supportdesk/services/ticket_repository.py
"""Relational store operations for tickets, subscriptions and chats"""
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.core.logger import get_logger
from supportdesk.models import Chat, ChatMessage, Ticket, UserTicket
from supportdesk.utils.datetime_utils import utc_now

logger = get_logger(__name__)


class TicketRepository:
    """Query helpers bound to one AsyncSession (caller commits)"""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ==================== TICKETS ====================

    async def create_ticket(
        self,
        chat_id: UUID,
        question: str,
        message_id: UUID,
        ticket_id: Optional[UUID] = None,
    ) -> Ticket:
        now = utc_now()
        ticket = Ticket(
            chat_id=chat_id,
            question=question,
            message_id=message_id,
            resolved=False,
            created_at=now,
            updated_at=now,
        )
        if ticket_id is not None:
            ticket.id = ticket_id
        self.session.add(ticket)
        await self.session.flush()
        return ticket

    async def get_ticket(self, ticket_id: UUID) -> Optional[Ticket]:
        return await self.session.get(Ticket, ticket_id)

    async def get_tickets_by_ids(self, ticket_ids: Sequence[UUID]) -> List[Ticket]:
        """Unknown ids are simply absent from the result"""
        if not ticket_ids:
            return []
        result = await self.session.execute(
            select(Ticket).where(Ticket.id.in_(list(ticket_ids))).order_by(Ticket.created_at)
        )
        return list(result.scalars().all())

    async def delete_tickets_by_ids(self, ticket_ids: Sequence[UUID]) -> int:
        """Delete tickets and their subscriptions. Returns tickets deleted."""
        if not ticket_ids:
            return 0
        ids = list(ticket_ids)
        # Explicit so SQLite (no FK enforcement by default) matches Postgres cascades
        await self.session.execute(delete(UserTicket).where(UserTicket.ticket_id.in_(ids)))
        result = await self.session.execute(delete(Ticket).where(Ticket.id.in_(ids)))
        return result.rowcount or 0

    async def set_resolved(self, ticket_id: UUID, resolved: bool) -> bool:
        result = await self.session.execute(
            update(Ticket)
            .where(Ticket.id == ticket_id)
            .values(resolved=resolved, updated_at=utc_now())
        )
        return (result.rowcount or 0) > 0

    async def list_unresolved(self) -> List[Tuple[Ticket, int]]:
        """Open tickets with the number of users waiting on each"""
        result = await self.session.execute(
            select(Ticket, func.count(UserTicket.user_id))
            .outerjoin(UserTicket, UserTicket.ticket_id == Ticket.id)
            .where(Ticket.resolved.is_(False))
            .group_by(Ticket.id)
            .order_by(Ticket.created_at.desc())
        )
        return [(ticket, count) for ticket, count in result.all()]

    # ==================== SUBSCRIPTIONS ====================

    async def add_user_to_ticket(self, user_id: str, ticket_id: UUID, chat_id: UUID) -> bool:
        """
        Subscribe a user to a ticket. Idempotent: an existing subscription
        is left untouched and False is returned.
        """
        values = {"user_id": user_id, "ticket_id": ticket_id, "chat_id": chat_id}
        dialect = self.session.get_bind().dialect.name

        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as dialect_insert
        else:
            dialect_insert = None

        if dialect_insert is not None:
            stmt = dialect_insert(UserTicket).values(**values).on_conflict_do_nothing(
                index_elements=["user_id", "ticket_id"]
            )
            result = await self.session.execute(stmt)
            return (result.rowcount or 0) > 0

        existing = await self.session.get(UserTicket, (user_id, ticket_id))
        if existing is not None:
            return False
        await self.session.execute(insert(UserTicket).values(**values))
        return True

    async def get_subscriptions(self, ticket_id: UUID) -> List[UserTicket]:
        result = await self.session.execute(
            select(UserTicket).where(UserTicket.ticket_id == ticket_id)
        )
        return list(result.scalars().all())

    # ==================== CHATS ====================

    async def create_chat(self, user_id: str, title: str = "", chat_id: Optional[UUID] = None) -> Chat:
        chat = Chat(user_id=user_id, title=title, question_answered_count=0, created_at=utc_now())
        if chat_id is not None:
            chat.id = chat_id
        self.session.add(chat)
        await self.session.flush()
        return chat

    async def insert_chat_message(self, chat_id: UUID, content: str, role: str = "assistant") -> ChatMessage:
        message = ChatMessage(
            chat_id=chat_id,
            role=role,
            content=content,
            token_count=0,
            created_at=utc_now(),
        )
        self.session.add(message)
        await self.session.flush()
        return message

    async def increment_chat_answered_count(self, chat_ids: Iterable[UUID]) -> int:
        ids = list(chat_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            update(Chat)
            .where(Chat.id.in_(ids))
            .values(question_answered_count=Chat.question_answered_count + 1)
        )
        return result.rowcount or 0
