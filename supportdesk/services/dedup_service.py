# supportdesk/services/dedup_service.py
"""
Ticket Dedup Service - merge near-duplicate questions into one ticket

A question either joins an open ticket whose question embedding is
similar enough, or opens a new ticket. A new ticket always gets its
question embedding; a ticket row without one could never be matched again.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.core.logger import get_logger
from supportdesk.services.progress_events import EventSink, ProgressEventType, emit
from supportdesk.services.ticket_repository import TicketRepository
from supportdesk.services.vector_store import VectorStore
from supportdesk.utils.exceptions import InvalidInput
from supportdesk.utils.validators import parse_uuid

logger = get_logger(__name__)


@dataclass
class DedupResult:
    ticket_id: UUID
    created: bool
    similarity: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticket_id": str(self.ticket_id),
            "created": self.created,
            "similarity": self.similarity,
        }


class TicketDedupService:
    """Find-or-create tickets for incoming questions"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: VectorStore,
        similarity_threshold: float = 0.9,
        max_results: int = 1,
    ):
        self.session_factory = session_factory
        self.store = store
        self.similarity_threshold = similarity_threshold
        self.max_results = max_results

    async def dedup_or_create_ticket(
        self,
        question: str,
        asker_id: str,
        chat_id: Union[str, UUID],
        message_id: Union[str, UUID],
        on_event: Optional[EventSink] = None,
    ) -> DedupResult:
        """
        Subscribe the asker to a matching open ticket or create a new one.

        Raises:
            InvalidInput: blank question or asker, malformed ids
            EmbeddingUnavailable: question could not be embedded
        """
        if not question or not question.strip():
            raise InvalidInput("Question must not be empty")
        if not asker_id:
            raise InvalidInput("Asker id is required")
        chat_uuid = parse_uuid(chat_id, "chat_id")
        message_uuid = parse_uuid(message_id, "message_id")

        matches = await self.store.search(
            self.store.questions,
            question,
            limit=self.max_results,
            threshold=self.similarity_threshold,
            exclude_resolved=True,
        )

        for match in matches:
            ticket_id = parse_uuid(match.record.owner_id, "owner_id")
            joined = await self._join_existing(ticket_id, asker_id, chat_uuid)
            if not joined:
                continue

            logger.info(
                f"Question matched ticket {ticket_id} "
                f"(similarity={match.similarity:.3f}), user {asker_id} subscribed"
            )
            await emit(
                on_event,
                ProgressEventType.TICKET_EXISTS,
                "A similar question is already being looked into",
                ticket_id=str(ticket_id),
                similarity=match.similarity,
            )
            return DedupResult(ticket_id=ticket_id, created=False, similarity=match.similarity)

        ticket_id = await self._create_ticket(question, asker_id, chat_uuid, message_uuid)
        await emit(
            on_event,
            ProgressEventType.TICKET_CREATED,
            "Your question has been forwarded to the support team",
            ticket_id=str(ticket_id),
        )
        return DedupResult(ticket_id=ticket_id, created=True)

    async def _join_existing(self, ticket_id: UUID, asker_id: str, chat_id: UUID) -> bool:
        """Subscribe to an open ticket. False when the ticket is gone or resolved."""
        async with self.session_factory() as session:
            repo = TicketRepository(session)
            ticket = await repo.get_ticket(ticket_id)
            if ticket is None or ticket.resolved:
                logger.debug(f"Matched ticket {ticket_id} is no longer open")
                return False
            await repo.add_user_to_ticket(asker_id, ticket_id, chat_id)
            await session.commit()
        return True

    async def _create_ticket(
        self,
        question: str,
        asker_id: str,
        chat_id: UUID,
        message_id: UUID,
    ) -> UUID:
        # Embed before touching the database so an unavailable model
        # leaves nothing behind.
        vector = await self.store.embed(question)
        ticket_id = uuid.uuid4()
        record = None

        async with self.session_factory() as session:
            repo = TicketRepository(session)
            try:
                await repo.create_ticket(chat_id, question, message_id, ticket_id=ticket_id)
                record = await self.store.insert_question(
                    ticket_id,
                    question,
                    metadata={"chat_id": str(chat_id), "asker_id": asker_id},
                    vector=vector,
                )
                await repo.add_user_to_ticket(asker_id, ticket_id, chat_id)
                await session.commit()
            except Exception:
                await session.rollback()
                if record is not None:
                    await self._discard_question(record.id, ticket_id)
                raise

        logger.info(f"Created ticket {ticket_id} for user {asker_id}")
        return ticket_id

    async def _discard_question(self, record_id: str, ticket_id: UUID) -> None:
        try:
            await self.store.delete_records(self.store.questions, [record_id])
        except Exception as e:
            logger.error(
                f"Could not remove question embedding {record_id} of "
                f"uncommitted ticket {ticket_id}: {e}"
            )

    async def find_unmatchable_tickets(self) -> List[Dict[str, Any]]:
        """Open tickets that have no question embedding and can never be matched"""
        async with self.session_factory() as session:
            rows = await TicketRepository(session).list_unresolved()

        unmatchable = []
        for ticket, subscribers in rows:
            count = await self.store.count_by_owner(self.store.questions, ticket.id)
            if count == 0:
                unmatchable.append({
                    "ticket_id": str(ticket.id),
                    "question": ticket.question,
                    "subscribers": subscribers,
                })
        if unmatchable:
            logger.warning(f"{len(unmatchable)} open tickets have no question embedding")
        return unmatchable
