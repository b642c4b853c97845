# supportdesk/services/ticket_resolution_service.py
"""
Ticket Resolution Service - close tickets and fan answers out to subscribers

For each ticket the knowledge base is searched with the ticket's question.
A hit is delivered to every subscribed chat as an assistant message; no hit
means the ticket is closed silently. All requested tickets are deleted at
the end, together with their question embeddings.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.core.logger import get_logger
from supportdesk.models import Ticket
from supportdesk.services.chat_notification_service import ChatNotificationService
from supportdesk.services.progress_events import EventSink, ProgressEventType, emit
from supportdesk.services.ticket_repository import TicketRepository
from supportdesk.services.vector_store import SearchResult, VectorStore
from supportdesk.utils.datetime_utils import to_iso_string
from supportdesk.utils.exceptions import NotFoundError
from supportdesk.utils.validators import parse_uuid, parse_uuid_list

logger = get_logger(__name__)


@dataclass
class ResolutionResult:
    requested: int = 0
    found: int = 0
    deleted_count: int = 0
    notified_tickets: int = 0
    notifications_sent: int = 0
    failed_tickets: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "found": self.found,
            "deleted_count": self.deleted_count,
            "notified_tickets": self.notified_tickets,
            "notifications_sent": self.notifications_sent,
            "failed_tickets": self.failed_tickets,
        }


class TicketResolutionService:
    """Resolve tickets in batches"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: VectorStore,
        notifications: ChatNotificationService,
        answer_threshold: float = 0.75,
    ):
        self.session_factory = session_factory
        self.store = store
        self.notifications = notifications
        self.answer_threshold = answer_threshold

    async def resolve_tickets(
        self,
        ticket_ids: Sequence[Union[str, UUID]],
        on_event: Optional[EventSink] = None,
    ) -> ResolutionResult:
        """
        Notify subscribers of every answerable ticket, then delete all of them.

        Unknown ids are ignored. A failure while notifying one ticket is
        logged and recorded in `failed_tickets`; the rest of the batch
        continues and the ticket is still deleted.

        Raises:
            InvalidInput: malformed ticket id
        """
        ids = list(dict.fromkeys(parse_uuid_list(ticket_ids, "ticket_ids")))
        result = ResolutionResult(requested=len(ids))
        if not ids:
            return result

        await emit(
            on_event,
            ProgressEventType.PROCESSING_STATUS,
            f"Resolving {len(ids)} ticket(s)...",
        )

        async with self.session_factory() as session:
            tickets = await TicketRepository(session).get_tickets_by_ids(ids)
        result.found = len(tickets)

        searches = await asyncio.gather(
            *(self._find_answer(ticket) for ticket in tickets),
            return_exceptions=True,
        )

        await emit(
            on_event,
            ProgressEventType.NOTIFYING_USERS,
            f"Notifying users of {len(tickets)} ticket(s)",
        )

        for ticket, outcome in zip(tickets, searches):
            if isinstance(outcome, BaseException):
                logger.error(f"Answer search for ticket {ticket.id} failed: {outcome}")
                result.failed_tickets.append(str(ticket.id))
                continue
            if outcome is None:
                logger.info(f"No answer found for ticket {ticket.id}, resolving silently")
                continue

            try:
                sent = await self._notify_subscribers(ticket.id, outcome.record.content)
            except Exception as e:
                logger.error(f"Failed to notify subscribers of ticket {ticket.id}: {e}")
                result.failed_tickets.append(str(ticket.id))
                continue

            result.notified_tickets += 1
            result.notifications_sent += sent

        await emit(
            on_event,
            ProgressEventType.DELETING_TICKETS,
            f"Deleting {len(ids)} ticket(s)",
        )
        result.deleted_count = await self._delete_tickets(ids)

        logger.info(
            f"Resolved {result.found}/{result.requested} tickets, "
            f"{result.notifications_sent} notifications, "
            f"{len(result.failed_tickets)} failures"
        )
        return result

    async def _find_answer(self, ticket: Ticket) -> Optional[SearchResult]:
        results = await self.store.search(
            self.store.answers,
            ticket.question,
            limit=1,
            threshold=self.answer_threshold,
        )
        return results[0] if results else None

    async def _notify_subscribers(self, ticket_id: UUID, answer: str) -> int:
        """Post the answer into every subscribed chat. Returns chats notified."""
        async with self.session_factory() as session:
            repo = TicketRepository(session)
            subscriptions = await repo.get_subscriptions(ticket_id)
            if not subscriptions:
                return 0

            for subscription in subscriptions:
                await repo.insert_chat_message(subscription.chat_id, answer, role="assistant")
            chat_ids = list(dict.fromkeys(s.chat_id for s in subscriptions))
            await repo.increment_chat_answered_count(chat_ids)
            await session.commit()

        for subscription in subscriptions:
            await self.notifications.set_chat_notification(
                subscription.user_id, subscription.chat_id
            )
        return len(subscriptions)

    async def _delete_tickets(self, ids: List[UUID]) -> int:
        async with self.session_factory() as session:
            deleted = await TicketRepository(session).delete_tickets_by_ids(ids)
            await session.commit()

        try:
            await self.store.delete_by_owner(self.store.questions, ids)
        except Exception as e:
            # Orphaned question points are skipped by dedup once the ticket is gone
            logger.error(f"Failed to delete question embeddings of resolved tickets: {e}")
        return deleted

    # ==================== ADMIN ====================

    async def mark_resolved(self, ticket_id: Union[str, UUID], resolved: bool = True) -> None:
        """
        Flip the ticket's resolved flag and mirror it onto its question
        embeddings, so dedup stops matching a resolved ticket.
        """
        ticket_uuid = parse_uuid(ticket_id, "ticket_id")
        async with self.session_factory() as session:
            updated = await TicketRepository(session).set_resolved(ticket_uuid, resolved)
            if not updated:
                raise NotFoundError("Ticket", str(ticket_uuid))
            await session.commit()

        try:
            await self.store.set_owner_resolved(self.store.questions, ticket_uuid, resolved)
        except Exception as e:
            # Dedup re-checks the ticket row before joining
            logger.error(f"Failed to flag question embeddings of ticket {ticket_uuid}: {e}")
        logger.info(f"Ticket {ticket_uuid} marked resolved={resolved}")

    async def list_unresolved(self) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            rows = await TicketRepository(session).list_unresolved()
        return [
            {
                "id": str(ticket.id),
                "chat_id": str(ticket.chat_id),
                "question": ticket.question,
                "created_at": to_iso_string(ticket.created_at),
                "subscribers": int(subscribers),
            }
            for ticket, subscribers in rows
        ]
