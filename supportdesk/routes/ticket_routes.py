# supportdesk/routes/ticket_routes.py
"""Ticket routes: dedup-or-create, resolution and admin views"""
from fastapi import APIRouter, Depends

from supportdesk.core.logger import get_logger
from supportdesk.dependencies import (
    get_current_user_id,
    get_dedup_service,
    get_resolution_service,
)
from supportdesk.schemas.common import APIResponse
from supportdesk.schemas.ticket import DedupRequest, MarkResolvedRequest, ResolveTicketsRequest
from supportdesk.services.dedup_service import TicketDedupService
from supportdesk.services.progress_events import EventCollector
from supportdesk.services.ticket_resolution_service import TicketResolutionService
from supportdesk.utils.exceptions import EmbeddingUnavailable

logger = get_logger(__name__)

router = APIRouter(prefix="/api/tickets", tags=["tickets"])


@router.post("/dedup")
async def dedup_or_create_ticket(
    request: DedupRequest,
    user_id: str = Depends(get_current_user_id),
    dedup: TicketDedupService = Depends(get_dedup_service),
) -> APIResponse:
    """Join a matching open ticket or open a new one for the caller's question"""
    events = EventCollector()
    try:
        result = await dedup.dedup_or_create_ticket(
            request.question,
            user_id,
            request.chat_id,
            request.message_id,
            on_event=events,
        )
    except EmbeddingUnavailable as e:
        logger.warning(f"Ticket for {user_id} not created: {e.message}")
        return APIResponse.fail(e.code, "Failed to create ticket", events=events.to_list())

    return APIResponse.ok(result.to_dict(), events=events.to_list())


@router.post("/resolve")
async def resolve_tickets(
    request: ResolveTicketsRequest,
    user_id: str = Depends(get_current_user_id),
    resolution: TicketResolutionService = Depends(get_resolution_service),
) -> APIResponse:
    """Notify subscribers with the best answer and delete the tickets"""
    if not request.ticket_ids:
        return APIResponse.fail("INVALID_INPUT", "No ticket IDs provided")

    events = EventCollector()
    result = await resolution.resolve_tickets(request.ticket_ids, on_event=events)
    logger.info(f"{user_id} resolved {result.deleted_count} tickets")
    return APIResponse.ok(result.to_dict(), events=events.to_list())


@router.patch("/{ticket_id}/resolved")
async def mark_ticket_resolved(
    ticket_id: str,
    request: MarkResolvedRequest,
    user_id: str = Depends(get_current_user_id),
    resolution: TicketResolutionService = Depends(get_resolution_service),
) -> APIResponse:
    await resolution.mark_resolved(ticket_id, request.resolved)
    return APIResponse.ok({"ticket_id": ticket_id, "resolved": request.resolved})


@router.get("/unresolved")
async def list_unresolved_tickets(
    resolution: TicketResolutionService = Depends(get_resolution_service),
) -> APIResponse:
    tickets = await resolution.list_unresolved()
    return APIResponse.ok(tickets, total=len(tickets))


@router.get("/integrity")
async def check_ticket_integrity(
    dedup: TicketDedupService = Depends(get_dedup_service),
) -> APIResponse:
    """Open tickets that can never be matched because they lack a question embedding"""
    unmatchable = await dedup.find_unmatchable_tickets()
    return APIResponse.ok(unmatchable, total=len(unmatchable))
