# supportdesk/dependencies.py
from fastapi import Header, Request

from supportdesk.core.container import ServiceContainer
from supportdesk.services.chat_notification_service import ChatNotificationService
from supportdesk.services.dedup_service import TicketDedupService
from supportdesk.services.ingestion_service import IngestionService
from supportdesk.services.ticket_resolution_service import TicketResolutionService
from supportdesk.services.token_usage_service import TokenUsageService
from supportdesk.services.vector_store import VectorStore
from supportdesk.utils.exceptions import UnauthorizedError


def get_container(request: Request) -> ServiceContainer:
    """Container built in the app lifespan."""
    return request.app.state.container


async def get_current_user_id(x_user_id: str = Header(None)) -> str:
    """Caller identity forwarded by the chat layer."""
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError("User not authenticated")
    return x_user_id.strip()


def get_ingestion_service(request: Request) -> IngestionService:
    return get_container(request).ingestion


def get_vector_store(request: Request) -> VectorStore:
    return get_container(request).store


def get_dedup_service(request: Request) -> TicketDedupService:
    return get_container(request).dedup


def get_resolution_service(request: Request) -> TicketResolutionService:
    return get_container(request).resolution


def get_token_usage_service(request: Request) -> TokenUsageService:
    return get_container(request).token_usage


def get_notification_service(request: Request) -> ChatNotificationService:
    return get_container(request).notifications
