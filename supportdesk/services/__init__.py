from .dedup_service import TicketDedupService
from .ingestion_service import IngestionService
from .ticket_resolution_service import TicketResolutionService
from .token_usage_service import TokenUsageService
from .vector_store import VectorStore

__all__ = [
    "TicketDedupService",
    "IngestionService",
    "TicketResolutionService",
    "TokenUsageService",
    "VectorStore",
]
