# supportdesk/routes/knowledge_routes.py
"""Knowledge base routes: ingest operator content, search embeddings, inspect sources"""
from fastapi import APIRouter, Depends, Query

from supportdesk.core.logger import get_logger
from supportdesk.dependencies import (
    get_current_user_id,
    get_dedup_service,
    get_ingestion_service,
    get_vector_store,
)
from supportdesk.schemas.common import APIResponse
from supportdesk.schemas.knowledge import IngestRequest, SearchRequest
from supportdesk.services.dedup_service import TicketDedupService
from supportdesk.services.ingestion_service import IngestionService
from supportdesk.services.progress_events import EventCollector
from supportdesk.services.vector_store import VectorStore
from supportdesk.utils.exceptions import EmbeddingUnavailable, IngestionFailed, NotFoundError

logger = get_logger(__name__)

router = APIRouter(prefix="/api/knowledge", tags=["knowledge"])


@router.post("/ingest")
async def ingest_knowledge(
    request: IngestRequest,
    user_id: str = Depends(get_current_user_id),
    ingestion: IngestionService = Depends(get_ingestion_service),
) -> APIResponse:
    """
    Add knowledge from text or a crawled URL.

    A failed ingestion is reported in the envelope (success=false) so the
    operator sees the message; malformed requests are rejected with 400.
    """
    events = EventCollector()
    try:
        result = await ingestion.ingest(
            content=request.content,
            url=request.url,
            ticket_id=request.ticket_id,
            source=request.source,
            on_event=events,
        )
    except (IngestionFailed, EmbeddingUnavailable) as e:
        logger.warning(f"Ingestion requested by {user_id} failed: {e.message}")
        return APIResponse.fail(e.code, e.message, e.details, events=events.to_list())

    logger.info(f"{user_id} ingested {result.chunks_processed} chunks")
    return APIResponse.ok(result.to_dict(), events=events.to_list())


@router.post("/search")
async def search_knowledge(
    request: SearchRequest,
    store: VectorStore = Depends(get_vector_store),
    ingestion: IngestionService = Depends(get_ingestion_service),
    dedup: TicketDedupService = Depends(get_dedup_service),
) -> APIResponse:
    """Similarity search; omitted limit and threshold use the family defaults"""
    family = store.family(request.family)
    if family is store.answers:
        results = await ingestion.search_knowledge(request.query, request.limit, request.threshold)
    else:
        results = await store.search(
            family,
            request.query,
            limit=request.limit or dedup.max_results,
            threshold=dedup.similarity_threshold if request.threshold is None else request.threshold,
        )
    return APIResponse.ok([r.to_dict() for r in results], total=len(results))


@router.get("/sources")
async def get_source_chunks(
    source: str = Query(..., min_length=1),
    store: VectorStore = Depends(get_vector_store),
) -> APIResponse:
    """Stored chunks of one source (a page URL or direct-input id), in order"""
    records = await store.list_by_source(source)
    if not records:
        raise NotFoundError("Source", source)
    return APIResponse.ok([r.to_dict() for r in records], total=len(records))
