# supportdesk/services/ingestion_service.py
"""
Ingestion Service - turn operator input into knowledge-base embeddings

Two paths:
1. Direct content: chunk -> embed -> upsert, source "direct-input:<uuid>"
   unless the operator names one
2. URL: crawl the site, then chunk/embed/upsert every page concurrently
   with source = page URL, so re-ingesting a site refreshes its pages in
   place

Per-chunk and per-page failures are counted, not raised; only argument
errors and configuration errors escape. The call fails with
IngestionFailed only when nothing at all was stored.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from supportdesk.core.logger import get_logger
from supportdesk.services.chunker import chunk_text
from supportdesk.services.crawl_client import CrawlOptions, CrawlPage
from supportdesk.services.crawl_orchestrator import CrawlOrchestrator
from supportdesk.services.progress_events import EventSink, ProgressEventType, emit
from supportdesk.services.vector_store import SearchResult, VectorStore, answer_point_id
from supportdesk.utils.exceptions import (
    ConfigurationError,
    CrawlError,
    IngestionFailed,
    InvalidInput,
)
from supportdesk.utils.validators import parse_uuid, validate_http_url

logger = get_logger(__name__)

DIRECT_INPUT_PREFIX = "direct-input:"


@dataclass
class IngestionResult:
    chunks_processed: int = 0
    chunks_failed: int = 0
    pages_processed: int = 0
    pages_failed: int = 0
    sources: List[str] = field(default_factory=list)
    job_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunks_processed": self.chunks_processed,
            "chunks_failed": self.chunks_failed,
            "pages_processed": self.pages_processed,
            "pages_failed": self.pages_failed,
            "sources": self.sources,
            "job_id": self.job_id,
        }


class IngestionService:
    """Composes chunker, embedding client, vector store and crawler"""

    def __init__(
        self,
        store: VectorStore,
        orchestrator: CrawlOrchestrator,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        crawl_options: Optional[CrawlOptions] = None,
        answer_limit: int = 5,
        answer_threshold: float = 0.75,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.crawl_options = crawl_options or CrawlOptions()
        self.answer_limit = answer_limit
        self.answer_threshold = answer_threshold

    async def ingest(
        self,
        content: Optional[str] = None,
        url: Optional[str] = None,
        ticket_id: Optional[str] = None,
        source: Optional[str] = None,
        on_event: Optional[EventSink] = None,
    ) -> IngestionResult:
        """
        Add knowledge from raw text or a crawled URL.

        Args:
            content: Text to add (exclusive with url)
            url: Site to crawl (exclusive with content)
            ticket_id: Ticket the knowledge answers, if any
            source: Operator-supplied identifier for direct content
            on_event: Optional progress sink

        Raises:
            InvalidInput: Both or neither of content/url, blank content, bad URL
            IngestionFailed: No chunk could be stored
        """
        has_content = content is not None
        has_url = url is not None
        if has_content == has_url:
            raise InvalidInput("Provide exactly one of content or url")

        owner_id = self._normalize_ticket_id(ticket_id)

        if has_content:
            if not content.strip():
                raise InvalidInput("Content must not be blank")
            return await self._ingest_content(content, owner_id, source, on_event)

        return await self._ingest_url(validate_http_url(url), owner_id, on_event)

    async def search_knowledge(
        self,
        query: str,
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        """Answer retrieval for a user question"""
        if not query or not query.strip():
            raise InvalidInput("Query must not be blank")
        return await self.store.search(
            self.store.answers,
            query,
            limit=self.answer_limit if limit is None else limit,
            threshold=self.answer_threshold if threshold is None else threshold,
        )

    # ==================== PATHS ====================

    async def _ingest_content(
        self,
        content: str,
        owner_id: Optional[str],
        source: Optional[str],
        on_event: Optional[EventSink],
    ) -> IngestionResult:
        source = source or f"{DIRECT_INPUT_PREFIX}{uuid.uuid4()}"
        await emit(on_event, ProgressEventType.PROCESSING_STATUS, "Processing content...")

        stored, failed = await self._ingest_document(
            content, source, owner_id, {"origin": "direct-input"}
        )
        result = IngestionResult(
            chunks_processed=stored,
            chunks_failed=failed,
            pages_processed=1 if stored else 0,
            pages_failed=0 if stored else 1,
            sources=[source] if stored else [],
        )

        if not stored:
            raise IngestionFailed(
                "Could not generate embedding", chunks_failed=failed, pages_failed=1
            )

        logger.info(f"Ingested {stored} chunks from {source}")
        return result

    async def _ingest_url(
        self,
        url: str,
        owner_id: Optional[str],
        on_event: Optional[EventSink],
    ) -> IngestionResult:
        await emit(on_event, ProgressEventType.PROCESSING_STATUS, f"Processing URL: {url}")

        try:
            job = await self.orchestrator.run(url, self.crawl_options, on_event)
        except CrawlError as e:
            logger.warning(f"Crawl of {url} failed: {e.message}")
            raise IngestionFailed(f"Failed to crawl {url}: {e.message}")

        outcomes = await asyncio.gather(
            *(self._ingest_page(page, url, owner_id) for page in job.pages),
            return_exceptions=True,
        )

        result = IngestionResult(job_id=job.job_id)
        for page, outcome in zip(job.pages, outcomes):
            if isinstance(outcome, ConfigurationError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error(f"Page {page.url} failed: {outcome}")
                result.pages_failed += 1
                continue

            page_source, stored, failed = outcome
            result.chunks_processed += stored
            result.chunks_failed += failed
            if stored:
                result.pages_processed += 1
                result.sources.append(page_source)
            else:
                result.pages_failed += 1

        logger.info(
            f"Created {result.chunks_processed} embeddings from {result.pages_processed} "
            f"of {len(job.pages)} pages ({url})"
        )

        if not result.chunks_processed:
            raise IngestionFailed(
                "Failed to create any embeddings from crawled content",
                chunks_failed=result.chunks_failed,
                pages_failed=result.pages_failed,
            )
        return result

    async def _ingest_page(
        self,
        page: CrawlPage,
        requested_url: str,
        owner_id: Optional[str],
    ) -> Tuple[str, int, int]:
        page_source = page.url or requested_url
        metadata = {"origin": "crawl", "crawledFrom": requested_url}
        title = page.metadata.get("title")
        if title:
            metadata["title"] = title

        stored, failed = await self._ingest_document(page.markdown, page_source, owner_id, metadata)
        return page_source, stored, failed

    async def _ingest_document(
        self,
        text: str,
        source: str,
        owner_id: Optional[str],
        metadata: Dict[str, Any],
    ) -> Tuple[int, int]:
        """
        Chunk, embed and upsert one document. Returns (stored, failed).

        Whitespace-only chunks carry no knowledge and are skipped; any
        point left at their index by an earlier version is removed.
        """
        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        stored = 0
        failed = 0
        blank_ids = []

        for index, chunk in enumerate(chunks):
            if not chunk.strip():
                blank_ids.append(answer_point_id(source, index))
                continue

            chunk_metadata = {
                **metadata,
                "chunkSize": self.chunk_size,
                "chunkOverlap": self.chunk_overlap,
                "chunkCount": len(chunks),
            }
            try:
                await self.store.upsert_answer(
                    owner_id,
                    chunk,
                    source,
                    metadata=chunk_metadata,
                    chunk_index=index,
                )
                stored += 1
            except ConfigurationError:
                raise
            except Exception as e:
                failed += 1
                logger.warning(f"Chunk {index} of {source} failed: {e}")

        if stored:
            try:
                await self.store.prune_source(source, keep_chunks=len(chunks))
                await self.store.delete_records(self.store.answers, blank_ids)
            except Exception as e:
                logger.warning(f"Could not prune stale chunks of {source}: {e}")

        return stored, failed

    @staticmethod
    def _normalize_ticket_id(ticket_id: Optional[str]) -> Optional[str]:
        if ticket_id is None or ticket_id == "":
            return None
        return str(parse_uuid(ticket_id, "ticket_id"))
