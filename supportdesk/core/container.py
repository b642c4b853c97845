# supportdesk/core/container.py
"""
Service container - every external client is built once here and handed
to the services that need it. Nothing else in the package creates clients.
"""
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis
from qdrant_client import AsyncQdrantClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from supportdesk.core.config import Settings
from supportdesk.core.database import create_engine_from_settings, create_session_factory, init_db
from supportdesk.core.logger import get_logger
from supportdesk.services.chat_notification_service import ChatNotificationService
from supportdesk.services.crawl_client import CrawlClient, CrawlOptions
from supportdesk.services.crawl_orchestrator import CrawlOrchestrator, PollPolicy
from supportdesk.services.dedup_service import TicketDedupService
from supportdesk.services.embedding_api_client import EmbeddingAPIClient
from supportdesk.services.ingestion_service import IngestionService
from supportdesk.services.ticket_resolution_service import TicketResolutionService
from supportdesk.services.token_usage_service import TokenUsageService
from supportdesk.services.vector_store import VectorStore

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis: aioredis.Redis
    store: VectorStore
    crawl_client: CrawlClient
    ingestion: IngestionService
    dedup: TicketDedupService
    resolution: TicketResolutionService
    token_usage: TokenUsageService
    notifications: ChatNotificationService

    @classmethod
    def build(
        cls,
        settings: Settings,
        engine: AsyncEngine,
        redis: aioredis.Redis,
        qdrant: AsyncQdrantClient,
        embedder,
        crawl_client: CrawlClient,
        poll_policy: Optional[PollPolicy] = None,
    ) -> "ServiceContainer":
        """Compose services from already-built clients (tests pass fakes here)"""
        session_factory = create_session_factory(engine)
        store = VectorStore(
            qdrant,
            embedder,
            settings.embedding_dimension,
            answer_collection=settings.answer_collection,
            question_collection=settings.question_collection,
        )
        policy = poll_policy or PollPolicy(
            interval_seconds=settings.crawl_poll_interval_seconds,
            max_status_checks=settings.crawl_max_status_checks,
            progress_every=settings.crawl_progress_every,
        )
        notifications = ChatNotificationService(redis, settings.chat_notifications_prefix)

        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            redis=redis,
            store=store,
            crawl_client=crawl_client,
            ingestion=IngestionService(
                store,
                CrawlOrchestrator(crawl_client, policy),
                chunk_size=settings.chunk_size,
                chunk_overlap=settings.chunk_overlap,
                crawl_options=CrawlOptions(
                    limit=settings.crawl_page_limit,
                    max_depth=settings.crawl_max_depth,
                    formats=list(settings.crawl_formats),
                ),
                answer_limit=settings.answer_max_results,
                answer_threshold=settings.answer_similarity_threshold,
            ),
            dedup=TicketDedupService(
                session_factory,
                store,
                similarity_threshold=settings.dedup_similarity_threshold,
                max_results=settings.dedup_max_results,
            ),
            resolution=TicketResolutionService(
                session_factory,
                store,
                notifications,
                answer_threshold=settings.answer_similarity_threshold,
            ),
            token_usage=TokenUsageService.from_settings(redis, settings),
            notifications=notifications,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        """Build real clients for a running deployment"""
        if settings.qdrant_location:
            qdrant = AsyncQdrantClient(location=settings.qdrant_location)
        else:
            qdrant = AsyncQdrantClient(url=settings.qdrant_url, api_key=settings.qdrant_api_key)

        redis = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )

        return cls.build(
            settings,
            engine=create_engine_from_settings(settings),
            redis=redis,
            qdrant=qdrant,
            embedder=EmbeddingAPIClient.from_settings(settings),
            crawl_client=CrawlClient.from_settings(settings),
        )

    async def startup(self) -> None:
        """Create tables and collections that do not exist yet"""
        await init_db(self.engine)
        await self.store.ensure_collections()
        logger.info("Service container ready")

    async def close(self) -> None:
        for name, closer in (
            ("crawl client", self.crawl_client.close),
            ("vector store", self.store.close),
            ("redis", self.redis.aclose),
            ("database engine", self.engine.dispose),
        ):
            try:
                await closer()
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")

        embedder_close = getattr(self.store.embedder, "close", None)
        if embedder_close is not None:
            try:
                await embedder_close()
            except Exception as e:
                logger.warning(f"Error closing embedding client: {e}")
