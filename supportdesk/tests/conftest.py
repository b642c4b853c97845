# supportdesk/tests/conftest.py
"""
Shared fixtures: in-process stores and deterministic fakes

- SQLite (aiosqlite, one shared connection) for the relational store
- Qdrant in :memory: mode for the vector index
- fakeredis for usage counters and notifications
- httpx.MockTransport standing in for the crawl service
- FakeEmbedder: fixed vectors for known texts, hashed vectors otherwise
"""

import fakeredis
import httpx
import pytest
from qdrant_client import AsyncQdrantClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from supportdesk.core.config import Settings
from supportdesk.core.container import ServiceContainer
from supportdesk.core.database import create_session_factory, init_db
from supportdesk.services.crawl_client import CrawlClient
from supportdesk.services.crawl_orchestrator import PollPolicy
from supportdesk.services.ticket_repository import TicketRepository
from supportdesk.services.vector_store import VectorStore
from supportdesk.tests.fakes import CRAWL_BASE_URL, DIM, FakeCrawlAPI, FakeEmbedder, SleepRecorder


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        embedding_dimension=DIM,
        database_url="sqlite+aiosqlite://",
        qdrant_location=":memory:",
        crawl_base_url=CRAWL_BASE_URL,
        crawl_max_status_checks=5,
        log_json=False,
    )


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def qdrant():
    client = AsyncQdrantClient(location=":memory:")
    yield client
    await client.close()


@pytest.fixture
async def store(qdrant, embedder):
    store = VectorStore(qdrant, embedder, DIM)
    await store.ensure_collections()
    return store


@pytest.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def crawl_api():
    return FakeCrawlAPI()


@pytest.fixture
async def crawl_client(crawl_api):
    http = httpx.AsyncClient(
        base_url=CRAWL_BASE_URL,
        transport=httpx.MockTransport(crawl_api.handler),
    )
    client = CrawlClient(http)
    yield client
    await client.close()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def poll_policy(sleep_recorder):
    return PollPolicy(interval_seconds=2.0, max_status_checks=5, progress_every=2, sleep=sleep_recorder)


@pytest.fixture
async def container(settings, engine, redis, qdrant, embedder, crawl_client, poll_policy):
    container = ServiceContainer.build(
        settings,
        engine=engine,
        redis=redis,
        qdrant=qdrant,
        embedder=embedder,
        crawl_client=crawl_client,
        poll_policy=poll_policy,
    )
    await container.startup()
    return container


@pytest.fixture
def make_chat(session_factory):
    """Create a chat row and return its id"""

    async def _make_chat(user_id: str, title: str = "support"):
        async with session_factory() as session:
            chat = await TicketRepository(session).create_chat(user_id, title)
            await session.commit()
            return chat.id

    return _make_chat
