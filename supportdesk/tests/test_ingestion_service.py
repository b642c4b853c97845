# supportdesk/tests/test_ingestion_service.py
"""Ingestion pipeline tests: direct content, crawled sites, failure accounting"""

import uuid

import pytest

from supportdesk.services.crawl_orchestrator import CrawlOrchestrator
from supportdesk.services.embedding_api_client import EmbeddingAPIClient
from supportdesk.services.ingestion_service import DIRECT_INPUT_PREFIX, IngestionService
from supportdesk.services.progress_events import EventCollector, ProgressEventType
from supportdesk.services.vector_store import VectorStore
from supportdesk.tests.fakes import DIM, FakeEmbeddings, FakeOpenAI, crawl_status, page, unit
from supportdesk.utils.exceptions import DimensionMismatch, IngestionFailed, InvalidInput

SITE = "https://docs.example.com"


@pytest.fixture
def ingestion(store, crawl_client, poll_policy):
    return IngestionService(
        store,
        CrawlOrchestrator(crawl_client, poll_policy),
        chunk_size=100,
        chunk_overlap=20,
    )


async def count_answers(store):
    result = await store.client.count(collection_name=store.answers.collection, exact=True)
    return result.count


class TestIngestArguments:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"content": "text", "url": SITE},
            {"content": "   "},
            {"url": "ftp://docs.example.com"},
            {"url": "not a url"},
            {"content": "text", "ticket_id": "not-a-uuid"},
        ],
    )
    async def test_invalid_calls(self, ingestion, kwargs):
        with pytest.raises(InvalidInput):
            await ingestion.ingest(**kwargs)


class TestDirectContent:

    @pytest.mark.asyncio
    async def test_content_is_chunked_and_stored(self, ingestion, store):
        text = "".join(chr(ord("a") + i % 26) for i in range(250))

        result = await ingestion.ingest(content=text)

        assert result.chunks_processed == 3
        assert result.chunks_failed == 0
        assert len(result.sources) == 1
        assert result.sources[0].startswith(DIRECT_INPUT_PREFIX)
        records = await store.list_by_source(result.sources[0])
        assert [r.chunk_index for r in records] == [0, 1, 2]
        assert records[0].metadata["chunkCount"] == 3

    @pytest.mark.asyncio
    async def test_reingesting_same_source_adds_no_records(self, ingestion, store):
        await ingestion.ingest(content="Refunds take five days.", source="faq:refunds")
        await ingestion.ingest(content="Refunds take five days.", source="faq:refunds")

        assert await count_answers(store) == 1

    @pytest.mark.asyncio
    async def test_shorter_version_prunes_stale_chunks(self, ingestion, store):
        await ingestion.ingest(content="x" * 300, source="doc")
        assert len(await store.list_by_source("doc")) > 1

        await ingestion.ingest(content="short now", source="doc")

        records = await store.list_by_source("doc")
        assert [r.content for r in records] == ["short now"]

    @pytest.mark.asyncio
    async def test_ticket_id_becomes_owner(self, ingestion, store):
        ticket_id = uuid.uuid4()

        result = await ingestion.ingest(content="answer", ticket_id=str(ticket_id))

        records = await store.list_by_source(result.sources[0])
        assert records[0].owner_id == str(ticket_id)

    @pytest.mark.asyncio
    async def test_embedding_failure_for_every_chunk_fails(self, ingestion, embedder):
        embedder.unavailable = True

        with pytest.raises(IngestionFailed) as exc:
            await ingestion.ingest(content="some answer")
        assert exc.value.chunks_processed == 0
        assert exc.value.chunks_failed == 1

    @pytest.mark.asyncio
    async def test_partial_chunk_failure_is_counted(self, ingestion, embedder):
        text = "".join(chr(ord("a") + i % 26) for i in range(250))
        embedder.failing_texts.add(text[80:180])

        result = await ingestion.ingest(content=text)

        assert result.chunks_processed == 2
        assert result.chunks_failed == 1

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_not_swallowed(self, ingestion, embedder):
        embedder.vectors["bad"] = [1.0, 2.0]

        with pytest.raises(DimensionMismatch):
            await ingestion.ingest(content="bad")


class TestUrlIngestion:

    @pytest.mark.asyncio
    async def test_pages_stored_under_their_urls(self, ingestion, store, crawl_api):
        crawl_api.statuses = [
            crawl_status("scraping", total=2),
            crawl_status("completed", [
                page(f"{SITE}/install", "Install with pip.", title="Install"),
                page(f"{SITE}/usage", "Call run().", title="Usage"),
                page(f"{SITE}/blank", None),
            ]),
        ]
        events = EventCollector()

        result = await ingestion.ingest(url=SITE, on_event=events)

        assert result.pages_processed == 2
        assert result.chunks_processed == 2
        assert sorted(result.sources) == [f"{SITE}/install", f"{SITE}/usage"]
        assert result.job_id == "job-1"
        records = await store.list_by_source(f"{SITE}/install")
        assert records[0].metadata["title"] == "Install"
        assert records[0].metadata["crawledFrom"] == SITE
        assert events.of_type(ProgressEventType.PROCESSING_STATUS)
        assert events.of_type(ProgressEventType.CRAWL_FINISHED)

    @pytest.mark.asyncio
    async def test_recrawl_refreshes_pages_in_place(self, ingestion, store, crawl_api):
        crawl_api.statuses = [crawl_status("completed", [page(f"{SITE}/a", "Version one")])]
        await ingestion.ingest(url=SITE)

        crawl_api.status_calls = 0
        crawl_api.statuses = [crawl_status("completed", [page(f"{SITE}/a", "Version two")])]
        await ingestion.ingest(url=SITE)

        records = await store.list_by_source(f"{SITE}/a")
        assert [r.content for r in records] == ["Version two"]
        assert await count_answers(store) == 1

    @pytest.mark.asyncio
    async def test_crawl_timeout_is_ingestion_failure(self, ingestion, store, crawl_api):
        crawl_api.statuses = [crawl_status("scraping", total=4)]

        with pytest.raises(IngestionFailed) as exc:
            await ingestion.ingest(url=SITE)

        assert exc.value.chunks_processed == 0
        assert await count_answers(store) == 0

    @pytest.mark.asyncio
    async def test_empty_crawl_is_ingestion_failure(self, ingestion, crawl_api):
        crawl_api.statuses = [crawl_status("completed", [page(f"{SITE}/a", None)])]

        with pytest.raises(IngestionFailed):
            await ingestion.ingest(url=SITE)

    @pytest.mark.asyncio
    async def test_rejected_crawl_is_ingestion_failure(self, ingestion, crawl_api):
        crawl_api.start_response = {"success": False}

        with pytest.raises(IngestionFailed):
            await ingestion.ingest(url=SITE)

    @pytest.mark.asyncio
    async def test_failed_page_does_not_stop_others(self, ingestion, embedder, crawl_api):
        embedder.failing_texts.add("Broken page")
        crawl_api.statuses = [crawl_status("completed", [
            page(f"{SITE}/ok", "Fine page"),
            page(f"{SITE}/broken", "Broken page"),
        ])]

        result = await ingestion.ingest(url=SITE)

        assert result.pages_processed == 1
        assert result.pages_failed == 1
        assert result.chunks_failed == 1
        assert result.sources == [f"{SITE}/ok"]


class TestBlankChunks:
    """Whitespace runs inside documents, embedded with the real API client"""

    @pytest.fixture
    def openai_embeddings(self):
        return FakeEmbeddings(dimension=DIM)

    @pytest.fixture
    async def api_store(self, qdrant, openai_embeddings):
        client = EmbeddingAPIClient(FakeOpenAI(openai_embeddings), model="embed-test", dimension=DIM)
        store = VectorStore(qdrant, client, DIM)
        await store.ensure_collections()
        return store

    @pytest.fixture
    def api_ingestion(self, api_store, crawl_client, poll_policy):
        return IngestionService(
            api_store,
            CrawlOrchestrator(crawl_client, poll_policy),
            chunk_size=100,
            chunk_overlap=20,
        )

    @pytest.mark.asyncio
    async def test_page_with_blank_tail_is_stored(
        self, api_ingestion, api_store, openai_embeddings, crawl_api
    ):
        padded = "Intro" + " " * 95 + "\n" * 150
        crawl_api.statuses = [crawl_status("completed", [
            page(f"{SITE}/ok", "Fine page"),
            page(f"{SITE}/padded", padded),
        ])]

        result = await api_ingestion.ingest(url=SITE)

        assert result.pages_processed == 2
        assert result.pages_failed == 0
        assert result.chunks_processed == 2
        assert result.chunks_failed == 0
        records = await api_store.list_by_source(f"{SITE}/padded")
        assert [r.chunk_index for r in records] == [0]
        assert all(r["input"].strip() for r in openai_embeddings.requests)

    @pytest.mark.asyncio
    async def test_chunks_that_became_blank_are_removed(self, api_ingestion, api_store):
        await api_ingestion.ingest(content="x" * 300, source="doc")
        assert len(await api_store.list_by_source("doc")) == 3

        await api_ingestion.ingest(content="short" + " " * 295, source="doc")

        records = await api_store.list_by_source("doc")
        assert [r.chunk_index for r in records] == [0]
        assert records[0].content.startswith("short")

    @pytest.mark.asyncio
    async def test_chunk_rejected_by_embedder_is_counted(self, ingestion, embedder, crawl_api, monkeypatch):
        original = embedder.embed

        async def embed(text):
            if text == "Rejected page":
                raise InvalidInput("Cannot embed this text")
            return await original(text)

        monkeypatch.setattr(embedder, "embed", embed)
        crawl_api.statuses = [crawl_status("completed", [
            page(f"{SITE}/ok", "Fine page"),
            page(f"{SITE}/rejected", "Rejected page"),
        ])]

        result = await ingestion.ingest(url=SITE)

        assert result.pages_processed == 1
        assert result.pages_failed == 1
        assert result.chunks_failed == 1


class TestSearchKnowledge:

    @pytest.mark.asyncio
    async def test_finds_ingested_answer(self, ingestion, embedder):
        embedder.vectors.update({
            "Staking is done from the wallet page.": unit(0),
            "How do I stake?": unit(0),
        })
        await ingestion.ingest(content="Staking is done from the wallet page.")

        results = await ingestion.search_knowledge("How do I stake?")

        assert [r.record.content for r in results] == ["Staking is done from the wallet page."]

    @pytest.mark.asyncio
    async def test_blank_query_is_invalid(self, ingestion):
        with pytest.raises(InvalidInput):
            await ingestion.search_knowledge("  ")
