# supportdesk/tests/test_crawl_orchestrator.py
"""Crawl client and orchestrator tests against a scripted crawl service"""

import asyncio

import pytest

from supportdesk.services.crawl_client import CrawlOptions
from supportdesk.services.crawl_orchestrator import CrawlOrchestrator, CrawlJobState, PollPolicy
from supportdesk.services.progress_events import EventCollector, ProgressEventType
from supportdesk.tests.fakes import CRAWL_BASE_URL, crawl_status, page
from supportdesk.utils.exceptions import CrawlFailed, CrawlRejected, CrawlTimedOut, EmptyCrawl

SITE = "https://docs.example.com"


@pytest.fixture
def orchestrator(crawl_client, poll_policy):
    return CrawlOrchestrator(crawl_client, poll_policy)


class TestCrawlClient:

    @pytest.mark.asyncio
    async def test_start_sends_crawl_options(self, crawl_client, crawl_api):
        job_id = await crawl_client.start_crawl(SITE, CrawlOptions(limit=7, max_depth=2))

        assert job_id == "job-1"
        assert crawl_api.started == [{
            "url": SITE,
            "limit": 7,
            "maxDepth": 2,
            "scrapeOptions": {"formats": ["markdown"], "onlyMainContent": True},
        }]

    @pytest.mark.asyncio
    async def test_http_error_on_start_is_rejected(self, crawl_client, crawl_api):
        crawl_api.start_status_code = 402

        with pytest.raises(CrawlRejected):
            await crawl_client.start_crawl(SITE, CrawlOptions())

    @pytest.mark.asyncio
    async def test_unsuccessful_start_is_rejected(self, crawl_client, crawl_api):
        crawl_api.start_response = {"success": False, "error": "bad url"}

        with pytest.raises(CrawlRejected):
            await crawl_client.start_crawl(SITE, CrawlOptions())

    @pytest.mark.asyncio
    async def test_completed_status_follows_next_links(self, crawl_client, crawl_api):
        next_url = f"{CRAWL_BASE_URL}/v1/crawl/job-1?skip=1"
        crawl_api.statuses = [
            crawl_status("completed", [page(f"{SITE}/a", "# A")], total=2, next_url=next_url)
        ]
        crawl_api.next_pages[next_url] = {"status": "completed", "data": [page(f"{SITE}/b", "# B")]}

        status = await crawl_client.get_status("job-1")

        assert status.is_completed
        assert [p.url for p in status.pages] == [f"{SITE}/a", f"{SITE}/b"]

    @pytest.mark.asyncio
    async def test_status_http_error_is_failed(self, crawl_client, crawl_api):
        crawl_api.statuses = [500]

        with pytest.raises(CrawlFailed):
            await crawl_client.get_status("job-1")


class TestCrawlOrchestrator:

    @pytest.mark.asyncio
    async def test_completed_crawl_returns_pages_with_content(self, orchestrator, crawl_api, sleep_recorder):
        crawl_api.statuses = [
            crawl_status("scraping", total=1),
            crawl_status("completed", [page(f"{SITE}/a", "# A"), page(f"{SITE}/empty", None)]),
        ]

        job = await orchestrator.run(SITE)

        assert job.state == CrawlJobState.COMPLETED
        assert job.job_id == "job-1"
        assert [p.url for p in job.pages] == [f"{SITE}/a"]
        assert job.dropped_pages == 1
        assert job.status_checks == 2
        assert sleep_recorder.calls == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_times_out_after_max_status_checks(self, orchestrator, crawl_api):
        crawl_api.statuses = [crawl_status("scraping", total=3)]

        with pytest.raises(CrawlTimedOut) as exc:
            await orchestrator.run(SITE)

        assert crawl_api.status_calls == 5
        assert exc.value.details["status_checks"] == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("upstream", ["failed", "cancelled"])
    async def test_upstream_failure(self, orchestrator, crawl_api, upstream):
        crawl_api.statuses = [crawl_status("scraping"), crawl_status(upstream)]

        with pytest.raises(CrawlFailed):
            await orchestrator.run(SITE)
        assert crawl_api.status_calls == 2

    @pytest.mark.asyncio
    async def test_status_error_fails_job(self, orchestrator, crawl_api):
        crawl_api.statuses = [503]

        with pytest.raises(CrawlFailed):
            await orchestrator.run(SITE)
        assert crawl_api.status_calls == 1

    @pytest.mark.asyncio
    async def test_completed_without_content_is_empty(self, orchestrator, crawl_api):
        crawl_api.statuses = [
            crawl_status("completed", [page(f"{SITE}/a", ""), page(f"{SITE}/b", "   ")])
        ]

        with pytest.raises(EmptyCrawl):
            await orchestrator.run(SITE)

    @pytest.mark.asyncio
    async def test_rejected_start_does_not_poll(self, orchestrator, crawl_api, sleep_recorder):
        crawl_api.start_status_code = 500

        with pytest.raises(CrawlRejected):
            await orchestrator.run(SITE)
        assert crawl_api.status_calls == 0
        assert sleep_recorder.calls == []

    @pytest.mark.asyncio
    async def test_progress_events(self, orchestrator, crawl_api):
        crawl_api.statuses = [
            crawl_status("scraping", total=0),
            crawl_status("scraping", total=0),
            crawl_status("scraping", total=3),
            crawl_status("scraping", total=3),
            crawl_status("completed", [page(f"{SITE}/{i}", f"# {i}") for i in range(3)]),
        ]
        events = EventCollector()

        await orchestrator.run(SITE, on_event=events)

        assert len(events.of_type(ProgressEventType.CRAWL_STARTED)) == 1
        # poll 2 (every 2nd), poll 3 (count changed), poll 4 (every 2nd), completion
        status_events = events.of_type(ProgressEventType.CRAWL_STATUS)
        assert [e.data["pages_found"] for e in status_events] == [0, 3, 3, 3]
        assert events.of_type(ProgressEventType.CRAWL_FINISHED)[0].data["pages"] == 3

    @pytest.mark.asyncio
    async def test_failing_event_sink_does_not_break_crawl(self, orchestrator, crawl_api):
        crawl_api.statuses = [crawl_status("completed", [page(f"{SITE}/a", "# A")])]

        def broken_sink(event):
            raise RuntimeError("sink down")

        job = await orchestrator.run(SITE, on_event=broken_sink)
        assert job.state == CrawlJobState.COMPLETED

    @pytest.mark.asyncio
    async def test_cancellation_stops_polling(self, crawl_client, crawl_api):
        crawl_api.statuses = [crawl_status("scraping", total=1)]

        async def short_sleep(seconds):
            await asyncio.sleep(0.01)

        orchestrator = CrawlOrchestrator(
            crawl_client, PollPolicy(interval_seconds=0.01, max_status_checks=1000, sleep=short_sleep)
        )
        task = asyncio.create_task(orchestrator.run(SITE))

        for _ in range(200):
            if crawl_api.status_calls >= 2:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        polls = crawl_api.status_calls
        await asyncio.sleep(0.1)
        assert crawl_api.status_calls == polls
        assert polls >= 2

    def test_timeout_ceiling(self):
        assert PollPolicy(interval_seconds=2.0, max_status_checks=300).timeout_seconds == 600.0
