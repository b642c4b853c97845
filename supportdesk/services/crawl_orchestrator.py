# supportdesk/services/crawl_orchestrator.py
"""
Crawl Orchestrator - drives a crawl job from start to a final page set

State machine per job:
    REQUESTED -> PENDING -> COMPLETED | FAILED | TIMED_OUT

Polling is bounded by a PollPolicy (fixed interval, max status checks).
Cancelling the awaiting task stops polling at the next await; the upstream
job is left running, no cancel call is made.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from supportdesk.core.logger import get_logger
from supportdesk.services.crawl_client import CrawlClient, CrawlOptions, CrawlPage
from supportdesk.services.progress_events import EventSink, ProgressEventType, emit
from supportdesk.utils.exceptions import CrawlFailed, CrawlRejected, CrawlTimedOut, EmptyCrawl

logger = get_logger(__name__)


class CrawlJobState(str, Enum):
    REQUESTED = "requested"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class PollPolicy:
    """Bounded polling: `max_status_checks` polls, `interval_seconds` apart"""
    interval_seconds: float = 2.0
    max_status_checks: int = 300
    progress_every: int = 10
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @property
    def timeout_seconds(self) -> float:
        return self.interval_seconds * self.max_status_checks


@dataclass
class CrawlJob:
    url: str
    job_id: Optional[str] = None
    state: CrawlJobState = CrawlJobState.REQUESTED
    pages_found: int = 0
    status_checks: int = 0
    pages: List[CrawlPage] = field(default_factory=list)
    dropped_pages: int = 0


class CrawlOrchestrator:
    """Start a crawl, poll it to completion and return pages with content"""

    def __init__(self, client: CrawlClient, policy: Optional[PollPolicy] = None):
        self.client = client
        self.policy = policy or PollPolicy()

    async def run(
        self,
        url: str,
        options: Optional[CrawlOptions] = None,
        on_event: Optional[EventSink] = None,
    ) -> CrawlJob:
        """
        Crawl `url` and wait for the result.

        Returns:
            Completed CrawlJob whose `pages` all carry markdown content

        Raises:
            CrawlRejected: The service refused the job
            CrawlFailed: Upstream failure or unreadable status
            CrawlTimedOut: Not completed within max_status_checks polls
            EmptyCrawl: Completed without any page content
        """
        options = options or CrawlOptions()
        job = CrawlJob(url=url)

        await emit(on_event, ProgressEventType.CRAWL_STARTED, "Starting URL crawl...", url=url)

        try:
            job.job_id = await self.client.start_crawl(url, options)
        except CrawlRejected:
            job.state = CrawlJobState.FAILED
            raise
        job.state = CrawlJobState.PENDING

        status = await self._wait_for_completion(job, on_event)

        content_pages = [page for page in status.pages if page.has_content]
        job.dropped_pages = len(status.pages) - len(content_pages)
        job.pages = content_pages

        await emit(
            on_event,
            ProgressEventType.CRAWL_FINISHED,
            f"Processing {len(content_pages)} pages...",
            pages=len(content_pages),
            dropped=job.dropped_pages,
        )

        if not content_pages:
            job.state = CrawlJobState.FAILED
            raise EmptyCrawl(job.job_id, pages_found=job.pages_found)

        job.state = CrawlJobState.COMPLETED
        logger.info(
            f"Crawl {job.job_id} completed: {len(content_pages)} pages with content, "
            f"{job.dropped_pages} dropped, {job.status_checks} status checks"
        )
        return job

    async def _wait_for_completion(self, job: CrawlJob, on_event: Optional[EventSink]):
        last_total = 0

        while job.status_checks < self.policy.max_status_checks:
            await self.policy.sleep(self.policy.interval_seconds)
            job.status_checks += 1

            try:
                status = await self.client.get_status(job.job_id)
            except CrawlFailed:
                job.state = CrawlJobState.FAILED
                raise

            job.pages_found = status.total

            if status.is_failed:
                job.state = CrawlJobState.FAILED
                raise CrawlFailed(f"Crawl {job.job_id} {status.status} upstream", job_id=job.job_id)

            if status.is_completed:
                await emit(
                    on_event,
                    ProgressEventType.CRAWL_STATUS,
                    f"Completed crawl with {status.total} pages.",
                    pages_found=status.total,
                )
                return status

            if status.total != last_total or job.status_checks % self.policy.progress_every == 0:
                await emit(
                    on_event,
                    ProgressEventType.CRAWL_STATUS,
                    f"Found {status.total} pages... (Status: {status.status or 'in progress'})",
                    pages_found=status.total,
                )
                last_total = status.total

        job.state = CrawlJobState.TIMED_OUT
        logger.warning(f"Crawl {job.job_id} timed out after {job.status_checks} status checks")
        raise CrawlTimedOut(job.job_id, job.status_checks)
