# supportdesk/services/crawl_client.py
"""
HTTP client for the crawl service (Firecrawl v1 API shape).

    POST /v1/crawl          -> {"success": true, "id": "<job id>"}
    GET  /v1/crawl/{job_id} -> {"status", "total", "completed", "data": [...], "next"}

Completed jobs may paginate their page data through `next` links; the
client follows them so callers always see the full page set.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from supportdesk.core.logger import get_logger
from supportdesk.utils.exceptions import CrawlFailed, CrawlRejected

logger = get_logger(__name__)

MAX_RESULT_PAGES = 100


@dataclass
class CrawlOptions:
    limit: int = 10
    max_depth: int = 3
    formats: List[str] = field(default_factory=lambda: ["markdown"])
    only_main_content: bool = True

    def to_payload(self, url: str) -> Dict[str, Any]:
        return {
            "url": url,
            "limit": self.limit,
            "maxDepth": self.max_depth,
            "scrapeOptions": {
                "formats": list(self.formats),
                "onlyMainContent": self.only_main_content,
            },
        }


@dataclass
class CrawlPage:
    url: Optional[str]
    markdown: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_content(self) -> bool:
        return bool(self.markdown and self.markdown.strip())


@dataclass
class CrawlStatus:
    status: str
    total: int = 0
    completed: int = 0
    pages: List[CrawlPage] = field(default_factory=list)
    next_url: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_failed(self) -> bool:
        return self.status in ("failed", "cancelled")


def _parse_pages(items: List[Dict[str, Any]]) -> List[CrawlPage]:
    pages = []
    for item in items or []:
        metadata = item.get("metadata") or {}
        pages.append(
            CrawlPage(
                url=metadata.get("sourceURL") or metadata.get("url"),
                markdown=item.get("markdown"),
                metadata=metadata,
            )
        )
    return pages


class CrawlClient:
    """Thin async wrapper over the crawl service's start/status endpoints"""

    def __init__(self, http: httpx.AsyncClient):
        """
        Args:
            http: AsyncClient with base_url, auth headers and timeout configured
        """
        self.http = http

    @classmethod
    def from_settings(cls, settings) -> "CrawlClient":
        headers = {"Content-Type": "application/json"}
        if settings.crawl_api_key:
            headers["Authorization"] = f"Bearer {settings.crawl_api_key}"
        http = httpx.AsyncClient(
            base_url=settings.crawl_base_url,
            headers=headers,
            timeout=httpx.Timeout(settings.crawl_request_timeout_seconds),
        )
        return cls(http)

    async def start_crawl(self, url: str, options: CrawlOptions) -> str:
        """
        Ask the service to crawl `url`.

        Returns:
            Job id

        Raises:
            CrawlRejected: Transport error, non-2xx, or a body without a job id
        """
        try:
            response = await self.http.post("/v1/crawl", json=options.to_payload(url))
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise CrawlRejected(f"Crawl service rejected {url}: HTTP {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            raise CrawlRejected(f"Failed to initiate crawl of {url}: {e}")

        job_id = data.get("id")
        if not data.get("success", False) or not job_id:
            raise CrawlRejected(f"Failed to initiate crawl of {url}: {data.get('error', 'no job id')}")

        logger.info(f"Crawl job {job_id} started for {url}")
        return str(job_id)

    async def get_status(self, job_id: str) -> CrawlStatus:
        """
        Read job status. Once completed, all result pages are collected.

        Raises:
            CrawlFailed: The status could not be read
        """
        data = await self._get_json(f"/v1/crawl/{job_id}", job_id)
        status = CrawlStatus(
            status=str(data.get("status", "unknown")),
            total=int(data.get("total") or 0),
            completed=int(data.get("completed") or 0),
            pages=_parse_pages(data.get("data")),
            next_url=data.get("next"),
        )

        if status.is_completed:
            followed = 0
            while status.next_url and followed < MAX_RESULT_PAGES:
                extra = await self._get_json(status.next_url, job_id)
                status.pages.extend(_parse_pages(extra.get("data")))
                status.next_url = extra.get("next")
                followed += 1

        return status

    async def _get_json(self, url: str, job_id: str) -> Dict[str, Any]:
        try:
            response = await self.http.get(url)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise CrawlFailed(
                f"Failed to check crawl status: HTTP {e.response.status_code}", job_id=job_id
            )
        except (httpx.HTTPError, ValueError) as e:
            raise CrawlFailed(f"Failed to check crawl status: {e}", job_id=job_id)

    async def close(self) -> None:
        await self.http.aclose()
