# supportdesk/utils/exceptions.py
"""Custom exceptions for SupportDesk"""
from typing import Any, Optional


class SupportDeskException(Exception):
    """Base exception for SupportDesk"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InvalidInput(SupportDeskException):
    """Bad call shape - caller bug, never retried"""
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, "INVALID_INPUT", 400, details)


class UnauthorizedError(SupportDeskException):
    """Caller identity missing"""
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message, "UNAUTHORIZED", 401)


class NotFoundError(SupportDeskException):
    """Resource not found"""
    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message += f": {identifier}"
        super().__init__(message, "NOT_FOUND", 404)


class ConfigurationError(SupportDeskException):
    """Deployment or configuration error"""
    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR", 500)


class DimensionMismatch(ConfigurationError):
    """Embedding vector size differs from the configured dimension"""
    def __init__(self, expected: int, actual: int, where: str = "embedding"):
        super().__init__(
            f"{where} has dimension {actual}, expected {expected}"
        )
        self.code = "DIMENSION_MISMATCH"
        self.details = {"expected": expected, "actual": actual, "where": where}


class EmbeddingUnavailable(SupportDeskException):
    """Upstream embedding model errored, timed out or is circuit-broken"""
    def __init__(self, message: str = "Embedding service unavailable"):
        super().__init__(message, "EMBEDDING_UNAVAILABLE", 503)


class CrawlError(SupportDeskException):
    """Base for crawl orchestration failures"""


class CrawlRejected(CrawlError):
    """Crawl service refused to start the job"""
    def __init__(self, message: str):
        super().__init__(message, "CRAWL_REJECTED", 502)


class CrawlFailed(CrawlError):
    """Crawl job failed upstream or its status could not be read"""
    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message, "CRAWL_FAILED", 502, {"job_id": job_id})


class CrawlTimedOut(CrawlError):
    """Crawl job did not complete within the poll budget"""
    def __init__(self, job_id: str, status_checks: int):
        super().__init__(
            f"Crawl {job_id} timed out after {status_checks} status checks",
            "CRAWL_TIMED_OUT",
            504,
            {"job_id": job_id, "status_checks": status_checks},
        )


class EmptyCrawl(CrawlError):
    """Crawl completed but no page had extractable content"""
    def __init__(self, job_id: str, pages_found: int = 0):
        super().__init__(
            f"No content found from crawl {job_id}",
            "EMPTY_CRAWL",
            422,
            {"job_id": job_id, "pages_found": pages_found},
        )


class IngestionFailed(SupportDeskException):
    """No chunk of the ingested input could be stored"""
    def __init__(
        self,
        message: str,
        chunks_processed: int = 0,
        chunks_failed: int = 0,
        pages_failed: int = 0,
    ):
        super().__init__(
            message,
            "INGESTION_FAILED",
            502,
            {
                "chunks_processed": chunks_processed,
                "chunks_failed": chunks_failed,
                "pages_failed": pages_failed,
            },
        )
        self.chunks_processed = chunks_processed
        self.chunks_failed = chunks_failed
        self.pages_failed = pages_failed
