# supportdesk/middleware/error_handler.py
"""Global error handling middleware"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from supportdesk.core.logger import get_logger
from supportdesk.schemas.common import APIResponse
from supportdesk.utils.exceptions import SupportDeskException

logger = get_logger(__name__)


def register_error_handlers(app: FastAPI):
    """Register error handlers with FastAPI app"""

    @app.exception_handler(SupportDeskException)
    async def supportdesk_exception_handler(request: Request, exc: SupportDeskException):
        """Handle custom SupportDesk exceptions"""
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}")
        else:
            logger.warning(f"{exc.code}: {exc.message}")
        body = APIResponse.fail(exc.code, exc.message, exc.details, path=str(request.url.path))
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.error(f"Unexpected error: {exc}", exc_info=True)
        body = APIResponse.fail(
            "INTERNAL_SERVER_ERROR",
            "An unexpected error occurred",
            path=str(request.url.path),
        )
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))
