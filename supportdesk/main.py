# supportdesk/main.py
"""
SupportDesk Knowledge Assistant - Main FastAPI Application

Backend for a support assistant:
- Knowledge ingestion from operator text or crawled sites
- Semantic answer retrieval
- Ticket deduplication for unanswered questions
- Ticket resolution with subscriber fanout
- Per-user token budgets
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from supportdesk.core.config import Settings, get_settings
from supportdesk.core.container import ServiceContainer
from supportdesk.core.logger import configure_logging, get_logger
from supportdesk.middleware import register_error_handlers
from supportdesk.routes import include_routes

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the application.

    A prebuilt container (tests) is used as-is and left open on shutdown;
    otherwise one is built from settings in the lifespan and closed with it.
    """
    settings = settings or (container.settings if container else get_settings())
    configure_logging(settings.log_level, settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        app.state.container = container or ServiceContainer.from_settings(settings)
        if owned:
            await app.state.container.startup()
        logger.info(f"{settings.api_title} {settings.api_version} started")
        try:
            yield
        finally:
            if owned:
                await app.state.container.close()
            logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.api_title,
        description="Knowledge ingestion, semantic search and ticket deduplication",
        version=settings.api_version,
        lifespan=lifespan,
    )

    # ==================== MIDDLEWARE SETUP ====================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==================== ERROR HANDLERS ====================

    register_error_handlers(app)

    # ==================== ROUTE REGISTRATION ====================

    include_routes(app)

    return app


app = create_app()
