# supportdesk/routes/__init__.py
from .health_routes import router as health_router
from .knowledge_routes import router as knowledge_router
from .ticket_routes import router as ticket_router
from .usage_routes import notifications_router, router as usage_router

def include_routes(app):
    """Include all routes in the FastAPI app."""
    app.include_router(health_router)
    app.include_router(knowledge_router)
    app.include_router(ticket_router)
    app.include_router(usage_router)
    app.include_router(notifications_router)
