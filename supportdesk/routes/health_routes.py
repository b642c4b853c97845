# supportdesk/routes/health_routes.py
"""
Health Check Endpoint

GET /health - status of database, Redis, Qdrant and the embedding client;
    503 when a required store is down
GET /health/circuit-breakers - embedding API breaker state
POST /health/circuit-breakers/reset - force the breaker closed
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from supportdesk.core.container import ServiceContainer
from supportdesk.core.database import check_connection
from supportdesk.core.logger import get_logger
from supportdesk.dependencies import get_container
from supportdesk.schemas.common import APIResponse
from supportdesk.utils.exceptions import NotFoundError

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def get_overall_health(container: ServiceContainer = Depends(get_container)):
    components = {"database": await check_connection(container.engine)}

    try:
        components["redis"] = bool(await container.redis.ping())
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        components["redis"] = False

    try:
        await container.store.client.get_collections()
        components["qdrant"] = True
    except Exception as e:
        logger.warning(f"Qdrant health check failed: {e}")
        components["qdrant"] = False

    # Redis failing open keeps the service usable, so it only degrades
    if not (components["database"] and components["qdrant"]):
        overall = "unhealthy"
    elif not components["redis"]:
        overall = "degraded"
    else:
        overall = "healthy"

    body = {"overall_status": overall, "components": components}
    get_status = getattr(container.store.embedder, "get_status", None)
    if get_status is not None:
        body["embedding_api"] = get_status()

    return JSONResponse(status_code=503 if overall == "unhealthy" else 200, content=body)


def _embedding_breaker(container: ServiceContainer):
    breaker = getattr(container.store.embedder, "breaker", None)
    if breaker is None:
        raise NotFoundError("Circuit breaker", "embedding_api")
    return breaker


@router.get("/circuit-breakers")
async def get_circuit_breakers_status(container: ServiceContainer = Depends(get_container)):
    """Status of the embedding API circuit breaker"""
    status = _embedding_breaker(container).get_status()
    return APIResponse.ok(status, status="warning" if status["state"] == "open" else "ok")


@router.post("/circuit-breakers/reset")
async def reset_circuit_breaker(container: ServiceContainer = Depends(get_container)):
    """Close the embedding breaker after the upstream is known to be back"""
    breaker = _embedding_breaker(container)
    breaker.reset()
    logger.info(f"Circuit breaker '{breaker.name}' reset manually")
    return APIResponse.ok(breaker.get_status())
