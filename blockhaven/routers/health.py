from fastapi import APIRouter
from fastapi.responses import JSONResponse
from blockhaven.dependencies import get_redis_client
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health/live")
async def liveness():
    """Liveness probe: Service is running."""
    return {"status": "ok", "checks": {"api": "ok"}}


@router.get("/health/ready")
async def readiness():
    """Readiness probe: counter store reachable (when configured)."""
    health = {"status": "ok", "checks": {}}

    redis = await get_redis_client()
    if redis is None:
        health["checks"]["redis"] = "not_configured"
    else:
        try:
            await redis.ping()
            health["checks"]["redis"] = "ok"
        except Exception as e:
            logger.error(f"Health check failed (redis): {e}")
            health["checks"]["redis"] = "failed"
            health["status"] = "failed"

    if health["status"] == "failed":
        return JSONResponse(status_code=503, content=health)

    return health
