"""BlockHaven Admin Gateway - Main Application."""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from blockhaven.api.admin import router as admin_router
from blockhaven.api.auth import router as auth_router
from blockhaven.dashboard import router as dashboard_router
from blockhaven.routers import health
from blockhaven.dependencies import get_settings, get_rate_limiter
from blockhaven.errors import AdminError
from blockhaven.logging_hardening import setup_logging
from blockhaven.middleware.request_context import RequestContextMiddleware
from blockhaven.middleware.request_gate import RequestGateMiddleware
from blockhaven.middleware.shutdown_gate import ShutdownGateMiddleware
from blockhaven.observability.tracing import setup_opentelemetry

logger = logging.getLogger(__name__)

settings = get_settings()

# Initialize logging redaction filters early
setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings.validate_for_startup()

    limiter = await get_rate_limiter()
    if limiter is None:
        logger.warning("No counter store configured: rate limiting disabled (fail open)")
    else:
        logger.info(f"Rate limiting enabled with {type(limiter.store).__name__}")

    yield
    # Shutdown
    logger.info("Initiating graceful shutdown...")
    ShutdownGateMiddleware.set_shutting_down(True)

    from blockhaven.adapters.redis.client import close_redis
    await close_redis()
    logger.info("Shutdown complete.")


app = FastAPI(
    title="BlockHaven Admin Gateway",
    description="Start/stop, status, logs and RCON for the BlockHaven Minecraft server",
    version="0.1.0",
    lifespan=lifespan
)

# Last added runs first: request context -> shutdown gate -> request gate
app.add_middleware(RequestGateMiddleware)
app.add_middleware(ShutdownGateMiddleware)
app.add_middleware(RequestContextMiddleware)

setup_opentelemetry(app, settings)


@app.exception_handler(AdminError)
async def admin_error_handler(request: Request, exc: AdminError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


# Mount routers
app.include_router(dashboard_router.router, prefix="", tags=["Dashboard"])
app.include_router(admin_router.router, prefix="/api/admin", tags=["Admin"])
app.include_router(auth_router.router, prefix="/api/auth", tags=["Auth"])
app.include_router(health.router, tags=["Health"])
