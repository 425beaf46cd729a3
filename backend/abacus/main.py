"""FastAPI application for the Abacus usage-sync backend."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from abacus.config import get_settings
from abacus.database import check_db_ready, engine
from abacus.routers import cron_router, health_router, webhooks_router
from abacus.routers.deps import limiter
from abacus.services.adapters import PROVIDERS
from abacus.tasks.scheduler import setup_scheduler, shutdown_scheduler

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
# httpx logs every provider request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting Abacus backend...")

    # Verify database is ready
    try:
        await check_db_ready()
        logger.info("Database ready")
    except Exception as e:
        logger.error(f"Database not ready: {e}")
        raise

    # External cron drives the endpoints unless the embedded scheduler is on
    if settings.enable_scheduler:
        setup_scheduler()
    else:
        logger.info(f"Embedded scheduler disabled; expecting cron calls to {settings.api_prefix}/cron")

    yield

    # Shutdown
    shutdown_scheduler()
    await engine.dispose()
    logger.info("Abacus backend shut down")


# Create FastAPI app
app = FastAPI(
    title="Abacus API",
    description="AI coding tool usage and commit attribution sync",
    version="0.1.0",
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include routers
app.include_router(health_router)
app.include_router(cron_router, prefix=settings.api_prefix)
app.include_router(webhooks_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Abacus API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
        "providers": list(PROVIDERS),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "abacus.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
