"""API routers."""

from abacus.routers.cron import router as cron_router
from abacus.routers.health import router as health_router
from abacus.routers.webhooks import router as webhooks_router

__all__ = ["cron_router", "health_router", "webhooks_router"]
