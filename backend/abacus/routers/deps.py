"""Shared router dependencies."""

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from abacus.config import Settings, get_settings
from abacus.database import get_db
from abacus.services.adapters import UnknownProviderError
from abacus.services.mapping_sync import MappingSyncService
from abacus.services.orchestrator import SyncOrchestrator
from abacus.services.webhooks import WebhookProcessor

# Rate limiter
limiter = Limiter(key_func=get_remote_address)

cron_rate_limit = f"{get_settings().rate_limit_per_minute}/minute"

DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


async def verify_cron_secret(
    settings: AppSettings,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>`."""
    if not settings.cron_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="CRON_SECRET not configured",
        )
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def get_orchestrator(provider: str, db: DbSession, settings: AppSettings) -> SyncOrchestrator:
    """Orchestrator for the request; 404 when the provider is unknown."""
    orchestrator = SyncOrchestrator(db, settings)
    try:
        orchestrator.adapter(provider)
    except UnknownProviderError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
    return orchestrator


async def get_mapping_service(db: DbSession, settings: AppSettings) -> MappingSyncService:
    return MappingSyncService(db, settings)


async def get_webhook_processor(db: DbSession, settings: AppSettings) -> WebhookProcessor:
    return WebhookProcessor(db, settings)
