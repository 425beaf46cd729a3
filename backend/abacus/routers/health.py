"""Health and sync status endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter

from abacus.routers.deps import AppSettings, DbSession
from abacus.schemas.sync import CamelModel, SyncStateOut
from abacus.services.adapters import PROVIDERS
from abacus.services.identity import IdentityResolver
from abacus.services.orchestrator import SyncOrchestrator

router = APIRouter(tags=["health"])


class HealthResponse(CamelModel):
    """Health check response."""

    status: str
    timestamp: datetime
    providers: list[SyncStateOut]
    unmapped_identifiers: int
    unmapped_occurrences: int


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession, settings: AppSettings) -> HealthResponse:
    """
    Health check endpoint with sync status.

    Returns the persisted sync state of every provider and how much data
    is still attributed to unmapped identifiers.
    """
    orchestrator = SyncOrchestrator(db, settings)
    providers = []
    for provider in PROVIDERS:
        snapshot = await orchestrator.get_status(provider)
        configured = orchestrator.adapter(provider).is_configured()
        providers.append(SyncStateOut.from_snapshot(provider, snapshot, configured=configured))

    unmapped = await IdentityResolver(db).unmapped_summary()

    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        providers=providers,
        unmapped_identifiers=unmapped["identifiers"],
        unmapped_occurrences=unmapped["occurrences"],
    )


@router.get("/ready")
async def readiness_check() -> dict:
    """Simple readiness probe for container orchestration."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict:
    """Simple liveness probe for container orchestration."""
    return {"status": "alive"}
