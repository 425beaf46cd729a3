"""Cron-trigger endpoints for forward sync, backfill and mapping sync."""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from abacus.routers.deps import (
    AppSettings,
    cron_rate_limit,
    get_mapping_service,
    get_orchestrator,
    limiter,
    verify_cron_secret,
)
from abacus.schemas.sync import BackfillResponse, ForwardSyncResponse, MappingResponse, SyncStateOut
from abacus.services.adapters import PROVIDERS
from abacus.services.mapping_sync import MappingSyncService
from abacus.services.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.api_route("/sync/{provider}", methods=["GET", "POST"], response_model=ForwardSyncResponse)
@limiter.limit(cron_rate_limit)
async def forward_sync(
    request: Request,
    provider: str,
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
    mapping_service: Annotated[MappingSyncService, Depends(get_mapping_service)],
    settings: AppSettings,
    include_mappings: bool = Query(False, description="Reconcile identity mappings after syncing"),
) -> ForwardSyncResponse:
    """
    Catch a provider up to the present.

    Safe to call more often than the provider's cadence: when nothing is
    due, `didSync` is false and `syncedRange` is null.
    """
    result = await orchestrator.run_forward_sync(provider)
    response = ForwardSyncResponse.from_result(result, settings.max_errors_reported)

    if include_mappings and not result.skipped:
        mappings = await mapping_service.sync_mappings(provider)
        response.mappings = MappingResponse.from_result(mappings, settings.max_errors_reported)

    return response


@router.api_route("/backfill/{provider}", methods=["GET", "POST"], response_model=BackfillResponse)
@limiter.limit(cron_rate_limit)
async def backfill(
    request: Request,
    provider: str,
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
    settings: AppSettings,
    target_date: date | None = Query(None, description="Oldest date to backfill to (YYYY-MM-DD)"),
) -> BackfillResponse:
    """Process one backfill batch, walking backward toward the target date."""
    result = await orchestrator.run_backfill(provider, target_date)
    return BackfillResponse.from_result(result, settings.max_errors_reported)


@router.post("/backfill/{provider}/reset", response_model=SyncStateOut)
@limiter.limit(cron_rate_limit)
async def reset_backfill(
    request: Request,
    provider: str,
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> SyncStateOut:
    """
    Clear the completed flag so the next backfill call resumes.

    The oldest backfilled date is kept.
    """
    snapshot = await orchestrator.reset_backfill(provider)
    return SyncStateOut.from_snapshot(provider, snapshot)


@router.post("/sync-mappings/{provider}", response_model=MappingResponse)
@limiter.limit(cron_rate_limit)
async def sync_mappings(
    request: Request,
    provider: str,
    mapping_service: Annotated[MappingSyncService, Depends(get_mapping_service)],
    settings: AppSettings,
    full: bool = Query(False, description="Also create mappings for identifiers never seen in data"),
) -> MappingResponse:
    """Resolve unmapped identifiers against the provider directory."""
    if provider not in PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")

    result = await mapping_service.sync_mappings(provider, full=full)
    return MappingResponse.from_result(result, settings.max_errors_reported)
