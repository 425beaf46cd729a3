"""Pydantic schemas for sync, backfill, mapping and webhook responses."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from abacus.schemas.records import (
    BackfillResult,
    ForwardSyncResult,
    MappingResult,
    PushResult,
    SyncStateSnapshot,
)


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncedRange(CamelModel):
    """Half-open UTC range covered by a forward sync."""

    start: datetime
    end: datetime


class ForwardSyncCounts(CamelModel):
    records_imported: int = 0
    records_skipped: int = 0
    errors: list[str] = []


class MappingResponse(CamelModel):
    """Result of a directory reconciliation run."""

    success: bool
    service: str
    skipped: bool = False
    entries_found: int = 0
    mappings_resolved: int = 0
    mappings_created: int = 0
    mappings_skipped: int = 0
    errors: list[str] = []

    @classmethod
    def from_result(cls, result: MappingResult, max_errors: int) -> "MappingResponse":
        return cls(
            success=result.success,
            service=result.provider,
            skipped=result.skipped,
            entries_found=result.entries_found,
            mappings_resolved=result.mappings_resolved,
            mappings_created=result.mappings_created,
            mappings_skipped=result.mappings_skipped,
            errors=result.errors[:max_errors],
        )


class ForwardSyncResponse(CamelModel):
    """Forward sync response; `syncedRange` is null when nothing was due."""

    success: bool
    service: str
    skipped: bool = False
    did_sync: bool = False
    synced_range: SyncedRange | None = None
    previous_cursor: datetime | None = None
    result: ForwardSyncCounts
    mappings: MappingResponse | None = None

    @classmethod
    def from_result(cls, result: ForwardSyncResult, max_errors: int) -> "ForwardSyncResponse":
        synced_range = None
        if result.synced_range is not None:
            synced_range = SyncedRange(start=result.synced_range[0], end=result.synced_range[1])
        return cls(
            success=result.success,
            service=result.provider,
            skipped=result.skipped,
            did_sync=result.did_sync,
            synced_range=synced_range,
            previous_cursor=result.previous_cursor,
            result=ForwardSyncCounts(
                records_imported=result.records_imported,
                records_skipped=result.records_skipped,
                errors=result.errors[:max_errors],
            ),
        )


class BackfillCounts(CamelModel):
    records_imported: int = 0
    records_skipped: int = 0
    rate_limited: bool = False
    errors: list[str] = []


class BackfillResponse(CamelModel):
    """Backfill response with status complete, in_progress, rate_limited or skipped."""

    success: bool
    service: str
    status: str
    target_date: date
    previous_oldest_date: date | None = None
    current_oldest_date: date | None = None
    last_processed_date: date | None = None
    backfill_complete: bool = False
    result: BackfillCounts

    @classmethod
    def from_result(cls, result: BackfillResult, max_errors: int) -> "BackfillResponse":
        return cls(
            success=result.success,
            service=result.provider,
            status=result.status,
            target_date=result.target_date,
            previous_oldest_date=result.previous_oldest_date,
            current_oldest_date=result.oldest_backfilled_date,
            last_processed_date=result.last_processed_date,
            backfill_complete=result.backfill_complete,
            result=BackfillCounts(
                records_imported=result.records_imported,
                records_skipped=result.records_skipped,
                rate_limited=result.rate_limited,
                errors=result.errors[:max_errors],
            ),
        )


class SyncStateOut(CamelModel):
    """Persisted sync progress for one provider."""

    provider: str
    configured: bool = True
    last_forward_cursor: datetime | None = None
    oldest_backfilled_date: date | None = None
    backfill_complete: bool = False
    last_sync_at: datetime | None = None
    record_count: int = 0

    @classmethod
    def from_snapshot(
        cls, provider: str, snapshot: SyncStateSnapshot | None, configured: bool = True
    ) -> "SyncStateOut":
        if snapshot is None:
            return cls(provider=provider, configured=configured)
        return cls(
            provider=provider,
            configured=configured,
            last_forward_cursor=snapshot.last_forward_cursor,
            oldest_backfilled_date=snapshot.oldest_backfilled_date,
            backfill_complete=snapshot.backfill_complete,
            last_sync_at=snapshot.last_sync_at,
            record_count=snapshot.record_count,
        )


class WebhookResponse(CamelModel):
    """Result of one webhook delivery."""

    success: bool
    skipped: bool = False
    reason: str | None = None
    delivery_id: str | None = None
    repository: str | None = None
    commits_processed: int = 0
    ai_attributed_commits: int = 0
    errors: list[str] = []

    @classmethod
    def from_result(cls, result: PushResult, max_errors: int) -> "WebhookResponse":
        return cls(
            success=result.success,
            skipped=result.skipped,
            reason=result.reason,
            delivery_id=result.delivery_id,
            repository=result.repository,
            commits_processed=result.commits_processed,
            ai_attributed_commits=result.ai_attributed_commits,
            errors=result.errors[:max_errors],
        )
