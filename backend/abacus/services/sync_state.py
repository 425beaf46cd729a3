"""Per-provider sync state persistence with optimistic concurrency."""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from abacus.models import SyncState
from abacus.schemas.records import SyncStateSnapshot
from abacus.services.errors import SyncStateConflictError
from abacus.services.timeutils import ensure_utc
from abacus.services.upserts import insert_for

logger = logging.getLogger(__name__)


def snapshot_from_row(row: SyncState) -> SyncStateSnapshot:
    return SyncStateSnapshot(
        provider=row.provider,
        last_forward_cursor=ensure_utc(row.last_forward_cursor),
        oldest_backfilled_date=row.oldest_backfilled_date,
        backfill_complete=bool(row.backfill_complete),
        last_sync_at=ensure_utc(row.last_sync_at),
        record_count=row.record_count or 0,
        version=row.version or 0,
    )


class SyncStateStore:
    """
    Reads and writes SyncState rows.

    Every write is conditional on the version read, so two runs for the same
    provider cannot both advance state from a stale read.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(self, provider: str) -> SyncStateSnapshot:
        """Read the provider's state, creating the row on first use."""
        stmt = insert_for(self.db, SyncState).values(provider=provider)
        await self.db.execute(stmt.on_conflict_do_nothing(index_elements=["provider"]))
        await self.db.commit()

        result = await self.db.execute(
            select(SyncState).where(SyncState.provider == provider).execution_options(populate_existing=True)
        )
        return snapshot_from_row(result.scalar_one())

    async def get(self, provider: str) -> SyncStateSnapshot | None:
        """Read the provider's state without creating it."""
        result = await self.db.execute(
            select(SyncState).where(SyncState.provider == provider).execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return snapshot_from_row(row) if row else None

    async def save(
        self,
        current: SyncStateSnapshot,
        updated: SyncStateSnapshot,
        records_added: int = 0,
    ) -> SyncStateSnapshot:
        """
        Persist `updated` if the row still has `current.version`.

        `oldest_backfilled_date` never moves forward: the earlier of the two
        snapshots' values is kept.

        Raises:
            SyncStateConflictError: another writer updated the row first
        """
        oldest = updated.oldest_backfilled_date
        if current.oldest_backfilled_date is not None:
            oldest = min(oldest or current.oldest_backfilled_date, current.oldest_backfilled_date)

        result = await self.db.execute(
            update(SyncState)
            .where(SyncState.provider == current.provider, SyncState.version == current.version)
            .values(
                last_forward_cursor=updated.last_forward_cursor,
                oldest_backfilled_date=oldest,
                backfill_complete=updated.backfill_complete,
                last_sync_at=func.now(),
                record_count=SyncState.record_count + records_added,
                version=current.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise SyncStateConflictError(
                f"Sync state for {current.provider} changed concurrently (version {current.version})"
            )
        await self.db.commit()

        logger.debug(f"Saved sync state for {current.provider} at version {current.version + 1}")
        return updated.evolve(
            oldest_backfilled_date=oldest,
            record_count=current.record_count + records_added,
            version=current.version + 1,
        )

    async def reset_backfill(self, provider: str) -> SyncStateSnapshot:
        """Clear `backfill_complete` so backfill resumes from the oldest date."""
        current = await self.load(provider)
        return await self.save(current, current.evolve(backfill_complete=False))
