"""Sync orchestrator: forward sync and backfill entry points per provider."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from abacus.config import Settings, get_settings
from abacus.schemas.records import BackfillResult, ForwardSyncResult, SyncStateSnapshot
from abacus.services.adapters import Cadence, ProviderAdapter, SyncWindow, build_adapter
from abacus.services.errors import RateLimitError, SyncError, SyncStateConflictError
from abacus.services.identity import IdentityResolver
from abacus.services.sync_state import SyncStateStore

logger = logging.getLogger(__name__)


@dataclass
class WindowOutcome:
    """What happened to one window."""

    committed: bool
    items: int = 0
    rate_limited: bool = False


class SyncOrchestrator:
    """
    Runs forward syncs and backfills for any provider adapter.

    Features:
    - Sync state advances only over windows whose every page was written
    - Rate limits stop the batch immediately and keep committed progress
    - Errors are collected into a bounded list, never raised to the caller
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        adapters: dict[str, ProviderAdapter] | None = None,
        resolver: IdentityResolver | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.resolver = resolver or IdentityResolver(db)
        self.store = SyncStateStore(db)
        self.clock = clock or (lambda: datetime.now(UTC))
        self._adapters = dict(adapters or {})

    def adapter(self, provider: str) -> ProviderAdapter:
        if provider not in self._adapters:
            self._adapters[provider] = build_adapter(provider, self.db, self.resolver, self.settings)
        return self._adapters[provider]

    def _add_error(self, result: Any, message: str) -> None:
        if len(result.errors) < self.settings.max_errors_collected:
            result.errors.append(message)

    async def _sync_window(self, adapter: ProviderAdapter, window: SyncWindow, result: Any) -> WindowOutcome:
        """
        Fetch every page of a window, then write and commit its records.

        On a rate limit the pages already fetched are written when the
        adapter's records are independent of each other; the window still
        counts as not committed.
        """
        records: list[Any] = []
        items = 0
        skipped = 0
        page_cursor = None

        try:
            while True:
                page = await adapter.fetch_page(window, page_cursor)
                items += len(page.items)
                records.extend(await adapter.normalize(page))
                skipped += page.skipped
                for error in page.errors:
                    self._add_error(result, error)
                page_cursor = page.next_cursor
                if page_cursor is None:
                    break
        except RateLimitError as e:
            logger.warning(f"{adapter.provider} rate limited during {window}")
            self._add_error(result, f"{adapter.provider} rate limited: {e}")
            if adapter.partial_writes_safe and records:
                await self._write(adapter, records, skipped, result)
            else:
                self.resolver.discard()
            return WindowOutcome(committed=False, items=items, rate_limited=True)
        except SyncError as e:
            logger.warning(f"{adapter.provider} fetch failed for {window}: {e}")
            self._add_error(result, f"{window.first_day}: {e}")
            self.resolver.discard()
            return WindowOutcome(committed=False, items=items)

        committed = await self._write(adapter, records, skipped, result)
        return WindowOutcome(committed=committed, items=items)

    async def _write(self, adapter: ProviderAdapter, records: list[Any], skipped: int, result: Any) -> bool:
        try:
            imported, write_skipped = await adapter.write(records)
            await self.resolver.flush()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.resolver.discard()
            logger.error(f"{adapter.provider} write failed: {e}")
            self._add_error(result, f"Database error: {e}")
            return False

        result.records_imported += imported
        result.records_skipped += skipped + write_skipped
        return True

    async def _save_state(
        self,
        current: SyncStateSnapshot,
        updated: SyncStateSnapshot,
        records_added: int,
        result: Any,
    ) -> SyncStateSnapshot | None:
        try:
            return await self.store.save(current, updated, records_added)
        except SyncStateConflictError as e:
            logger.warning(str(e))
            self._add_error(result, str(e))
            result.success = False
            return None

    async def run_forward_sync(self, provider: str) -> ForwardSyncResult:
        """
        Catch a provider up from its forward cursor to the present.

        Returns a result without `synced_range` when the provider is already
        caught up, so calling more often than the provider's cadence is safe.
        """
        adapter = self.adapter(provider)
        result = ForwardSyncResult(provider=provider)

        if not adapter.is_configured():
            logger.info(f"{provider} not configured, skipping forward sync")
            result.skipped = True
            return result

        state = await self.store.load(provider)
        result.previous_cursor = state.last_forward_cursor

        window = adapter.forward_window(state.last_forward_cursor, self.clock())
        if window is None:
            logger.info(f"{provider} already synced through {state.last_forward_cursor}")
            return result

        logger.info(f"Starting {provider} forward sync for {window}")
        for chunk in adapter.fetch_windows(window):
            outcome = await self._sync_window(adapter, chunk, result)
            if not outcome.committed:
                result.success = False
                logger.warning(f"{provider} forward sync stopped at {chunk}; cursor unchanged")
                return result

        saved = await self._save_state(
            state,
            state.evolve(last_forward_cursor=window.cursor_after),
            result.records_imported,
            result,
        )
        if saved is not None:
            result.synced_range = (window.start, window.end)
            logger.info(
                f"{provider} forward sync done: {result.records_imported} imported, "
                f"{result.records_skipped} skipped"
            )
        return result

    async def run_backfill(self, provider: str, target_date: date | None = None) -> BackfillResult:
        """
        Walk one batch of history backward toward `target_date`.

        Each call processes at most `backfill_chunk_days` days older than
        the oldest backfilled date, newest first.
        """
        target = target_date or self.settings.backfill_target_date
        adapter = self.adapter(provider)
        result = BackfillResult(provider=provider, target_date=target)

        if not adapter.is_configured():
            logger.info(f"{provider} not configured, skipping backfill")
            result.skipped = True
            result.status = "skipped"
            return result

        state = await self.store.load(provider)
        result.previous_oldest_date = state.oldest_backfilled_date
        result.oldest_backfilled_date = state.oldest_backfilled_date
        result.backfill_complete = state.backfill_complete

        oldest = state.oldest_backfilled_date or self.clock().date()
        if state.backfill_complete or oldest <= target:
            result.status = "complete"
            return result

        first_day = max(target, oldest - timedelta(days=self.settings.backfill_chunk_days))
        logger.info(f"Starting {provider} backfill from {oldest} back to {first_day} (target {target})")

        committed_oldest: date | None = None
        consecutive_empty = 0
        exhausted = False

        for window in adapter.backfill_windows(first_day, oldest):
            outcome = await self._sync_window(adapter, window, result)
            if outcome.rate_limited:
                result.rate_limited = True
                break
            if not outcome.committed:
                result.success = False
                break

            committed_oldest = window.first_day
            result.last_processed_date = committed_oldest

            consecutive_empty = consecutive_empty + 1 if outcome.items == 0 else 0
            if (
                adapter.cadence != Cadence.COMMITS
                and consecutive_empty >= self.settings.backfill_stop_on_empty_days
            ):
                logger.info(f"{provider} returned no data for {consecutive_empty} days; backfill complete")
                exhausted = True
                break

        if committed_oldest is not None and not exhausted and not result.rate_limited:
            try:
                history = await adapter.has_history_before(committed_oldest)
            except RateLimitError as e:
                result.rate_limited = True
                self._add_error(result, f"{provider} rate limited: {e}")
            except SyncError as e:
                self._add_error(result, f"History check failed: {e}")
            else:
                if history is False:
                    logger.info(f"{provider} has no history before {committed_oldest}; backfill complete")
                    exhausted = True

        if committed_oldest is not None or exhausted:
            updated = state.evolve(
                oldest_backfilled_date=committed_oldest or state.oldest_backfilled_date,
                backfill_complete=state.backfill_complete or exhausted,
            )
            saved = await self._save_state(state, updated, result.records_imported, result)
            if saved is not None:
                result.oldest_backfilled_date = saved.oldest_backfilled_date
                result.backfill_complete = saved.backfill_complete

        if result.rate_limited:
            result.status = "rate_limited"
        elif result.backfill_complete or (
            result.oldest_backfilled_date is not None and result.oldest_backfilled_date <= target
        ):
            result.status = "complete"
        else:
            result.status = "in_progress"

        logger.info(
            f"{provider} backfill {result.status}: oldest={result.oldest_backfilled_date}, "
            f"{result.records_imported} imported"
        )
        return result

    async def reset_backfill(self, provider: str) -> SyncStateSnapshot:
        """Clear the terminal backfill flag so the next backfill resumes."""
        self.adapter(provider)
        snapshot = await self.store.reset_backfill(provider)
        logger.info(f"Reset {provider} backfill (oldest={snapshot.oldest_backfilled_date})")
        return snapshot

    async def get_status(self, provider: str) -> SyncStateSnapshot | None:
        self.adapter(provider)
        return await self.store.get(provider)
