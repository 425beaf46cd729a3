"""Tests for the sync state store."""

from datetime import UTC, date, datetime

import pytest

from abacus.services.errors import SyncStateConflictError
from abacus.services.sync_state import SyncStateStore


class TestSyncStateStore:
    """Tests for SyncStateStore."""

    @pytest.mark.asyncio
    async def test_load_creates_row(self, db_session):
        store = SyncStateStore(db_session)
        assert await store.get("cursor") is None

        state = await store.load("cursor")

        assert state.provider == "cursor"
        assert state.last_forward_cursor is None
        assert state.oldest_backfilled_date is None
        assert state.backfill_complete is False
        assert state.version == 0
        assert await store.get("cursor") is not None

    @pytest.mark.asyncio
    async def test_save_advances_version(self, db_session):
        store = SyncStateStore(db_session)
        state = await store.load("cursor")
        cursor = datetime(2025, 1, 3, 10, tzinfo=UTC)

        saved = await store.save(state, state.evolve(last_forward_cursor=cursor), records_added=5)

        assert saved.version == 1
        assert saved.record_count == 5

        reloaded = await store.load("cursor")
        assert reloaded.last_forward_cursor == cursor
        assert reloaded.record_count == 5
        assert reloaded.version == 1
        assert reloaded.last_sync_at is not None

    @pytest.mark.asyncio
    async def test_stale_write_conflicts(self, db_session):
        """Test a write based on an outdated read is rejected."""
        store = SyncStateStore(db_session)
        state = await store.load("claude_code")
        await store.save(state, state.evolve(oldest_backfilled_date=date(2025, 1, 10)))

        with pytest.raises(SyncStateConflictError):
            await store.save(state, state.evolve(oldest_backfilled_date=date(2025, 1, 5)))

        reloaded = await store.load("claude_code")
        assert reloaded.oldest_backfilled_date == date(2025, 1, 10)
        assert reloaded.version == 1

    @pytest.mark.asyncio
    async def test_oldest_date_never_moves_forward(self, db_session):
        store = SyncStateStore(db_session)
        state = await store.load("claude_code")
        state = await store.save(state, state.evolve(oldest_backfilled_date=date(2025, 1, 5)))

        saved = await store.save(state, state.evolve(oldest_backfilled_date=date(2025, 2, 1)))

        assert saved.oldest_backfilled_date == date(2025, 1, 5)
        assert (await store.load("claude_code")).oldest_backfilled_date == date(2025, 1, 5)

    @pytest.mark.asyncio
    async def test_reset_backfill(self, db_session):
        store = SyncStateStore(db_session)
        state = await store.load("github")
        await store.save(
            state, state.evolve(oldest_backfilled_date=date(2025, 1, 1), backfill_complete=True)
        )

        reset = await store.reset_backfill("github")

        assert reset.backfill_complete is False
        assert reset.oldest_backfilled_date == date(2025, 1, 1)
