"""Tests for the Cursor hourly-events adapter."""

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from abacus.models import IdentityMapping, UsageRecord
from abacus.services.adapters import HourlyEventsAdapter, SyncWindow
from abacus.services.adapters.base import Page
from abacus.services.adapters.hourly_events import PAGE_SIZE
from abacus.services.model_names import MODEL_DEFAULT
from abacus.services.orchestrator import SyncOrchestrator


@pytest.fixture
def cursor_client(sample_usage_events) -> MagicMock:
    client = MagicMock()
    client.fetch_usage_events = AsyncMock(
        return_value={"usageEvents": sample_usage_events, "pagination": {"hasNextPage": True}}
    )
    return client


@pytest.fixture
def adapter(db_session, resolver, test_settings, cursor_client) -> HourlyEventsAdapter:
    return HourlyEventsAdapter(db_session, resolver, test_settings, client=cursor_client)


class TestWindows:
    """Tests for the hourly cadence."""

    def test_first_run_looks_back_a_day(self, adapter, sample_datetime):
        window = adapter.forward_window(None, sample_datetime)

        assert window.start == datetime(2025, 1, 2, 10, tzinfo=UTC)
        assert window.end == datetime(2025, 1, 3, 10, tzinfo=UTC)
        assert window.cursor_after == window.end

    def test_caught_up_within_the_hour(self, adapter):
        cursor = datetime(2025, 1, 3, 10, tzinfo=UTC)
        assert adapter.forward_window(cursor, datetime(2025, 1, 3, 10, 59, tzinfo=UTC)) is None

    def test_resume_from_cursor(self, adapter):
        cursor = datetime(2025, 1, 3, 8, tzinfo=UTC)
        window = adapter.forward_window(cursor, datetime(2025, 1, 3, 11, 5, tzinfo=UTC))

        assert window.start == cursor
        assert window.end == datetime(2025, 1, 3, 11, tzinfo=UTC)

    def test_chunks_start_at_midnight(self, adapter):
        """Test each chunk covers its day from midnight so day aggregates stay whole."""
        window = SyncWindow(datetime(2025, 1, 2, 10, tzinfo=UTC), datetime(2025, 1, 3, 10, tzinfo=UTC))

        chunks = adapter.fetch_windows(window)

        assert [(c.start, c.end) for c in chunks] == [
            (datetime(2025, 1, 2, tzinfo=UTC), datetime(2025, 1, 3, tzinfo=UTC)),
            (datetime(2025, 1, 3, tzinfo=UTC), datetime(2025, 1, 3, 10, tzinfo=UTC)),
        ]

    def test_backfill_is_per_day(self, adapter):
        windows = adapter.backfill_windows(date(2025, 1, 1), date(2025, 1, 3))
        assert [w.first_day for w in windows] == [date(2025, 1, 2), date(2025, 1, 1)]


class TestFetchAndNormalize:
    """Tests for paging and normalization."""

    @pytest.mark.asyncio
    async def test_fetch_page_numbers(self, adapter, cursor_client):
        window = SyncWindow(datetime(2025, 1, 2, tzinfo=UTC), datetime(2025, 1, 3, tzinfo=UTC))

        first = await adapter.fetch_page(window)
        assert first.next_cursor == 2
        cursor_client.fetch_usage_events.assert_awaited_with(window.start, window.end, 1, PAGE_SIZE)

        cursor_client.fetch_usage_events.return_value = {"usageEvents": [], "pagination": {"hasNextPage": False}}
        last = await adapter.fetch_page(window, first.next_cursor)
        assert last.next_cursor is None
        cursor_client.fetch_usage_events.assert_awaited_with(window.start, window.end, 2, PAGE_SIZE)

    @pytest.mark.asyncio
    async def test_normalize(self, adapter, sample_usage_events):
        page = Page(items=sample_usage_events)
        records = await adapter.normalize(page)

        # The zero-token event is dropped
        assert len(records) == 2
        assert page.skipped == 1

        thinking, default = records
        assert thinking.date == date(2025, 1, 2)
        assert thinking.identity == "dev@example.com"
        assert thinking.normalized_model == "sonnet-4"
        assert thinking.model_qualifier == "thinking"
        assert thinking.cache_read_tokens == 400
        assert thinking.estimated_cost == pytest.approx(0.12)

        assert default.raw_model == "auto"
        assert default.normalized_model == MODEL_DEFAULT
        assert default.estimated_cost == 0.0

    @pytest.mark.asyncio
    async def test_cache_only_event_kept(self, adapter):
        page = Page(
            items=[
                {
                    "timestamp": "1735776000000",
                    "userEmail": "dev@example.com",
                    "model": "claude-4-sonnet",
                    "tokenUsage": {"cacheReadTokens": 1_000_000},
                }
            ]
        )

        records = await adapter.normalize(page)

        assert len(records) == 1
        assert records[0].estimated_cost == pytest.approx(0.30)

    @pytest.mark.asyncio
    async def test_unmapped_user_id(self, adapter, resolver):
        page = Page(items=[{"timestamp": "1735776000000", "userId": 77, "tokenUsage": {"inputTokens": 5}}])

        records = await adapter.normalize(page)

        assert records[0].identity == "77"
        assert records[0].identity_resolved is False
        assert resolver.pending_misses == {("cursor", "77"): 0}

    @pytest.mark.asyncio
    async def test_events_aggregate_per_day(self, adapter, db_session):
        events = [
            {
                "timestamp": str(1735776000000 + hour * 3_600_000),
                "userEmail": "dev@example.com",
                "model": "gpt-4o",
                "tokenUsage": {"inputTokens": 100, "outputTokens": 10},
            }
            for hour in range(3)
        ]
        records = await adapter.normalize(Page(items=events))

        assert await adapter.write(records) == (1, 0)
        await db_session.commit()

        row = (await db_session.execute(select(UsageRecord))).scalar_one()
        assert row.date == date(2025, 1, 2)
        assert row.tool == "cursor"
        assert row.input_tokens == 300
        assert row.output_tokens == 30


class TestRepeatedForwardSync:
    """Tests for hourly runs that fetch the current day again."""

    @pytest.mark.asyncio
    async def test_unmapped_user_counted_once(self, db_session, resolver, test_settings):
        """Test re-fetching the same day keeps one row and one occurrence per identifier."""
        event = {"timestamp": "1735776000000", "userId": 77, "model": "gpt-4o", "tokenUsage": {"inputTokens": 5}}

        async def fetch_usage_events(start, end, page, page_size):
            events = [event] if start.date() == date(2025, 1, 2) else []
            return {"usageEvents": events, "pagination": {"hasNextPage": False}}

        client = MagicMock()
        client.fetch_usage_events = AsyncMock(side_effect=fetch_usage_events)
        adapter = HourlyEventsAdapter(db_session, resolver, test_settings, client=client)

        for hour in (10, 11, 12):
            orchestrator = SyncOrchestrator(
                db_session,
                test_settings,
                adapters={"cursor": adapter},
                resolver=resolver,
                clock=lambda hour=hour: datetime(2025, 1, 2, hour, 30, tzinfo=UTC),
            )
            result = await orchestrator.run_forward_sync("cursor")
            assert result.success

        rows = (await db_session.execute(select(UsageRecord))).scalars().all()
        assert len(rows) == 1
        assert rows[0].identity == "77"

        mapping = (
            await db_session.execute(
                select(IdentityMapping).where(IdentityMapping.provider == "cursor", IdentityMapping.external_id == "77")
            )
        ).scalar_one()
        assert mapping.occurrence_count == 1
