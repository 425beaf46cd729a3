"""Provider adapter contract shared by every sync source."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from abacus.config import Settings, get_settings
from abacus.schemas.records import UsageRecordIn
from abacus.services.identity import IdentityResolver
from abacus.services.timeutils import days_between, floor_hour, utc_midnight
from abacus.services.upserts import upsert_usage_records


class Cadence(str, Enum):
    """How a provider's forward window is computed."""

    DAILY = "daily"
    HOURLY = "hourly"
    COMMITS = "commits"


@dataclass(frozen=True)
class SyncWindow:
    """
    Half-open UTC range [start, end) committed as one unit.

    `advance_to` is the forward cursor value once the window is committed
    (defaults to `end`).
    """

    start: datetime
    end: datetime
    advance_to: datetime | None = None

    @property
    def cursor_after(self) -> datetime:
        return self.advance_to or self.end

    @property
    def first_day(self) -> date:
        return self.start.date()

    @property
    def last_day(self) -> date:
        return (self.end - timedelta(microseconds=1)).date()

    def days(self) -> list[date]:
        return days_between(self.first_day, self.last_day + timedelta(days=1))

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


def day_windows(first_day: date, end_day: date) -> list[SyncWindow]:
    """One midnight-to-midnight window per day in [first_day, end_day), oldest first."""
    return [
        SyncWindow(utc_midnight(day), utc_midnight(day + timedelta(days=1)))
        for day in days_between(first_day, end_day)
    ]


@dataclass
class Page:
    """
    One page of raw provider items and the cursor of the next page.

    `skipped` counts raw items `normalize` dropped (no tokens, no identity).
    """

    items: list[Any]
    next_cursor: Any = None
    errors: list[str] = field(default_factory=list)
    skipped: int = 0


class ProviderAdapter(ABC):
    """
    Fetches, normalizes and writes one provider's data.

    The orchestrator drives pagination: it calls `fetch_page` until
    `next_cursor` is None, normalizes each page, and writes the window's
    records once every page was fetched.
    """

    provider: str
    cadence: Cadence
    # Whether records from a partially fetched window may be written
    partial_writes_safe: bool = False

    def __init__(
        self,
        db: AsyncSession,
        resolver: IdentityResolver,
        settings: Settings | None = None,
    ):
        self.db = db
        self.resolver = resolver
        self.settings = settings or get_settings()

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials for the provider are present."""

    def forward_window(self, cursor: datetime | None, now: datetime) -> SyncWindow | None:
        """Window to fetch in a forward sync, or None when already caught up."""
        if self.cadence == Cadence.DAILY:
            yesterday = now.date() - timedelta(days=1)
            if cursor is not None and cursor.date() >= yesterday:
                return None
            last_covered = cursor.date() if cursor is not None else yesterday
            # One day of overlap re-covers a day reported only partially
            start = min(last_covered, yesterday) - timedelta(days=1)
            return SyncWindow(
                utc_midnight(start),
                utc_midnight(yesterday + timedelta(days=1)),
                advance_to=utc_midnight(yesterday),
            )

        last_complete_hour = floor_hour(now)
        if cursor is not None and cursor >= last_complete_hour:
            return None
        if self.cadence == Cadence.COMMITS:
            start = (cursor or last_complete_hour) - timedelta(days=1)
        else:
            start = cursor or last_complete_hour - timedelta(
                hours=self.settings.hourly_initial_lookback_hours
            )
        return SyncWindow(start, last_complete_hour)

    def fetch_windows(self, window: SyncWindow) -> list[SyncWindow]:
        """Split a forward window into the chunks committed one at a time."""
        return [window]

    def backfill_windows(self, first_day: date, end_day: date) -> list[SyncWindow]:
        """
        Windows covering [first_day, end_day), newest first.

        Usage providers commit one day at a time so a rate limit keeps every
        completed day.
        """
        return list(reversed(day_windows(first_day, end_day)))

    @abstractmethod
    async def fetch_page(self, window: SyncWindow, page_cursor: Any = None) -> Page:
        """Fetch one page of raw items for the window."""

    @abstractmethod
    async def normalize(self, page: Page) -> list[Any]:
        """Turn raw page items into canonical records."""

    @abstractmethod
    async def write(self, records: list[Any]) -> tuple[int, int]:
        """
        Upsert canonical records.

        Returns:
            Tuple of (records imported, records skipped)
        """

    async def write_usage(self, records: list[UsageRecordIn]) -> tuple[int, int]:
        """Upsert usage rows, counting new rows under unmapped identifiers."""
        written, inserted = await upsert_usage_records(self.db, records)
        for record in inserted:
            if not record.identity_resolved:
                self.resolver.record_occurrence(record.tool, record.identity)
        return written, 0

    async def has_history_before(self, day: date) -> bool | None:
        """
        Whether the provider holds data older than `day`.

        None means the provider cannot tell; the orchestrator then relies on
        consecutive empty days.
        """
        return None
