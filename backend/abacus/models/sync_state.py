"""SyncState model to track per-provider forward and backfill progress."""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Integer, String, false
from sqlalchemy.orm import Mapped, mapped_column

from abacus.database import Base


class SyncState(Base):
    """
    Tracks sync progress for each provider.

    `last_forward_cursor` is the end of the last committed forward window
    (midnight UTC of the last covered day for daily providers, an hour
    boundary for hourly ones). `oldest_backfilled_date` only ever moves into
    the past. `version` guards concurrent writers.
    """

    __tablename__ = "sync_state"

    # 'claude_code', 'cursor' or 'github'
    provider: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_forward_cursor: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    oldest_backfilled_date: Mapped[date | None] = mapped_column(Date)
    backfill_complete: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    record_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    def __repr__(self) -> str:
        return f"<SyncState {self.provider}: {self.last_forward_cursor} / {self.oldest_backfilled_date}>"
