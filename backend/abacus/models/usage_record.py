"""UsageRecord model for normalized per-day AI tool token usage."""

import datetime as dt

from sqlalchemy import BigInteger, Boolean, Date, DateTime, Float, Index, String, UniqueConstraint, func, true
from sqlalchemy.orm import Mapped, mapped_column

from abacus.database import Base


class UsageRecord(Base):
    """
    One day of token usage for an identity, tool and raw model.

    `identity` is an email when the provider identifier resolved, otherwise
    the opaque provider identifier (API key name, user ID).
    Re-syncing the same day replaces the counters for the natural key.
    """

    __tablename__ = "usage_records"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Natural key
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    identity: Mapped[str] = mapped_column(String(255), nullable=False)
    tool: Mapped[str] = mapped_column(String(64), nullable=False)
    raw_model: Mapped[str] = mapped_column(String(128), nullable=False)

    # Normalized model
    normalized_model: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    model_qualifier: Mapped[str | None] = mapped_column(String(32))

    # Counters
    input_tokens: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0", nullable=False)
    output_tokens: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0", nullable=False)
    cache_write_tokens: Mapped[int] = mapped_column(
        BigInteger, default=0, server_default="0", nullable=False
    )
    cache_read_tokens: Mapped[int] = mapped_column(
        BigInteger, default=0, server_default="0", nullable=False
    )
    estimated_cost: Mapped[float] = mapped_column(Float, default=0.0, server_default="0", nullable=False)

    identity_resolved: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true(), nullable=False)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("date", "identity", "tool", "raw_model", name="uq_usage_records_natural_key"),
        Index("idx_usage_date_identity", "date", "identity"),
        Index("idx_usage_tool_date", "tool", "date"),
    )

    def __repr__(self) -> str:
        return f"<UsageRecord {self.date} {self.identity} {self.tool}/{self.raw_model}>"
