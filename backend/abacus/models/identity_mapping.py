"""IdentityMapping model linking provider identifiers to emails."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from abacus.database import Base


class IdentityMapping(Base):
    """
    Maps an opaque provider identifier to a canonical email.

    Examples:
    - provider='claude_code', external_id=API key name
    - provider='github', external_id=GitHub user ID

    Rows with `resolved_email` null are unmapped and accumulate
    `occurrence_count` until an operator or the directory sync assigns them.
    They are never deleted.
    """

    __tablename__ = "identity_mappings"

    provider: Mapped[str] = mapped_column(String(64), primary_key=True)
    external_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    resolved_email: Mapped[str | None] = mapped_column(String(255), index=True)
    occurrence_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<IdentityMapping {self.provider}:{self.external_id} -> {self.resolved_email}>"
