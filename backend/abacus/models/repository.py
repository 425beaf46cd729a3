"""Repository model for source-control repositories tracked for commits."""

from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from abacus.database import Base


class Repository(Base):
    """A repository on a VCS provider ('github', ...), keyed by full name."""

    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(primary_key=True)
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (UniqueConstraint("source", "full_name", name="uq_repositories_source_full_name"),)

    def __repr__(self) -> str:
        return f"<Repository {self.source}:{self.full_name}>"
