"""Commit and CommitAttribution models for AI attribution of code commits."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from abacus.database import Base


class Commit(Base):
    """
    A commit on a repository's default branch.

    `ai_tool` is null for human-authored commits. `author_id` is the VCS
    user ID used for identity mapping; line stats stay null until a poll or
    detail fetch supplies them.
    """

    __tablename__ = "commits"

    id: Mapped[int] = mapped_column(primary_key=True)
    repo_id: Mapped[int] = mapped_column(ForeignKey("repositories.id"), nullable=False)
    commit_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Author
    author_email: Mapped[str | None] = mapped_column(String(255), index=True)
    author_id: Mapped[str | None] = mapped_column(String(64), index=True)
    committed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    message: Mapped[str | None] = mapped_column(Text)

    # Primary AI attribution
    ai_tool: Mapped[str | None] = mapped_column(String(64))
    ai_model: Mapped[str | None] = mapped_column(String(128))

    # Line stats
    additions: Mapped[int | None] = mapped_column(Integer)
    deletions: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (UniqueConstraint("repo_id", "commit_id", name="uq_commits_repo_commit"),)

    def __repr__(self) -> str:
        return f"<Commit {self.commit_id[:7]} ai_tool={self.ai_tool}>"


class CommitAttribution(Base):
    """Every AI tool detected on a commit (a commit may name several)."""

    __tablename__ = "commit_attributions"

    id: Mapped[int] = mapped_column(primary_key=True)
    commit_row_id: Mapped[int] = mapped_column(
        ForeignKey("commits.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ai_tool: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    ai_model: Mapped[str | None] = mapped_column(String(128))
    source: Mapped[str | None] = mapped_column(String(32))  # co_author, message_pattern, author_field
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("commit_row_id", "ai_tool", name="uq_commit_attributions_commit_tool"),
    )

    def __repr__(self) -> str:
        return f"<CommitAttribution {self.commit_row_id}: {self.ai_tool}>"
