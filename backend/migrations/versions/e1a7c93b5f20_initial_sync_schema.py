"""Initial schema for the usage-sync engine.

Revision ID: e1a7c93b5f20
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "e1a7c93b5f20"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "sync_state",
        sa.Column("provider", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("last_forward_cursor", sa.DateTime(timezone=True), nullable=True),
        sa.Column("oldest_backfilled_date", sa.Date(), nullable=True),
        sa.Column("backfill_complete", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("record_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("version", sa.Integer(), server_default=sa.text("0"), nullable=False),
        if_not_exists=True,
    )

    op.create_table(
        "usage_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("identity", sa.String(length=255), nullable=False),
        sa.Column("tool", sa.String(length=64), nullable=False),
        sa.Column("raw_model", sa.String(length=128), nullable=False),
        sa.Column("normalized_model", sa.String(length=128), nullable=False),
        sa.Column("model_qualifier", sa.String(length=32), nullable=True),
        sa.Column("input_tokens", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("output_tokens", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("cache_write_tokens", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("cache_read_tokens", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("estimated_cost", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("identity_resolved", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("date", "identity", "tool", "raw_model", name="uq_usage_records_natural_key"),
        if_not_exists=True,
    )
    op.create_index(
        "idx_usage_date_identity", "usage_records", ["date", "identity"], unique=False, if_not_exists=True
    )
    op.create_index("idx_usage_tool_date", "usage_records", ["tool", "date"], unique=False, if_not_exists=True)
    op.create_index(
        "ix_usage_records_normalized_model",
        "usage_records",
        ["normalized_model"],
        unique=False,
        if_not_exists=True,
    )

    op.create_table(
        "repositories",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("source", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("source", "full_name", name="uq_repositories_source_full_name"),
        if_not_exists=True,
    )

    op.create_table(
        "commits",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("repo_id", sa.Integer(), sa.ForeignKey("repositories.id"), nullable=False),
        sa.Column("commit_id", sa.String(length=64), nullable=False),
        sa.Column("author_email", sa.String(length=255), nullable=True),
        sa.Column("author_id", sa.String(length=64), nullable=True),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("ai_tool", sa.String(length=64), nullable=True),
        sa.Column("ai_model", sa.String(length=128), nullable=True),
        sa.Column("additions", sa.Integer(), nullable=True),
        sa.Column("deletions", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("repo_id", "commit_id", name="uq_commits_repo_commit"),
        if_not_exists=True,
    )
    op.create_index("ix_commits_author_email", "commits", ["author_email"], unique=False, if_not_exists=True)
    op.create_index("ix_commits_author_id", "commits", ["author_id"], unique=False, if_not_exists=True)
    op.create_index("ix_commits_committed_at", "commits", ["committed_at"], unique=False, if_not_exists=True)

    op.create_table(
        "commit_attributions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "commit_row_id",
            sa.Integer(),
            sa.ForeignKey("commits.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ai_tool", sa.String(length=64), nullable=False),
        sa.Column("ai_model", sa.String(length=128), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("commit_row_id", "ai_tool", name="uq_commit_attributions_commit_tool"),
        if_not_exists=True,
    )
    op.create_index(
        "ix_commit_attributions_commit_row_id",
        "commit_attributions",
        ["commit_row_id"],
        unique=False,
        if_not_exists=True,
    )
    op.create_index(
        "ix_commit_attributions_ai_tool", "commit_attributions", ["ai_tool"], unique=False, if_not_exists=True
    )

    op.create_table(
        "identity_mappings",
        sa.Column("provider", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("external_id", sa.String(length=255), primary_key=True, nullable=False),
        sa.Column("resolved_email", sa.String(length=255), nullable=True),
        sa.Column("occurrence_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "first_seen_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        if_not_exists=True,
    )
    op.create_index(
        "ix_identity_mappings_resolved_email",
        "identity_mappings",
        ["resolved_email"],
        unique=False,
        if_not_exists=True,
    )


def downgrade() -> None:
    op.drop_table("identity_mappings")
    op.drop_table("commit_attributions")
    op.drop_table("commits")
    op.drop_table("repositories")
    op.drop_table("usage_records")
    op.drop_table("sync_state")
