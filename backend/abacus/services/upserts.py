"""Natural-key upserts for usage records, repositories and commits."""

import logging
from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from abacus.models import Commit, CommitAttribution, Repository, UsageRecord
from abacus.schemas.records import CommitRecord, UsageRecordIn

logger = logging.getLogger(__name__)

USAGE_COUNTERS = (
    "normalized_model",
    "model_qualifier",
    "input_tokens",
    "output_tokens",
    "cache_write_tokens",
    "cache_read_tokens",
    "estimated_cost",
    "identity_resolved",
)


def insert_for(db: AsyncSession, table):
    """INSERT construct with ON CONFLICT support for the session's dialect."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def aggregate_usage(records: Iterable[UsageRecordIn]) -> list[UsageRecordIn]:
    """Collapse records sharing a natural key by summing their counters."""
    merged: dict[tuple, UsageRecordIn] = {}
    for record in records:
        existing = merged.get(record.key)
        if existing is None:
            merged[record.key] = UsageRecordIn(**vars(record))
        else:
            existing.merge(record)
    return list(merged.values())


async def upsert_usage_records(
    db: AsyncSession, records: Iterable[UsageRecordIn]
) -> tuple[int, list[UsageRecordIn]]:
    """
    Upsert usage rows on (date, identity, tool, raw_model).

    Records are aggregated per key first; the stored counters are replaced
    with the aggregate so re-syncing a day never double counts.

    Returns:
        Tuple of (rows written, records whose natural key was not stored before)
    """
    rows = aggregate_usage(records)
    inserted: list[UsageRecordIn] = []
    for record in rows:
        existing = await db.execute(
            select(UsageRecord.id).where(
                UsageRecord.date == record.date,
                UsageRecord.identity == record.identity,
                UsageRecord.tool == record.tool,
                UsageRecord.raw_model == record.raw_model,
            )
        )
        if existing.first() is None:
            inserted.append(record)

        stmt = insert_for(db, UsageRecord).values(**vars(record))
        stmt = stmt.on_conflict_do_update(
            index_elements=["date", "identity", "tool", "raw_model"],
            set_={
                **{name: getattr(stmt.excluded, name) for name in USAGE_COUNTERS},
                "updated_at": func.now(),
            },
        )
        await db.execute(stmt)

    return len(rows), inserted


async def get_or_create_repository(db: AsyncSession, source: str, full_name: str) -> int:
    """Return the repository row ID, creating the row if absent."""
    stmt = insert_for(db, Repository).values(source=source, full_name=full_name)
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["source", "full_name"]))

    result = await db.execute(
        select(Repository.id).where(Repository.source == source, Repository.full_name == full_name)
    )
    return result.scalar_one()


async def get_commit_stats(db: AsyncSession, repo_id: int, commit_id: str) -> tuple[int | None, int | None] | None:
    """Stored (additions, deletions) for a commit, or None if not stored."""
    result = await db.execute(
        select(Commit.additions, Commit.deletions).where(
            Commit.repo_id == repo_id, Commit.commit_id == commit_id
        )
    )
    row = result.first()
    return (row.additions, row.deletions) if row else None


async def upsert_commit(
    db: AsyncSession,
    repo_id: int,
    record: CommitRecord,
    author_email: str | None = None,
) -> int:
    """
    Upsert a commit on (repo_id, commit_id) and its attributions.

    Nullable columns coalesce with the stored row so a later delivery
    without stats or author ID never erases values already known.

    Returns:
        Commit row ID
    """
    values = {
        "repo_id": repo_id,
        "commit_id": record.commit_id,
        "author_email": author_email if author_email is not None else record.author_email,
        "author_id": record.author_id,
        "committed_at": record.committed_at,
        "message": record.message,
        "ai_tool": record.ai_tool,
        "ai_model": record.ai_model,
        "additions": record.additions,
        "deletions": record.deletions,
    }
    stmt = insert_for(db, Commit).values(**values)
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=["repo_id", "commit_id"],
        set_={
            "author_email": func.coalesce(excluded.author_email, Commit.author_email),
            "author_id": func.coalesce(excluded.author_id, Commit.author_id),
            "committed_at": excluded.committed_at,
            "message": func.coalesce(excluded.message, Commit.message),
            "ai_tool": excluded.ai_tool,
            "ai_model": excluded.ai_model,
            "additions": func.coalesce(excluded.additions, Commit.additions),
            "deletions": func.coalesce(excluded.deletions, Commit.deletions),
        },
    )
    await db.execute(stmt)

    result = await db.execute(
        select(Commit.id).where(Commit.repo_id == repo_id, Commit.commit_id == record.commit_id)
    )
    commit_row_id = result.scalar_one()

    for attribution in record.attributions:
        attr_stmt = insert_for(db, CommitAttribution).values(
            commit_row_id=commit_row_id,
            ai_tool=attribution.tool,
            ai_model=attribution.model,
            source=attribution.source,
        )
        attr_stmt = attr_stmt.on_conflict_do_update(
            index_elements=["commit_row_id", "ai_tool"],
            set_={
                "ai_model": func.coalesce(attr_stmt.excluded.ai_model, CommitAttribution.ai_model),
                "source": func.coalesce(attr_stmt.excluded.source, CommitAttribution.source),
            },
        )
        await db.execute(attr_stmt)

    return commit_row_id
