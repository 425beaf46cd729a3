"""Canonical records produced by provider adapters and sync results."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any


@dataclass
class UsageRecordIn:
    """One normalized usage row, keyed by (date, identity, tool, raw_model)."""

    date: date
    identity: str
    tool: str
    raw_model: str
    normalized_model: str
    model_qualifier: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0
    estimated_cost: float = 0.0
    identity_resolved: bool = True

    @property
    def key(self) -> tuple[date, str, str, str]:
        return (self.date, self.identity, self.tool, self.raw_model)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.cache_write_tokens + self.cache_read_tokens

    def merge(self, other: "UsageRecordIn") -> None:
        """Add another record with the same natural key into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_write_tokens += other.cache_write_tokens
        self.cache_read_tokens += other.cache_read_tokens
        self.estimated_cost = round(self.estimated_cost + other.estimated_cost, 6)


@dataclass
class Attribution:
    """An AI tool (and optionally model) detected on a commit."""

    tool: str
    model: str | None = None
    source: str | None = None  # co_author, message_pattern, author_field


@dataclass
class CommitRecord:
    """One normalized commit on a repository's default branch."""

    repo: str
    commit_id: str
    committed_at: datetime
    message: str | None = None
    author_email: str | None = None
    author_id: str | None = None
    additions: int | None = None
    deletions: int | None = None
    attributions: list[Attribution] = field(default_factory=list)
    source: str = "github"

    @property
    def ai_tool(self) -> str | None:
        return self.attributions[0].tool if self.attributions else None

    @property
    def ai_model(self) -> str | None:
        return self.attributions[0].model if self.attributions else None


@dataclass
class ForwardSyncResult:
    """Outcome of one forward sync invocation."""

    provider: str
    success: bool = True
    skipped: bool = False
    synced_range: tuple[datetime, datetime] | None = None
    previous_cursor: datetime | None = None
    records_imported: int = 0
    records_skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def did_sync(self) -> bool:
        return self.synced_range is not None


@dataclass
class BackfillResult:
    """Outcome of one backfill invocation."""

    provider: str
    target_date: date
    success: bool = True
    skipped: bool = False
    rate_limited: bool = False
    status: str = "in_progress"  # complete, in_progress, rate_limited, skipped
    records_imported: int = 0
    records_skipped: int = 0
    errors: list[str] = field(default_factory=list)
    last_processed_date: date | None = None
    previous_oldest_date: date | None = None
    oldest_backfilled_date: date | None = None
    backfill_complete: bool = False


@dataclass
class PushResult:
    """Outcome of one webhook delivery."""

    success: bool = True
    commits_processed: int = 0
    ai_attributed_commits: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: bool = False
    reason: str | None = None
    delivery_id: str | None = None
    repository: str | None = None


@dataclass
class MappingResult:
    """Outcome of a directory reconciliation run."""

    provider: str
    success: bool = True
    skipped: bool = False
    entries_found: int = 0
    mappings_resolved: int = 0
    mappings_created: int = 0
    mappings_skipped: int = 0
    errors: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SyncStateSnapshot:
    """Immutable copy of a provider's sync state as read at the start of a run."""

    provider: str
    last_forward_cursor: datetime | None = None
    oldest_backfilled_date: date | None = None
    backfill_complete: bool = False
    last_sync_at: datetime | None = None
    record_count: int = 0
    version: int = 0

    def evolve(self, **changes) -> "SyncStateSnapshot":
        return replace(self, **changes)
