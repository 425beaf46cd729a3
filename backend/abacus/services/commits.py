"""Commit persistence shared by polling and webhook ingestion."""

import logging
import re

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from abacus.config import Settings, get_settings
from abacus.schemas.records import CommitRecord
from abacus.services.identity import IdentityResolver, is_real_work_email
from abacus.services.upserts import get_commit_stats, get_or_create_repository, upsert_commit

logger = logging.getLogger(__name__)

GITHUB = "github"

NOREPLY_EMAIL_RE = re.compile(r"^(\d+)\+[^@]+@users\.noreply\.github\.com$", re.IGNORECASE)


def user_id_from_noreply_email(email: str | None) -> str | None:
    """Extract the user ID from `{id}+{login}@users.noreply.github.com`."""
    if not email:
        return None
    match = NOREPLY_EMAIL_RE.match(email)
    return match.group(1) if match else None


class CommitWriter:
    """
    Upserts commits and keeps GitHub identity mappings current.

    A commit carrying a real work email teaches the mapping for its author
    ID; a commit with a noreply email takes the mapped email when one exists.
    """

    def __init__(
        self,
        db: AsyncSession,
        resolver: IdentityResolver,
        settings: Settings | None = None,
    ):
        self.db = db
        self.resolver = resolver
        self.settings = settings or get_settings()
        self._repo_ids: dict[tuple[str, str], int] = {}

    async def repo_id(self, full_name: str, source: str = GITHUB) -> int:
        key = (source, full_name)
        if key not in self._repo_ids:
            self._repo_ids[key] = await get_or_create_repository(self.db, source, full_name)
        return self._repo_ids[key]

    async def has_stats(self, full_name: str, commit_id: str) -> bool:
        """Whether the commit is already stored with line stats."""
        stats = await get_commit_stats(self.db, await self.repo_id(full_name), commit_id)
        return stats is not None and stats[0] is not None

    async def _author_email(self, record: CommitRecord) -> tuple[str | None, bool]:
        """Email to store and whether the author ID is still unmapped."""
        if not record.author_id:
            return record.author_email, False

        if is_real_work_email(record.author_email, self.settings.work_email_domain):
            await self.resolver.learn(record.source, record.author_id, record.author_email)
            return record.author_email, False

        resolved = await self.resolver.resolve(record.source, record.author_id)
        return resolved or record.author_email, resolved is None

    async def write(self, records: list[CommitRecord]) -> tuple[int, int]:
        """
        Upsert commits on (repo, commit ID).

        Returns:
            Tuple of (commits written, commits skipped)
        """
        written = 0
        try:
            for record in records:
                repo_id = await self.repo_id(record.repo, record.source)
                email, unmapped = await self._author_email(record)
                is_new = await get_commit_stats(self.db, repo_id, record.commit_id) is None
                await upsert_commit(self.db, repo_id, record, author_email=email)
                if unmapped and is_new:
                    self.resolver.record_occurrence(record.source, record.author_id)
                written += 1
        except SQLAlchemyError:
            # Repository rows created in the failed transaction are gone
            self._repo_ids.clear()
            raise

        if written:
            logger.debug(f"Upserted {written} commits")
        return written, 0
