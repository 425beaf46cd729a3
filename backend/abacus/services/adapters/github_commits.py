"""Commit adapter polling GitHub repository history."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from abacus.schemas.records import CommitRecord
from abacus.services.adapters.base import Cadence, Page, ProviderAdapter, SyncWindow
from abacus.services.attribution import AttributionDetector
from abacus.services.commits import GITHUB, CommitWriter
from abacus.services.errors import ProviderAPIError
from abacus.services.github_client import GitHubClient
from abacus.services.timeutils import parse_timestamp, utc_midnight

logger = logging.getLogger(__name__)

PER_PAGE = 100


@dataclass
class CommitPage:
    """One page of a repository's default-branch history, newest first."""

    repo: str
    branch: str
    commits: list[dict[str, Any]] = field(default_factory=list)
    next_page: int | None = None


class GitHubCommitAdapter(ProviderAdapter):
    """
    Walks repository default branches and attributes commits to AI tools.

    Repositories come from GITHUB_REPOS or, when unset, the organization
    listing. Page cursors are (repository index, page number). A failure
    limited to one repository (missing, no access) is reported and the
    remaining repositories continue.
    """

    provider = GITHUB
    cadence = Cadence.COMMITS
    partial_writes_safe = True

    def __init__(
        self,
        *args: Any,
        client: GitHubClient | None = None,
        detector: AttributionDetector | None = None,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self._client = client
        self.detector = detector or AttributionDetector.from_config(self.settings.attribution_rules)
        self.writer = CommitWriter(self.db, self.resolver, self.settings)
        self._repos: list[str] | None = None
        self._branches: dict[str, str] = {}

    def is_configured(self) -> bool:
        has_token = self._client is not None or bool(self.settings.github_token)
        return has_token and bool(self.settings.github_repos or self.settings.github_org)

    @property
    def client(self) -> GitHubClient:
        if self._client is None:
            self._client = GitHubClient(self.settings.github_token, self.settings.github_api_url)
        return self._client

    async def repositories(self) -> list[str]:
        if self._repos is None:
            if self.settings.github_repos:
                self._repos = list(self.settings.github_repos)
            else:
                self._repos = await self.client.list_org_repos(self.settings.github_org)
                logger.info(f"Found {len(self._repos)} repos in {self.settings.github_org}")
        return self._repos

    async def default_branch(self, repo: str) -> str:
        if repo not in self._branches:
            self._branches[repo] = await self.client.fetch_default_branch(repo)
        return self._branches[repo]

    async def fetch_commits(
        self,
        repo: str,
        before: datetime,
        since: datetime | None = None,
        page: int = 1,
        per_page: int = PER_PAGE,
    ) -> CommitPage:
        """
        Fetch one page of default-branch commits older than `before`.

        Args:
            repo: Repository full name
            before: Exclusive upper bound on commit time
            since: Optional lower bound on commit time
            page: 1-based page number
        """
        branch = await self.default_branch(repo)
        commits = await self.client.list_commits(
            repo, branch, since=since, until=before, page=page, per_page=per_page
        )
        next_page = page + 1 if len(commits) >= per_page else None
        return CommitPage(repo=repo, branch=branch, commits=commits, next_page=next_page)

    def backfill_windows(self, first_day: date, end_day: date) -> list[SyncWindow]:
        """Commit history is walked per batch, not per day."""
        return [SyncWindow(utc_midnight(first_day), utc_midnight(end_day))]

    async def fetch_page(self, window: SyncWindow, page_cursor: Any = None) -> Page:
        repos = await self.repositories()
        if not repos:
            return Page(items=[])

        index, page = page_cursor or (0, 1)
        repo = repos[index]
        following = (index + 1, 1) if index + 1 < len(repos) else None

        try:
            commit_page = await self.fetch_commits(repo, before=window.end, since=window.start, page=page)
        except ProviderAPIError as e:
            logger.warning(f"Skipping {repo}: {e}")
            return Page(items=[], next_cursor=following, errors=[f"{repo}: {e}"])

        items = [{"repo": repo, "commit": raw} for raw in commit_page.commits]
        if commit_page.next_page:
            return Page(items=items, next_cursor=(index, commit_page.next_page))
        return Page(items=items, next_cursor=following)

    async def _line_stats(self, repo: str, sha: str) -> tuple[int | None, int | None]:
        try:
            detail = await self.client.get_commit(repo, sha)
        except ProviderAPIError as e:
            logger.warning(f"Could not fetch stats for {repo}@{sha[:7]}: {e}")
            return None, None
        stats = detail.get("stats") or {}
        return stats.get("additions") or 0, stats.get("deletions") or 0

    async def normalize(self, page: Page) -> list[CommitRecord]:
        records: list[CommitRecord] = []

        for item in page.items:
            repo, raw = item["repo"], item["commit"]
            sha = raw["sha"]

            # Merge commits don't represent code changes
            if len(raw.get("parents") or []) > 1:
                page.skipped += 1
                continue

            if await self.writer.has_stats(repo, sha):
                page.skipped += 1
                continue

            detail = raw.get("commit") or {}
            author = detail.get("author") or {}
            account = raw.get("author") or {}
            committed_at = parse_timestamp(author.get("date"))
            if committed_at is None:
                page.skipped += 1
                continue

            additions, deletions = await self._line_stats(repo, sha)
            message = detail.get("message")
            author_name = " ".join(filter(None, [author.get("name"), account.get("login")]))

            records.append(
                CommitRecord(
                    repo=repo,
                    commit_id=sha,
                    committed_at=committed_at,
                    message=message,
                    author_email=author.get("email"),
                    author_id=str(account["id"]) if account.get("id") is not None else None,
                    additions=additions,
                    deletions=deletions,
                    attributions=self.detector.detect(message, author_name, author.get("email")),
                )
            )

        return records

    async def write(self, records: list[CommitRecord]) -> tuple[int, int]:
        return await self.writer.write(records)

    async def has_history_before(self, day: date) -> bool | None:
        """
        Whether any tracked repository has a default-branch commit before `day`.

        Raises:
            ProviderAPIError: no repository had history and at least one
                could not be checked, so the answer is unknown
        """
        failed: list[str] = []
        for repo in await self.repositories():
            try:
                page = await self.fetch_commits(repo, before=utc_midnight(day), per_page=1)
            except ProviderAPIError as e:
                logger.warning(f"Could not check {repo} history: {e}")
                failed.append(f"{repo}: {e}")
                continue
            if page.commits:
                return True

        if failed:
            raise ProviderAPIError(f"History unknown for {len(failed)} repositories ({'; '.join(failed)})")
        return False
