"""Client for the GitHub REST and GraphQL APIs."""

import logging
from datetime import datetime
from typing import Any

import httpx

from abacus.config import get_settings
from abacus.services.errors import AuthConfigurationError, ProviderAPIError
from abacus.services.http_client import ProviderHTTPClient

logger = logging.getLogger(__name__)

MEMBERS_QUERY = """
query($org: String!, $cursor: String) {
  organization(login: $org) {
    membersWithRole(first: 100, after: $cursor) {
      nodes {
        login
        databaseId
        organizationVerifiedDomainEmails(login: $org)
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""


def iso8601(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


class GitHubClient(ProviderHTTPClient):
    """
    Client for the GitHub API using a personal access token.

    GitHub signals primary rate limits with 403 plus
    `x-ratelimit-remaining: 0`, and secondary limits with 429.
    """

    provider_name = "github"

    def __init__(
        self,
        token: str | None = None,
        api_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ):
        settings = get_settings()
        self.token = token if token is not None else settings.github_token
        if not self.token:
            raise AuthConfigurationError("GITHUB_TOKEN not configured")

        super().__init__(
            api_url or settings.github_api_url,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self.token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            transport=transport,
            **kwargs,
        )

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        return response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"

    async def fetch_default_branch(self, repo: str) -> str:
        data = await self.get(f"/repos/{repo}")
        branch = data.get("default_branch")
        if not branch:
            raise ProviderAPIError(f"{repo}: repository has no default branch")
        return branch

    async def list_commits(
        self,
        repo: str,
        branch: str,
        since: datetime | None = None,
        until: datetime | None = None,
        page: int = 1,
        per_page: int = 100,
    ) -> list[dict[str, Any]]:
        """
        List commits on a branch, newest first.

        Args:
            repo: Repository full name (owner/name)
            branch: Branch to walk
            since: Only commits after this instant
            until: Only commits before this instant
        """
        params: dict[str, Any] = {"sha": branch, "per_page": per_page, "page": page}
        if since:
            params["since"] = iso8601(since)
        if until:
            params["until"] = iso8601(until)

        logger.debug(f"Listing commits for {repo}: since={since}, until={until}, page={page}")
        return await self.get(f"/repos/{repo}/commits", params)

    async def get_commit(self, repo: str, sha: str) -> dict[str, Any]:
        """Fetch a single commit including `stats` and `parents`."""
        return await self.get(f"/repos/{repo}/commits/{sha}")

    async def list_org_repos(self, org: str) -> list[str]:
        """List full names of the organization's non-archived repositories."""
        repos: list[str] = []
        page = 1

        while True:
            data = await self.get(f"/orgs/{org}/repos", {"per_page": 100, "page": page})
            if not data:
                break
            repos.extend(r["full_name"] for r in data if not r.get("archived"))
            page += 1

        return repos

    async def fetch_member_emails(self, org: str) -> list[dict[str, Any]]:
        """
        Fetch org members with their verified domain emails via GraphQL.

        Returns:
            Nodes with `login`, `databaseId` and `organizationVerifiedDomainEmails`
        """
        members: list[dict[str, Any]] = []
        cursor: str | None = None

        while True:
            body = await self.post(
                "/graphql",
                json={"query": MEMBERS_QUERY, "variables": {"org": org, "cursor": cursor}},
            )
            if body.get("errors"):
                messages = ", ".join(e.get("message", "") for e in body["errors"])
                raise ProviderAPIError(f"GraphQL errors: {messages}")

            data = ((body.get("data") or {}).get("organization") or {}).get("membersWithRole")
            if not data:
                raise ProviderAPIError("No organization data returned")

            members.extend(data.get("nodes") or [])
            page_info = data.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        return members
