"""Client for the Anthropic Admin API (Claude Code usage report and directory)."""

import logging
from datetime import date
from typing import Any

import httpx

from abacus.config import get_settings
from abacus.services.errors import AuthConfigurationError
from abacus.services.http_client import ProviderHTTPClient

logger = logging.getLogger(__name__)


class AnthropicClient(ProviderHTTPClient):
    """
    Client for the Anthropic Admin API.

    The usage report returns one record per actor per day with a per-model
    breakdown; it paginates with an opaque `next_page` token. The users and
    API keys listings paginate with `after_id`.
    """

    provider_name = "anthropic"

    def __init__(
        self,
        admin_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ):
        settings = get_settings()
        self.admin_key = admin_key if admin_key is not None else settings.anthropic_admin_key
        if not self.admin_key:
            raise AuthConfigurationError("ANTHROPIC_ADMIN_KEY not configured")

        super().__init__(
            base_url or settings.anthropic_base_url,
            headers={
                "X-Api-Key": self.admin_key,
                "anthropic-version": settings.anthropic_version,
            },
            transport=transport,
            **kwargs,
        )

    async def fetch_usage_report(
        self,
        day: date,
        page: str | None = None,
        limit: int = 1000,
    ) -> dict[str, Any]:
        """
        Fetch one page of the Claude Code usage report for a single day.

        Returns:
            Response body with `data`, `has_more` and `next_page`
        """
        params: dict[str, Any] = {"starting_at": day.isoformat(), "limit": limit}
        if page:
            params["page"] = page

        logger.debug(f"Fetching Claude Code usage report: day={day}, page={page}")
        return await self.get("/v1/organizations/usage_report/claude_code", params)

    async def _list_all(self, path: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        after_id: str | None = None

        while True:
            page_params = dict(params)
            if after_id:
                page_params["after_id"] = after_id
            body = await self.get(path, page_params)
            items.extend(body.get("data") or [])
            if not body.get("has_more") or not body.get("last_id"):
                break
            after_id = body["last_id"]

        return items

    async def list_users(self) -> list[dict[str, Any]]:
        """List every organization member (`id`, `email`, ...)."""
        return await self._list_all("/v1/organizations/users", {"limit": 100})

    async def list_api_keys(self, status: str = "active") -> list[dict[str, Any]]:
        """List API keys with the given status (`active`, `inactive`, `archived`)."""
        return await self._list_all("/v1/organizations/api_keys", {"limit": 100, "status": status})
