"""Client for the Cursor Admin API (team usage events)."""

import logging
from datetime import datetime
from typing import Any

import httpx

from abacus.config import get_settings
from abacus.services.errors import AuthConfigurationError
from abacus.services.http_client import ProviderHTTPClient

logger = logging.getLogger(__name__)


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class CursorClient(ProviderHTTPClient):
    """
    Client for the Cursor Admin API.

    Authenticates with Basic auth (admin key as username, empty password).
    The API allows about 20 requests per minute; pacing between pages is
    left to the caller.
    """

    provider_name = "cursor"

    def __init__(
        self,
        admin_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ):
        settings = get_settings()
        self.admin_key = admin_key if admin_key is not None else settings.cursor_admin_key
        if not self.admin_key:
            raise AuthConfigurationError("CURSOR_ADMIN_KEY not configured")

        super().__init__(
            base_url or settings.cursor_base_url,
            headers={"Content-Type": "application/json"},
            auth=(self.admin_key, ""),
            transport=transport,
            **kwargs,
        )

    async def fetch_usage_events(
        self,
        start: datetime,
        end: datetime,
        page: int = 1,
        page_size: int = 1000,
    ) -> dict[str, Any]:
        """
        Fetch one page of usage events between two instants.

        Returns:
            Response body with `usageEvents` and `pagination.hasNextPage`
        """
        body = {
            "startDate": to_epoch_ms(start),
            "endDate": to_epoch_ms(end),
            "page": page,
            "pageSize": page_size,
        }
        logger.debug(f"Fetching Cursor usage events: {start} to {end}, page={page}")
        return await self.post("/teams/filtered-usage-events", json=body)
