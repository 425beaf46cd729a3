"""Hourly-events adapter for the Cursor team usage events API."""

import asyncio
import logging
from datetime import timedelta
from typing import Any

from abacus.schemas.records import UsageRecordIn
from abacus.services.adapters.base import Cadence, Page, ProviderAdapter, SyncWindow
from abacus.services.cursor_client import CursorClient
from abacus.services.model_names import parse_model_name
from abacus.services.pricing import estimate_cost
from abacus.services.timeutils import parse_timestamp, utc_midnight

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000


class HourlyEventsAdapter(ProviderAdapter):
    """
    Syncs Cursor usage events, aggregated into per-day usage rows.

    Forward windows end at the last complete hour. Because rows are keyed
    by day, every fetched chunk starts at its day's midnight so the stored
    aggregate always covers the whole day up to the chunk end.
    """

    provider = "cursor"
    cadence = Cadence.HOURLY

    def __init__(self, *args: Any, client: CursorClient | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._client = client

    def is_configured(self) -> bool:
        return self._client is not None or bool(self.settings.cursor_admin_key)

    @property
    def client(self) -> CursorClient:
        if self._client is None:
            self._client = CursorClient(self.settings.cursor_admin_key, self.settings.cursor_base_url)
        return self._client

    def fetch_windows(self, window: SyncWindow) -> list[SyncWindow]:
        """Day-aligned chunks from the first day's midnight to the window end."""
        chunks: list[SyncWindow] = []
        day = window.first_day
        while utc_midnight(day) < window.end:
            next_midnight = utc_midnight(day + timedelta(days=1))
            chunks.append(SyncWindow(utc_midnight(day), min(next_midnight, window.end)))
            day += timedelta(days=1)
        return chunks

    async def fetch_page(self, window: SyncWindow, page_cursor: Any = None) -> Page:
        page = page_cursor or 1
        if page > 1 and self.settings.cursor_page_delay_seconds > 0:
            # 20 requests per minute
            await asyncio.sleep(self.settings.cursor_page_delay_seconds)

        body = await self.client.fetch_usage_events(window.start, window.end, page, PAGE_SIZE)
        has_next = (body.get("pagination") or {}).get("hasNextPage")
        return Page(items=list(body.get("usageEvents") or []), next_cursor=page + 1 if has_next else None)

    async def _identity(self, event: dict[str, Any]) -> tuple[str | None, bool]:
        email = event.get("userEmail")
        if email:
            return email.lower(), True

        user_id = event.get("userId")
        if user_id is None:
            return None, False
        resolved = await self.resolver.resolve(self.provider, str(user_id))
        if resolved:
            return resolved, True
        return str(user_id), False

    async def normalize(self, page: Page) -> list[UsageRecordIn]:
        records: list[UsageRecordIn] = []

        for event in page.items:
            usage = event.get("tokenUsage") or {}
            input_tokens = usage.get("inputTokens") or 0
            output_tokens = usage.get("outputTokens") or 0
            cache_write = usage.get("cacheWriteTokens") or 0
            cache_read = usage.get("cacheReadTokens") or 0

            # Events without any tokens (including cache) carry no usage
            if input_tokens + output_tokens + cache_write + cache_read == 0:
                page.skipped += 1
                continue

            timestamp = parse_timestamp(event.get("timestamp"))
            identity, resolved = await self._identity(event)
            if timestamp is None or identity is None:
                page.skipped += 1
                continue

            # The API reports 'default' where exports say 'auto'
            raw_model = event.get("model") or "auto"
            if raw_model == "default":
                raw_model = "auto"
            model = parse_model_name(raw_model)

            cents = usage.get("totalCents")
            if cents is not None:
                cost = cents / 100
            else:
                cost = estimate_cost(
                    model.base,
                    self.settings.model_pricing,
                    input_tokens,
                    output_tokens,
                    cache_write,
                    cache_read,
                )

            records.append(
                UsageRecordIn(
                    date=timestamp.date(),
                    identity=identity,
                    tool=self.provider,
                    raw_model=raw_model,
                    normalized_model=model.base,
                    model_qualifier=model.qualifier,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    cache_write_tokens=cache_write,
                    cache_read_tokens=cache_read,
                    estimated_cost=cost,
                    identity_resolved=resolved,
                )
            )

        return records

    async def write(self, records: list[UsageRecordIn]) -> tuple[int, int]:
        return await self.write_usage(records)
