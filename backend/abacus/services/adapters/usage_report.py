"""Usage-report adapter for the Claude Code daily usage API."""

import logging
from datetime import timedelta
from typing import Any

from abacus.schemas.records import UsageRecordIn
from abacus.services.adapters.base import Cadence, Page, ProviderAdapter, SyncWindow, day_windows
from abacus.services.anthropic_client import AnthropicClient
from abacus.services.model_names import parse_model_name
from abacus.services.pricing import estimate_cost
from abacus.services.timeutils import parse_timestamp

logger = logging.getLogger(__name__)


class UsageReportAdapter(ProviderAdapter):
    """
    Syncs Claude Code usage from the Anthropic usage report.

    The report is requested one day at a time; each record is one actor's
    usage for that day with a per-model breakdown. API-key actors are
    resolved to emails through identity mappings keyed by key name.
    """

    provider = "claude_code"
    cadence = Cadence.DAILY

    def __init__(self, *args: Any, client: AnthropicClient | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._client = client

    def is_configured(self) -> bool:
        return self._client is not None or bool(self.settings.anthropic_admin_key)

    @property
    def client(self) -> AnthropicClient:
        if self._client is None:
            self._client = AnthropicClient(self.settings.anthropic_admin_key, self.settings.anthropic_base_url)
        return self._client

    def fetch_windows(self, window: SyncWindow) -> list[SyncWindow]:
        """One window per day, oldest first."""
        return day_windows(window.first_day, window.last_day + timedelta(days=1))

    async def fetch_page(self, window: SyncWindow, page_cursor: Any = None) -> Page:
        body = await self.client.fetch_usage_report(window.first_day, page=page_cursor)
        next_page = body.get("next_page") if body.get("has_more") else None
        return Page(items=list(body.get("data") or []), next_cursor=next_page)

    async def _identity(self, actor: dict[str, Any]) -> tuple[str | None, bool]:
        email = actor.get("email_address")
        if email:
            return email.lower(), True

        key_name = actor.get("api_key_name")
        if not key_name:
            return None, False

        resolved = await self.resolver.resolve(self.provider, key_name)
        if resolved:
            return resolved, True
        return key_name, False

    async def normalize(self, page: Page) -> list[UsageRecordIn]:
        records: list[UsageRecordIn] = []

        for item in page.items:
            identity, resolved = await self._identity(item.get("actor") or {})
            day = parse_timestamp(item.get("date"))
            if identity is None or day is None:
                page.skipped += 1
                continue

            for breakdown in item.get("model_breakdown") or []:
                raw_model = breakdown.get("model") or "unknown"
                model = parse_model_name(raw_model)
                tokens = breakdown.get("tokens") or {}
                input_tokens = tokens.get("input") or 0
                output_tokens = tokens.get("output") or 0
                cache_write = tokens.get("cache_creation") or 0
                cache_read = tokens.get("cache_read") or 0

                reported = (breakdown.get("estimated_cost") or {}).get("amount")
                if reported is not None:
                    cost = reported / 100
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
                        date=day.date(),
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
