"""Provider adapters behind the orchestration contract."""

from sqlalchemy.ext.asyncio import AsyncSession

from abacus.config import Settings
from abacus.services.adapters.base import Cadence, Page, ProviderAdapter, SyncWindow
from abacus.services.adapters.github_commits import CommitPage, GitHubCommitAdapter
from abacus.services.adapters.hourly_events import HourlyEventsAdapter
from abacus.services.adapters.usage_report import UsageReportAdapter
from abacus.services.identity import IdentityResolver

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    UsageReportAdapter.provider: UsageReportAdapter,
    HourlyEventsAdapter.provider: HourlyEventsAdapter,
    GitHubCommitAdapter.provider: GitHubCommitAdapter,
}

PROVIDERS = tuple(ADAPTERS)


class UnknownProviderError(ValueError):
    """Provider name has no registered adapter."""


def build_adapter(
    provider: str,
    db: AsyncSession,
    resolver: IdentityResolver,
    settings: Settings | None = None,
) -> ProviderAdapter:
    try:
        adapter_cls = ADAPTERS[provider]
    except KeyError:
        raise UnknownProviderError(f"Unknown provider: {provider}") from None
    return adapter_cls(db, resolver, settings)


__all__ = [
    "ADAPTERS",
    "PROVIDERS",
    "Cadence",
    "CommitPage",
    "GitHubCommitAdapter",
    "HourlyEventsAdapter",
    "Page",
    "ProviderAdapter",
    "SyncWindow",
    "UnknownProviderError",
    "UsageReportAdapter",
    "build_adapter",
]
