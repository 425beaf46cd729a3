"""Services for provider sync and business logic."""

from abacus.services.identity import IdentityResolver
from abacus.services.mapping_sync import MappingSyncService
from abacus.services.orchestrator import SyncOrchestrator
from abacus.services.webhooks import WebhookProcessor

__all__ = ["IdentityResolver", "MappingSyncService", "SyncOrchestrator", "WebhookProcessor"]
