"""Canonical records and API response schemas."""

from abacus.schemas.records import (
    Attribution,
    BackfillResult,
    CommitRecord,
    ForwardSyncResult,
    MappingResult,
    PushResult,
    SyncStateSnapshot,
    UsageRecordIn,
)
from abacus.schemas.sync import (
    BackfillResponse,
    ForwardSyncResponse,
    MappingResponse,
    SyncStateOut,
    WebhookResponse,
)

__all__ = [
    "Attribution",
    "BackfillResponse",
    "BackfillResult",
    "CommitRecord",
    "ForwardSyncResponse",
    "ForwardSyncResult",
    "MappingResponse",
    "MappingResult",
    "PushResult",
    "SyncStateOut",
    "SyncStateSnapshot",
    "UsageRecordIn",
    "WebhookResponse",
]
