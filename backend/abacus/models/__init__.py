"""Database models."""

from abacus.models.commit import Commit, CommitAttribution
from abacus.models.identity_mapping import IdentityMapping
from abacus.models.repository import Repository
from abacus.models.sync_state import SyncState
from abacus.models.usage_record import UsageRecord

__all__ = [
    "Commit",
    "CommitAttribution",
    "IdentityMapping",
    "Repository",
    "SyncState",
    "UsageRecord",
]
