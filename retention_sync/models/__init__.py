"""Models for the sync engine."""

from .integration import Integration, IntegrationType, IntegrationStatus, PlatformCategory
from .customer import CustomerRecord, MergeOutcome, SubscriptionStatus
from .sync import SyncOptions, SyncFailure, SyncResult, IntegrationSyncOutcome

__all__ = [
    "Integration",
    "IntegrationType",
    "IntegrationStatus",
    "PlatformCategory",
    "CustomerRecord",
    "MergeOutcome",
    "SubscriptionStatus",
    "SyncOptions",
    "SyncFailure",
    "SyncResult",
    "IntegrationSyncOutcome",
]
