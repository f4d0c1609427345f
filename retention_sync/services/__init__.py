"""Sync engine services."""

from .locks import BaseSyncLock, SyncLockManager, RedisSyncLockManager
from .merge import merge_records
from .scheduler import Clock, SystemClock, SyncScheduler
from .worker_pool import SyncWorkerPool
from .sync_service import SyncService
from .integration_sync_service import IntegrationSyncService

__all__ = [
    "BaseSyncLock",
    "SyncLockManager",
    "RedisSyncLockManager",
    "merge_records",
    "Clock",
    "SystemClock",
    "SyncScheduler",
    "SyncWorkerPool",
    "SyncService",
    "IntegrationSyncService",
]
