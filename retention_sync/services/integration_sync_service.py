"""Public entry point of the sync engine.

Request handlers and the lifespan hooks talk to :class:`IntegrationSyncService`
only; it routes work through the worker pool, the scheduler and the
coordinator.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Type
import logging

from retention_sync.core.config import Settings, get_settings
from retention_sync.core.exceptions import (
    IntegrationNotConnectedError,
    IntegrationNotFoundError,
    SyncAlreadyInProgressError,
    SyncEngineError,
    UnsupportedPlatformError,
)
from retention_sync.integrations.base import IntegrationError
from retention_sync.models import (
    Integration,
    IntegrationStatus,
    IntegrationSyncOutcome,
    IntegrationType,
    SyncResult,
)
from retention_sync.services.scheduler import SyncScheduler
from retention_sync.services.sync_service import SyncService
from retention_sync.services.worker_pool import SyncWorkerPool

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "sync interrupted before completion"

# Error kinds reported in fan-out outcomes
ERROR_KINDS: Dict[Type[Exception], str] = {
    IntegrationNotFoundError: "not_found",
    UnsupportedPlatformError: "unsupported_platform",
    SyncAlreadyInProgressError: "sync_already_in_progress",
    IntegrationNotConnectedError: "not_connected",
}


def error_kind(error: BaseException) -> str:
    if isinstance(error, asyncio.CancelledError):
        return "cancelled"
    for error_class, kind in ERROR_KINDS.items():
        if isinstance(error, error_class):
            return kind
    return "internal_error"


class IntegrationSyncService:
    """Orchestrates syncs across integrations."""
    
    def __init__(
        self,
        sync_service: SyncService,
        scheduler: Optional[SyncScheduler] = None,
        worker_pool: Optional[SyncWorkerPool] = None,
        settings: Optional[Settings] = None,
    ):
        self.sync_service = sync_service
        self.integrations = sync_service.integrations
        self.registry = sync_service.registry
        self.locks = sync_service.locks
        self.settings = settings or sync_service.settings or get_settings()
        self.scheduler = scheduler or SyncScheduler(sync_service.clock)
        self.worker_pool = worker_pool or SyncWorkerPool(
            sync_service.run_sync,
            workers=self.settings.sync_workers,
            queue_size=self.settings.sync_queue_size,
        )
        self._scheduler_task: Optional[asyncio.Task] = None
    
    # Lifecycle
    
    async def start(self) -> None:
        """Start the workers and the scheduler loop, restoring persisted state."""
        await self.worker_pool.start()
        await self.recover_interrupted_syncs()
        await self.restore_schedules()
        self._scheduler_task = asyncio.create_task(
            self.scheduler.run(self._submit_scheduled, self.settings.scheduler_tick_seconds)
        )
        logger.info("Integration sync service started")
    
    async def stop(self) -> None:
        """Stop scheduling, then give in-flight runs a grace period."""
        self.scheduler.stop()
        if self._scheduler_task is not None:
            await self._scheduler_task
            self._scheduler_task = None
        await self.worker_pool.stop(drain=False, timeout=self.settings.shutdown_grace_seconds)
        logger.info("Integration sync service stopped")
    
    async def recover_interrupted_syncs(self) -> int:
        """Move integrations left in syncing by a dead process to error."""
        recovered = 0
        for integration in await self.integrations.list_by_status(IntegrationStatus.SYNCING):
            if await self.locks.is_locked(integration.id):
                continue
            integration.mark_error(INTERRUPTED_MESSAGE)
            await self.integrations.update(integration.id, {
                "status": integration.status,
                "last_sync_error": integration.last_sync_error,
            })
            recovered += 1
        if recovered:
            logger.warning(f"Marked {recovered} interrupted syncs as failed")
        return recovered
    
    async def restore_schedules(self) -> int:
        """Re-enable every persisted automatic sync schedule."""
        restored = 0
        for integration in await self.integrations.list_scheduled():
            if integration.status == IntegrationStatus.DISCONNECTED:
                continue
            self.scheduler.enable(integration.id, timedelta(minutes=integration.sync_interval_minutes))
            restored += 1
        logger.info(f"Restored {restored} automatic sync schedules")
        return restored
    
    # Sync triggers
    
    async def sync_one(self, integration_id: str, full_resync: bool = False) -> SyncResult:
        """Sync one integration now, surfacing the coordinator's result or error."""
        return await self.sync_service.run_sync(integration_id, full_resync=full_resync)
    
    async def sync_all(
        self,
        due_only: bool = True,
        tenant_id: Optional[str] = None,
        full_resync: bool = False,
    ) -> List[IntegrationSyncOutcome]:
        """Sync scheduled integrations through the worker pool.
        
        With ``due_only`` only the integrations whose schedule has elapsed
        run (and their due times advance); otherwise every scheduled
        integration runs. ``tenant_id`` restricts the fan-out to one
        tenant. Each integration gets its own outcome and one failure
        never cancels the others.
        """
        candidates = None
        if tenant_id is not None:
            tenant_integrations = await self.integrations.list_by_tenant(tenant_id, limit=0)
            candidates = [integration.id for integration in tenant_integrations]
        
        if due_only:
            integration_ids = self.scheduler.collect_due(only=candidates)
        else:
            integration_ids = self.scheduler.scheduled_ids()
            if candidates is not None:
                allowed = set(candidates)
                integration_ids = [i for i in integration_ids if i in allowed]
        
        logger.info(f"Syncing {len(integration_ids)} integrations (due_only={due_only})")
        futures = []
        for integration_id in integration_ids:
            futures.append(await self.worker_pool.submit(integration_id, full_resync))
        
        results = await asyncio.gather(*futures, return_exceptions=True)
        
        outcomes = []
        for integration_id, result in zip(integration_ids, results):
            if isinstance(result, BaseException):
                outcomes.append(IntegrationSyncOutcome(
                    integration_id=integration_id,
                    error=error_kind(result),
                    error_message=self._safe_message(result),
                ))
            else:
                outcomes.append(IntegrationSyncOutcome(integration_id=integration_id, result=result))
        return outcomes
    
    async def _submit_scheduled(self, integration_id: str) -> None:
        future = await self.worker_pool.submit(integration_id)
        future.add_done_callback(lambda f: self._log_scheduled_outcome(integration_id, f))
    
    def _log_scheduled_outcome(self, integration_id: str, future: asyncio.Future) -> None:
        if future.cancelled():
            logger.warning(f"Scheduled sync for integration {integration_id} was abandoned")
            return
        error = future.exception()
        if isinstance(error, SyncAlreadyInProgressError):
            logger.info(f"Scheduled sync for integration {integration_id} skipped: already running")
        elif error is not None:
            logger.error(f"Scheduled sync for integration {integration_id} failed: {error}")
    
    @staticmethod
    def _safe_message(error: BaseException) -> str:
        if isinstance(error, (SyncEngineError, IntegrationError)):
            return str(error)
        if isinstance(error, asyncio.CancelledError):
            return "sync cancelled"
        return f"internal error: {type(error).__name__}"
    
    # Schedules
    
    async def _require(self, integration_id: str) -> Integration:
        integration = await self.integrations.get(integration_id)
        if integration is None:
            raise IntegrationNotFoundError(integration_id)
        return integration
    
    def default_interval(self, integration: Integration) -> timedelta:
        """Interval from the ``auto_sync_interval`` setting (hours), else the service default."""
        configured = integration.configuration.get("auto_sync_interval")
        if configured:
            try:
                hours = float(configured)
            except ValueError:
                hours = 0
            if hours > 0:
                return timedelta(hours=hours)
            logger.warning(
                f"Ignoring invalid auto_sync_interval {configured!r} for integration {integration.id}"
            )
        return timedelta(hours=self.settings.default_sync_interval_hours)
    
    async def schedule_automatic_sync(
        self,
        integration_id: str,
        interval: Optional[timedelta] = None,
    ) -> datetime:
        """Enable (or replace) automatic sync; returns the next due time."""
        integration = await self._require(integration_id)
        if integration.status == IntegrationStatus.DISCONNECTED:
            raise IntegrationNotConnectedError(integration_id)
        
        interval = interval or self.default_interval(integration)
        next_due_at = self.scheduler.enable(integration_id, interval)
        await self.integrations.update(integration_id, {
            "sync_interval_minutes": max(1, int(interval.total_seconds() // 60)),
        })
        return next_due_at
    
    async def disable_automatic_sync(self, integration_id: str) -> bool:
        """Disable automatic sync. Disabling an absent schedule is a no-op."""
        removed = self.scheduler.disable(integration_id)
        integration = await self.integrations.get(integration_id)
        if integration is not None and integration.sync_interval_minutes is not None:
            await self.integrations.update(integration_id, {"sync_interval_minutes": None})
        return removed
    
    # Integration lifecycle
    
    async def create_integration(
        self,
        tenant_id: str,
        integration_type: IntegrationType,
        name: str,
        credentials: Optional[Dict[str, str]] = None,
        configuration: Optional[Dict[str, str]] = None,
        configured_by_user_id: Optional[str] = None,
    ) -> Integration:
        """Store a newly configured platform connection.
        
        The integration starts disconnected; a successful connection test
        connects it.
        """
        # Raises UnsupportedPlatformError
        self.registry.get_service(integration_type)
        
        integration = Integration(
            tenant_id=tenant_id,
            configured_by_user_id=configured_by_user_id,
            integration_type=integration_type,
            name=name,
            credentials=credentials,
            configuration=configuration or {},
        )
        return await self.integrations.create(integration)
    
    async def test_connection(self, integration_id: str) -> Tuple[bool, str]:
        """Test an integration's credentials and record the outcome."""
        integration = await self._require(integration_id)
        connector = self.registry.get_service(integration.integration_type)
        
        if not await self.locks.try_acquire(integration_id):
            raise SyncAlreadyInProgressError(integration_id)
        try:
            try:
                connected = await connector.test_connection(integration)
                message = "Connection successful" if connected else "Connection failed"
            except IntegrationError as e:
                logger.error(f"Connection test failed for integration {integration_id}: {e}")
                connected, message = False, str(e)
            except Exception as e:
                logger.exception(f"Unexpected error testing integration {integration_id}")
                connected, message = False, f"internal error: {type(e).__name__}"
            
            if connected:
                integration.mark_connected()
            else:
                integration.mark_error(f"Connection test failed: {message}")
            await self.integrations.update(integration_id, {
                "status": integration.status,
                "last_sync_error": integration.last_sync_error,
            })
            return connected, message
        finally:
            await self.locks.release(integration_id)
    
    async def disconnect(self, integration_id: str) -> Integration:
        """Stop syncing an integration and forget its credentials."""
        integration = await self._require(integration_id)
        if not await self.locks.try_acquire(integration_id):
            raise SyncAlreadyInProgressError(integration_id)
        try:
            self.scheduler.disable(integration_id)
            integration.mark_disconnected()
            integration.sync_interval_minutes = None
            await self.integrations.update(integration_id, {
                "status": integration.status,
                "last_sync_error": None,
                "credentials": None,
                "sync_interval_minutes": None,
            })
        finally:
            await self.locks.release(integration_id)
        logger.info(f"Disconnected integration {integration_id}")
        return integration
    
    async def delete_integration(self, integration_id: str) -> None:
        await self._require(integration_id)
        self.scheduler.disable(integration_id)
        await self.integrations.delete(integration_id)
