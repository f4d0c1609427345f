"""Coordinator for a single integration's sync run."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from retention_sync.core.config import Settings, get_settings
from retention_sync.core.exceptions import (
    IntegrationNotConnectedError,
    IntegrationNotFoundError,
    SyncAlreadyInProgressError,
    UnsupportedPlatformError,
)
from retention_sync.integrations.base import IntegrationError
from retention_sync.integrations.registry import ConnectorRegistry
from retention_sync.models import (
    Integration,
    IntegrationStatus,
    SyncFailure,
    SyncOptions,
    SyncResult,
)
from retention_sync.repositories.base import CustomerStore, IntegrationStore
from retention_sync.services import metrics
from retention_sync.services.locks import BaseSyncLock, SyncLockManager
from retention_sync.services.merge import merge_records
from retention_sync.services.scheduler import Clock, SystemClock

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "sync cancelled before completion"


def _status_fields(integration: Integration) -> Dict[str, Any]:
    return {
        "status": integration.status,
        "last_sync_error": integration.last_sync_error,
        "updated_at": integration.updated_at,
    }


class SyncService:
    """Runs one sync of one integration end to end.
    
    The per-integration lock is held for the whole run, so two runs of the
    same integration never overlap while runs of different integrations
    proceed independently. Every path that acquires the lock releases it
    and leaves the integration's status consistent with the outcome.
    """
    
    def __init__(
        self,
        integrations: IntegrationStore,
        customers: CustomerStore,
        registry: ConnectorRegistry,
        locks: Optional[BaseSyncLock] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.integrations = integrations
        self.customers = customers
        self.registry = registry
        self.locks = locks or SyncLockManager()
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
    
    def build_options(self, full_resync: bool = False) -> SyncOptions:
        return SyncOptions(
            full_resync=full_resync,
            max_records=self.settings.sync_max_records,
            timeout_seconds=self.settings.sync_timeout_seconds,
            batch_size=self.settings.sync_batch_size,
        )
    
    async def run_sync(
        self,
        integration_id: str,
        full_resync: bool = False,
        options: Optional[SyncOptions] = None,
    ) -> SyncResult:
        """Sync one integration's customers into the canonical store.
        
        Raises IntegrationNotFoundError, IntegrationNotConnectedError,
        SyncAlreadyInProgressError or UnsupportedPlatformError. Connector
        faults do not raise; they come back as an unsuccessful result and
        are recorded on the integration.
        """
        integration = await self.integrations.get(integration_id)
        if integration is None:
            raise IntegrationNotFoundError(integration_id)
        if integration.status == IntegrationStatus.DISCONNECTED:
            raise IntegrationNotConnectedError(integration_id)
        
        if not await self.locks.try_acquire(integration_id):
            metrics.sync_contention_total.inc()
            logger.warning(f"Sync already in progress for integration {integration_id}, skipping")
            raise SyncAlreadyInProgressError(integration_id)
        
        try:
            # The earlier read may predate a run that finished while we waited for the lock
            integration = await self.integrations.get(integration_id)
            if integration is None:
                raise IntegrationNotFoundError(integration_id)
            if integration.status == IntegrationStatus.DISCONNECTED:
                raise IntegrationNotConnectedError(integration_id)
            return await self._run_locked(integration, options or self.build_options(full_resync))
        finally:
            await self.locks.release(integration_id)
    
    async def _run_locked(self, integration: Integration, options: SyncOptions) -> SyncResult:
        integration.mark_syncing()
        await self.integrations.update(integration.id, _status_fields(integration))
        logger.info(
            f"Starting {'full' if options.full_resync else 'incremental'} sync "
            f"for integration {integration.id} ({integration.integration_type.value})"
        )
        
        try:
            try:
                connector = self.registry.get_service(integration.integration_type)
            except UnsupportedPlatformError as e:
                e.integration_id = integration.id
                integration.mark_error(str(e))
                await self.integrations.update(integration.id, _status_fields(integration))
                metrics.sync_runs_total.labels(outcome="unsupported").inc()
                logger.error(f"No connector for integration {integration.id}: {e}")
                raise
            
            started_at = self.clock.now()
            try:
                result = await connector.sync_customers(integration, options)
                result = await merge_records(result, self.customers)
            except IntegrationError as e:
                logger.error(f"Sync failed for integration {integration.id}: {e}")
                result = self._failed_result(integration, started_at, str(e))
            except Exception as e:
                logger.exception(f"Unexpected error syncing integration {integration.id}")
                result = self._failed_result(integration, started_at, f"internal error: {type(e).__name__}")
            
            await self._complete(integration, result)
            return result
        except asyncio.CancelledError:
            integration.mark_error(CANCELLED_MESSAGE)
            await asyncio.shield(self.integrations.update(integration.id, _status_fields(integration)))
            logger.warning(f"Sync for integration {integration.id} was cancelled")
            raise
    
    def _failed_result(self, integration: Integration, started_at: datetime, reason: str) -> SyncResult:
        return SyncResult(
            integration_id=integration.id,
            failures=[SyncFailure(reason=reason)],
            success=False,
            started_at=started_at,
            duration_seconds=(self.clock.now() - started_at).total_seconds(),
        )
    
    async def _complete(self, integration: Integration, result: SyncResult) -> None:
        now = self.clock.now()
        integration.last_synced_at = now
        integration.synced_record_count += result.created + result.updated
        if result.success:
            integration.last_successful_sync_at = now
            integration.mark_connected()
        else:
            integration.mark_error(result.error_summary())
        
        fields = _status_fields(integration)
        fields.update({
            "last_synced_at": integration.last_synced_at,
            "last_successful_sync_at": integration.last_successful_sync_at,
            "synced_record_count": integration.synced_record_count,
        })
        await self.integrations.update(integration.id, fields)
        
        outcome = "success" if result.success else ("timeout" if result.timed_out else "failure")
        metrics.sync_runs_total.labels(outcome=outcome).inc()
        metrics.sync_run_duration.observe(result.duration_seconds)
        for label, count in (
            ("created", result.created),
            ("updated", result.updated),
            ("skipped", result.skipped),
            ("failed", result.failed),
        ):
            if count:
                metrics.sync_records_total.labels(outcome=label).inc(count)
        
        log = logger.info if result.success else logger.warning
        log(
            f"Sync for integration {integration.id} finished: "
            f"fetched={result.fetched} created={result.created} updated={result.updated} "
            f"skipped={result.skipped} failed={result.failed} success={result.success}"
        )
