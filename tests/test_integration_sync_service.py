"""Tests for the orchestration façade."""

import asyncio
from datetime import timedelta

import pytest

from retention_sync.core.exceptions import (
    IntegrationNotConnectedError,
    IntegrationNotFoundError,
    SyncAlreadyInProgressError,
    UnsupportedPlatformError,
)
from retention_sync.integrations.base import AuthenticationError
from retention_sync.models import Integration, IntegrationStatus, IntegrationType
from retention_sync.services import IntegrationSyncService, SyncScheduler


@pytest.fixture
def service(sync_service, settings, clock):
    return IntegrationSyncService(sync_service, scheduler=SyncScheduler(clock), settings=settings)


class TestSyncAll:
    
    @pytest.mark.asyncio
    async def test_due_integrations_run_through_pool(self, service, make_integration, clock):
        due = make_integration()
        later = make_integration()
        await service.schedule_automatic_sync(due.id, timedelta(minutes=10))
        await service.schedule_automatic_sync(later.id, timedelta(hours=1))
        clock.advance(timedelta(minutes=10))
        
        await service.worker_pool.start()
        outcomes = await service.sync_all()
        await service.worker_pool.stop()
        
        assert [o.integration_id for o in outcomes] == [due.id]
        assert outcomes[0].succeeded
        assert outcomes[0].result.created == 10
    
    @pytest.mark.asyncio
    async def test_one_failure_does_not_cancel_others(self, service, make_integration):
        good = make_integration()
        unsupported = make_integration(IntegrationType.INTERCOM)
        await service.schedule_automatic_sync(good.id, timedelta(minutes=10))
        await service.schedule_automatic_sync(unsupported.id, timedelta(minutes=10))
        
        await service.worker_pool.start()
        outcomes = {o.integration_id: o for o in await service.sync_all(due_only=False)}
        await service.worker_pool.stop()
        
        assert outcomes[good.id].succeeded
        assert outcomes[unsupported.id].error == "unsupported_platform"
        assert outcomes[unsupported.id].result is None
    
    @pytest.mark.asyncio
    async def test_tenant_filter(self, service, make_integration):
        mine = make_integration(tenant_id="tenant-1")
        theirs = make_integration(tenant_id="tenant-2")
        await service.schedule_automatic_sync(mine.id, timedelta(minutes=10))
        await service.schedule_automatic_sync(theirs.id, timedelta(minutes=10))
        
        await service.worker_pool.start()
        outcomes = await service.sync_all(due_only=False, tenant_id="tenant-1")
        await service.worker_pool.stop()
        
        assert [o.integration_id for o in outcomes] == [mine.id]
    
    @pytest.mark.asyncio
    async def test_sync_one_surfaces_errors_unchanged(self, service):
        with pytest.raises(IntegrationNotFoundError):
            await service.sync_one("missing")


class TestSchedules:
    
    @pytest.mark.asyncio
    async def test_schedule_persists_interval(self, service, make_integration, integration_store, clock):
        integration = make_integration()
        
        due = await service.schedule_automatic_sync(integration.id, timedelta(hours=2))
        
        assert due == clock.now() + timedelta(hours=2)
        assert integration_store.items[integration.id].sync_interval_minutes == 120
    
    @pytest.mark.asyncio
    async def test_default_interval_from_configuration(self, service, make_integration):
        integration = make_integration(configuration={"auto_sync_interval": "6"})
        
        await service.schedule_automatic_sync(integration.id)
        
        assert service.scheduler.interval(integration.id) == timedelta(hours=6)
    
    @pytest.mark.asyncio
    async def test_default_interval_falls_back_to_settings(self, service, make_integration, settings):
        integration = make_integration(configuration={"auto_sync_interval": "often"})
        
        await service.schedule_automatic_sync(integration.id)
        
        assert service.scheduler.interval(integration.id) == timedelta(hours=settings.default_sync_interval_hours)
    
    @pytest.mark.asyncio
    async def test_schedule_unknown_integration(self, service):
        with pytest.raises(IntegrationNotFoundError):
            await service.schedule_automatic_sync("missing")
    
    @pytest.mark.asyncio
    async def test_schedule_disconnected_integration(self, service, make_integration):
        integration = make_integration(status=IntegrationStatus.DISCONNECTED, credentials=None)
        
        with pytest.raises(IntegrationNotConnectedError):
            await service.schedule_automatic_sync(integration.id)
    
    @pytest.mark.asyncio
    async def test_disable_is_idempotent(self, service, make_integration, integration_store):
        integration = make_integration()
        await service.schedule_automatic_sync(integration.id, timedelta(hours=1))
        
        assert await service.disable_automatic_sync(integration.id) is True
        assert await service.disable_automatic_sync(integration.id) is False
        assert integration_store.items[integration.id].sync_interval_minutes is None
    
    @pytest.mark.asyncio
    async def test_disable_unknown_integration(self, service, integration_store):
        assert await service.disable_automatic_sync("missing") is False
        assert integration_store.writes == []
    
    @pytest.mark.asyncio
    async def test_restore_schedules(self, service, make_integration):
        scheduled = make_integration(sync_interval_minutes=45)
        make_integration()
        make_integration(status=IntegrationStatus.DISCONNECTED, credentials=None, sync_interval_minutes=30)
        
        restored = await service.restore_schedules()
        
        assert restored == 1
        assert service.scheduler.scheduled_ids() == [scheduled.id]
        assert service.scheduler.interval(scheduled.id) == timedelta(minutes=45)


class TestLifecycle:
    
    @pytest.mark.asyncio
    async def test_recover_interrupted_syncs(self, service, make_integration, integration_store, locks):
        stuck = make_integration(status=IntegrationStatus.SYNCING)
        running = make_integration(status=IntegrationStatus.SYNCING)
        await locks.try_acquire(running.id)
        
        recovered = await service.recover_interrupted_syncs()
        
        assert recovered == 1
        assert integration_store.items[stuck.id].status == IntegrationStatus.ERROR
        assert integration_store.items[stuck.id].last_sync_error == "sync interrupted before completion"
        assert integration_store.items[running.id].status == IntegrationStatus.SYNCING
    
    @pytest.mark.asyncio
    async def test_start_runs_scheduled_syncs(self, service, make_integration, integration_store, clock):
        integration = make_integration(sync_interval_minutes=5)
        
        await service.start()
        clock.advance(timedelta(minutes=5))
        for _ in range(100):
            if integration_store.items[integration.id].last_synced_at is not None:
                break
            await asyncio.sleep(0.01)
        await service.stop()
        
        stored = integration_store.items[integration.id]
        assert stored.status == IntegrationStatus.CONNECTED
        assert stored.synced_record_count == 10


class TestCreate:
    
    @pytest.mark.asyncio
    async def test_created_integration_starts_disconnected(self, service, integration_store):
        integration = await service.create_integration(
            tenant_id="tenant-1",
            integration_type=IntegrationType.STRIPE,
            name="Billing",
            credentials={"api_key": "sk_live_1"},
            configuration={"auto_sync_interval": "6"},
            configured_by_user_id="user-1",
        )
        
        stored = integration_store.items[integration.id]
        assert stored.status == IntegrationStatus.DISCONNECTED
        assert stored.tenant_id == "tenant-1"
        assert stored.configured_by_user_id == "user-1"
        assert stored.credential("api_key") == "sk_live_1"
    
    @pytest.mark.asyncio
    async def test_unsupported_type_is_rejected(self, service, integration_store):
        with pytest.raises(UnsupportedPlatformError):
            await service.create_integration("tenant-1", IntegrationType.ZENDESK, "Support")
        
        assert integration_store.items == {}
    
    @pytest.mark.asyncio
    async def test_new_integration_connects_and_syncs(self, service, integration_store):
        integration = await integration_store.create(Integration(
            tenant_id="tenant-1",
            integration_type=IntegrationType.STRIPE,
            name="Billing",
            credentials={"api_key": "sk_live_1"},
        ))
        
        with pytest.raises(IntegrationNotConnectedError):
            await service.sync_one(integration.id)
        
        connected, _ = await service.test_connection(integration.id)
        result = await service.sync_one(integration.id)
        
        assert connected is True
        assert result.created == 10
        assert integration_store.items[integration.id].status == IntegrationStatus.CONNECTED


class TestConnection:
    
    @pytest.mark.asyncio
    async def test_successful_test_connects(self, service, make_integration, integration_store):
        integration = make_integration(status=IntegrationStatus.ERROR, last_sync_error="old failure")
        
        connected, message = await service.test_connection(integration.id)
        
        assert connected is True
        assert message == "Connection successful"
        stored = integration_store.items[integration.id]
        assert stored.status == IntegrationStatus.CONNECTED
        assert stored.last_sync_error is None
    
    @pytest.mark.asyncio
    async def test_rejected_credentials_mark_error(self, service, connector, make_integration, integration_store):
        connector.connection_error = AuthenticationError("Stripe rejected the credentials (401)")
        integration = make_integration()
        
        connected, message = await service.test_connection(integration.id)
        
        assert connected is False
        stored = integration_store.items[integration.id]
        assert stored.status == IntegrationStatus.ERROR
        assert stored.last_sync_error == "Connection test failed: Stripe rejected the credentials (401)"
    
    @pytest.mark.asyncio
    async def test_refused_while_syncing(self, service, make_integration, locks):
        integration = make_integration()
        await locks.try_acquire(integration.id)
        
        with pytest.raises(SyncAlreadyInProgressError):
            await service.test_connection(integration.id)
    
    @pytest.mark.asyncio
    async def test_disconnect_drops_credentials_and_schedule(self, service, make_integration, integration_store):
        integration = make_integration()
        await service.schedule_automatic_sync(integration.id, timedelta(hours=1))
        
        await service.disconnect(integration.id)
        
        stored = integration_store.items[integration.id]
        assert stored.status == IntegrationStatus.DISCONNECTED
        assert stored.credentials is None
        assert stored.sync_interval_minutes is None
        assert integration.id not in service.scheduler
    
    @pytest.mark.asyncio
    async def test_delete_removes_schedule_and_record(self, service, make_integration, integration_store):
        integration = make_integration()
        await service.schedule_automatic_sync(integration.id, timedelta(hours=1))
        
        await service.delete_integration(integration.id)
        
        assert integration.id not in integration_store.items
        assert integration.id not in service.scheduler
        with pytest.raises(IntegrationNotFoundError):
            await service.delete_integration(integration.id)
