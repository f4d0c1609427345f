"""Tests for the integration HTTP endpoints."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from retention_sync.api import health, integrations
from retention_sync.api.dependencies import get_current_user
from retention_sync.core.exceptions import (
    IntegrationNotConnectedError,
    SyncAlreadyInProgressError,
    UnsupportedPlatformError,
)
from retention_sync.integrations.base import IntegrationConnectionError
from retention_sync.integrations.registry import ConnectorRegistry
from retention_sync.models import (
    Integration,
    IntegrationSyncOutcome,
    IntegrationType,
    SyncFailure,
    SyncResult,
)

from conftest import FakeConnector

STARTED = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def service():
    service = Mock()
    for name in (
        "create_integration",
        "sync_one",
        "sync_all",
        "test_connection",
        "schedule_automatic_sync",
        "disable_automatic_sync",
        "disconnect",
        "delete_integration",
    ):
        setattr(service, name, AsyncMock())
    return service


@pytest.fixture
def client(service, integration_store):
    app = FastAPI()
    app.include_router(health.router)
    app.include_router(integrations.router, prefix="/api/v1/integrations")
    app.state.sync_service = service
    app.state.integration_store = integration_store
    app.state.registry = ConnectorRegistry([FakeConnector()])
    app.dependency_overrides[get_current_user] = lambda: {"id": "user-1", "organization_id": "tenant-1"}
    return TestClient(app)


class TestReadEndpoints:
    
    def test_list_integrations_hides_credentials(self, client, make_integration):
        make_integration()
        make_integration(tenant_id="tenant-2")
        
        response = client.get("/api/v1/integrations/")
        
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["tenant_id"] == "tenant-1"
        assert "credentials" not in body["items"][0]
        assert "sk_test_123" not in response.text
    
    def test_get_integration_of_other_tenant(self, client, make_integration):
        integration = make_integration(tenant_id="tenant-2")
        
        response = client.get(f"/api/v1/integrations/{integration.id}")
        
        assert response.status_code == 403
    
    def test_get_unknown_integration(self, client):
        response = client.get("/api/v1/integrations/missing")
        
        assert response.status_code == 404
    
    def test_platforms(self, client):
        response = client.get("/api/v1/integrations/platforms")
        
        assert response.status_code == 200
        assert response.json() == [{"integration_type": "stripe", "name": "Stripe", "category": "payment"}]
    
    def test_metrics(self, client):
        response = client.get("/metrics")
        
        assert response.status_code == 200
        assert "sync_runs_total" in response.text


class TestCreateEndpoint:
    
    def test_create_integration(self, client, service):
        service.create_integration.return_value = Integration(
            id="int-new",
            tenant_id="tenant-1",
            integration_type=IntegrationType.STRIPE,
            name="Billing",
            credentials={"api_key": "sk_live_1"},
        )
        
        response = client.post(
            "/api/v1/integrations/",
            json={"integration_type": "stripe", "name": "Billing", "credentials": {"api_key": "sk_live_1"}},
        )
        
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "disconnected"
        assert "sk_live_1" not in response.text
        service.create_integration.assert_awaited_once_with(
            tenant_id="tenant-1",
            integration_type=IntegrationType.STRIPE,
            name="Billing",
            credentials={"api_key": "sk_live_1"},
            configuration={},
            configured_by_user_id="user-1",
        )
    
    def test_create_unsupported_platform(self, client, service):
        service.create_integration.side_effect = UnsupportedPlatformError("zendesk")
        
        response = client.post(
            "/api/v1/integrations/",
            json={"integration_type": "zendesk", "name": "Support"},
        )
        
        assert response.status_code == 400
    
    def test_create_rejects_blank_credentials(self, client, service):
        response = client.post(
            "/api/v1/integrations/",
            json={"integration_type": "stripe", "name": "Billing", "credentials": {"api_key": " "}},
        )
        
        assert response.status_code == 422
        service.create_integration.assert_not_awaited()


class TestSyncEndpoints:
    
    def test_sync_integration(self, client, service, make_integration):
        integration = make_integration()
        service.sync_one.return_value = SyncResult(
            integration_id=integration.id,
            fetched=12,
            created=12,
            started_at=STARTED,
        )
        
        response = client.post(f"/api/v1/integrations/{integration.id}/sync?full_resync=true")
        
        assert response.status_code == 200
        assert response.json()["created"] == 12
        service.sync_one.assert_awaited_once_with(integration.id, full_resync=True)
    
    def test_sync_reports_first_failures_only(self, client, service, make_integration):
        integration = make_integration()
        service.sync_one.return_value = SyncResult(
            integration_id=integration.id,
            fetched=20,
            failed=20,
            success=False,
            failures=[SyncFailure(external_id=str(i), reason="bad record") for i in range(20)],
            started_at=STARTED,
        )
        
        response = client.post(f"/api/v1/integrations/{integration.id}/sync")
        
        assert len(response.json()["failures"]) == 10
    
    @pytest.mark.parametrize("error, status_code", [
        (SyncAlreadyInProgressError("int-1"), 409),
        (IntegrationNotConnectedError("int-1"), 409),
        (UnsupportedPlatformError("zendesk"), 400),
        (IntegrationConnectionError("Stripe is unreachable"), 502),
    ])
    def test_error_mapping(self, client, service, make_integration, error, status_code):
        integration = make_integration()
        service.sync_one.side_effect = error
        
        response = client.post(f"/api/v1/integrations/{integration.id}/sync")
        
        assert response.status_code == status_code
    
    def test_sync_all_is_scoped_to_tenant(self, client, service):
        service.sync_all.return_value = [
            IntegrationSyncOutcome(
                integration_id="int-1",
                result=SyncResult(integration_id="int-1", fetched=1, created=1, started_at=STARTED),
            ),
            IntegrationSyncOutcome(integration_id="int-2", error="sync_already_in_progress"),
        ]
        
        response = client.post("/api/v1/integrations/sync")
        
        assert response.status_code == 200
        body = response.json()
        assert (body["total"], body["succeeded"], body["failed"]) == (2, 1, 1)
        service.sync_all.assert_awaited_once_with(due_only=True, tenant_id="tenant-1", full_resync=False)
    
    def test_connection_test(self, client, service, make_integration):
        integration = make_integration()
        service.test_connection.return_value = (False, "Stripe rejected the credentials (401)")
        
        response = client.post(f"/api/v1/integrations/{integration.id}/test")
        
        assert response.status_code == 200
        assert response.json()["is_connected"] is False


class TestScheduleEndpoints:
    
    def test_enable_schedule(self, client, service, make_integration):
        integration = make_integration()
        next_sync_at = STARTED + timedelta(minutes=30)
        service.schedule_automatic_sync.return_value = next_sync_at
        service.scheduler.interval.return_value = timedelta(minutes=30)
        
        response = client.put(
            f"/api/v1/integrations/{integration.id}/schedule",
            json={"interval_minutes": 30},
        )
        
        assert response.status_code == 200
        assert response.json()["interval_minutes"] == 30
        assert response.json()["enabled"] is True
        service.schedule_automatic_sync.assert_awaited_once_with(integration.id, timedelta(minutes=30))
    
    def test_invalid_interval(self, client, make_integration):
        integration = make_integration()
        
        response = client.put(
            f"/api/v1/integrations/{integration.id}/schedule",
            json={"interval_minutes": 0},
        )
        
        assert response.status_code == 422
    
    def test_disable_schedule(self, client, service, make_integration):
        integration = make_integration()
        
        response = client.delete(f"/api/v1/integrations/{integration.id}/schedule")
        
        assert response.status_code == 200
        assert response.json()["enabled"] is False
        service.disable_automatic_sync.assert_awaited_once_with(integration.id)
    
    def test_delete_integration(self, client, service, make_integration):
        integration = make_integration()
        
        response = client.delete(f"/api/v1/integrations/{integration.id}")
        
        assert response.status_code == 204
        service.delete_integration.assert_awaited_once_with(integration.id)
