"""Shared fixtures: in-memory stores, a scripted connector and a manual clock."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from retention_sync.core.config import Settings
from retention_sync.integrations.base import BaseConnector
from retention_sync.integrations.registry import ConnectorRegistry
from retention_sync.models import (
    CustomerRecord,
    Integration,
    IntegrationStatus,
    IntegrationType,
    MergeOutcome,
)
from retention_sync.models.integration import utcnow
from retention_sync.repositories.base import CustomerStore, IntegrationStore
from retention_sync.services import SyncLockManager, SyncService


class ManualClock:
    """Clock that only moves when told to."""
    
    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    
    def now(self) -> datetime:
        return self.current
    
    def advance(self, delta: timedelta) -> None:
        self.current += delta


class InMemoryIntegrationStore(IntegrationStore):
    """Integration store that re-validates every write."""
    
    def __init__(self):
        self.items: Dict[str, Integration] = {}
        self.writes: List[tuple] = []
    
    async def get(self, integration_id):
        item = self.items.get(integration_id)
        return item.model_copy(deep=True) if item else None
    
    async def list_by_tenant(self, tenant_id, skip=0, limit=100):
        matches = [i.model_copy(deep=True) for i in self.items.values() if i.tenant_id == tenant_id]
        matches = matches[skip:]
        return matches[:limit] if limit else matches
    
    async def count_by_tenant(self, tenant_id):
        return sum(1 for i in self.items.values() if i.tenant_id == tenant_id)
    
    async def list_by_status(self, status):
        return [i.model_copy(deep=True) for i in self.items.values() if i.status == status]
    
    async def list_scheduled(self):
        return [i.model_copy(deep=True) for i in self.items.values() if i.sync_interval_minutes is not None]
    
    async def create(self, integration):
        if not integration.id:
            integration.id = str(uuid.uuid4())
        self.items[integration.id] = integration.model_copy(deep=True)
        return integration
    
    async def update(self, integration_id, fields):
        self.writes.append((integration_id, dict(fields)))
        current = self.items.get(integration_id)
        if current is None:
            return False
        data = current.model_dump(by_alias=True)
        data.update(fields)
        data["updated_at"] = utcnow()
        self.items[integration_id] = Integration(**data)
        return True
    
    async def delete(self, integration_id):
        return self.items.pop(integration_id, None) is not None


class InMemoryCustomerStore(CustomerStore):
    """Customer store keyed like the MongoDB one; ids in ``fail_on`` raise."""
    
    def __init__(self):
        self.records: Dict[tuple, Dict[str, Any]] = {}
        self.fail_on = set()
    
    async def create_or_update(self, record: CustomerRecord) -> MergeOutcome:
        if record.external_id in self.fail_on:
            raise RuntimeError("write rejected")
        key = (record.tenant_id, record.source.value, record.external_id)
        fields = record.document_fields()
        existing = self.records.get(key)
        if existing == fields:
            return MergeOutcome.UNCHANGED
        self.records[key] = fields
        return MergeOutcome.CREATED if existing is None else MergeOutcome.UPDATED


class FakeConnector(BaseConnector):
    """Connector serving a scripted list of raw records.
    
    Raw records are ``{"id", "email"}`` dicts; ``"malformed": True`` makes
    mapping fail. ``error`` is raised once ``fail_after`` records were
    yielded, ``gate`` holds the fetch until set.
    """
    
    integration_type = IntegrationType.STRIPE
    
    def __init__(self, records=None, integration_type: Optional[IntegrationType] = None):
        if integration_type is not None:
            self.integration_type = integration_type
        http_client = AsyncMock()
        super().__init__(settings=Settings(rate_limit_enabled=False), http_client=http_client)
        self.records = list(records or [])
        self.error: Optional[Exception] = None
        self.fail_after = 0
        self.delay = 0.0
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()
        self.seen_since: List[Optional[datetime]] = []
        self.connection_ok = True
        self.connection_error: Optional[Exception] = None
    
    async def test_connection(self, integration):
        if self.connection_error is not None:
            raise self.connection_error
        return self.connection_ok
    
    async def fetch_customers(self, integration, options):
        self.seen_since.append(self.changed_since(integration, options))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        for index, raw in enumerate(self.records):
            if self.error is not None and index == self.fail_after:
                raise self.error
            if self.delay:
                await asyncio.sleep(self.delay)
            yield raw
        if self.error is not None and self.fail_after >= len(self.records):
            raise self.error
    
    def map_customer(self, integration, raw):
        if raw.get("malformed"):
            raise ValueError(f"customer {raw['id']} has no email")
        return CustomerRecord(
            tenant_id=integration.tenant_id,
            source=self.integration_type,
            source_category=self.integration_type.category,
            external_id=raw["id"],
            email=raw["email"],
            first_name=raw.get("name"),
        )


def make_customers(count: int, malformed=(), name: Optional[str] = None) -> List[Dict[str, Any]]:
    customers = []
    for i in range(1, count + 1):
        raw = {"id": f"cus_{i}", "email": f"customer{i}@example.com"}
        if name:
            raw["name"] = name
        if i in malformed:
            raw["malformed"] = True
        customers.append(raw)
    return customers


@pytest.fixture
def settings():
    return Settings(
        rate_limit_enabled=False,
        sync_timeout_seconds=5.0,
        sync_workers=2,
        sync_queue_size=10,
        scheduler_tick_seconds=0.01,
        shutdown_grace_seconds=1.0,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def integration_store():
    return InMemoryIntegrationStore()


@pytest.fixture
def customer_store():
    return InMemoryCustomerStore()


@pytest.fixture
def connector():
    return FakeConnector(make_customers(10))


@pytest.fixture
def registry(connector):
    return ConnectorRegistry([connector])


@pytest.fixture
def locks():
    return SyncLockManager()


@pytest.fixture
def sync_service(integration_store, customer_store, registry, locks, settings, clock):
    return SyncService(
        integration_store,
        customer_store,
        registry,
        locks=locks,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def make_integration(integration_store):
    """Store a connected integration and return it."""
    counter = {"n": 0}
    
    def factory(
        integration_type: IntegrationType = IntegrationType.STRIPE,
        tenant_id: str = "tenant-1",
        status: IntegrationStatus = IntegrationStatus.CONNECTED,
        **fields,
    ) -> Integration:
        counter["n"] += 1
        integration = Integration(
            id=f"int-{counter['n']}",
            tenant_id=tenant_id,
            integration_type=integration_type,
            name=f"{integration_type.value} account",
            status=status,
            credentials=fields.pop("credentials", {"api_key": "sk_test_123"}),
            **fields,
        )
        integration_store.items[integration.id] = integration.model_copy(deep=True)
        return integration
    
    return factory
