"""Storage interfaces the engine depends on."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from retention_sync.models import CustomerRecord, Integration, IntegrationStatus, MergeOutcome


class IntegrationStore(ABC):
    """Persisted integrations."""
    
    @abstractmethod
    async def get(self, integration_id: str) -> Optional[Integration]:
        pass
    
    @abstractmethod
    async def list_by_tenant(self, tenant_id: str, skip: int = 0, limit: int = 100) -> List[Integration]:
        pass
    
    @abstractmethod
    async def count_by_tenant(self, tenant_id: str) -> int:
        pass
    
    @abstractmethod
    async def list_by_status(self, status: IntegrationStatus) -> List[Integration]:
        pass
    
    @abstractmethod
    async def list_scheduled(self) -> List[Integration]:
        """Integrations with a persisted automatic sync interval."""
        pass
    
    @abstractmethod
    async def create(self, integration: Integration) -> Integration:
        pass
    
    @abstractmethod
    async def update(self, integration_id: str, fields: Dict[str, Any]) -> bool:
        """Set the given top-level fields. Returns False when the id is unknown."""
        pass
    
    @abstractmethod
    async def delete(self, integration_id: str) -> bool:
        pass


class CustomerStore(ABC):
    """Canonical customer data set."""
    
    @abstractmethod
    async def create_or_update(self, record: CustomerRecord) -> MergeOutcome:
        """Upsert a record by ``(tenant_id, source, external_id)``.
        
        Must be atomic on that key; concurrent runs of different
        integrations call this at the same time.
        """
        pass
