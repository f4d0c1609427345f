"""MongoDB-backed integration store."""

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import logging
import uuid

from retention_sync.core.config import Settings, get_settings
from retention_sync.core.database import Database, COLLECTIONS
from retention_sync.models import Integration, IntegrationStatus
from retention_sync.repositories.base import IntegrationStore
from retention_sync.utils.crypto import encrypt_credentials, decrypt_credentials

logger = logging.getLogger(__name__)


class MongoIntegrationStore(IntegrationStore):
    """Integration documents in MongoDB with credentials encrypted at rest."""
    
    def __init__(self, db: Database, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
    
    @property
    def collection(self):
        return self.db.get_collection(COLLECTIONS["integrations"])
    
    def _encrypt(self, credentials: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        return encrypt_credentials(credentials, self.settings.encryption_key, self.settings.encryption_salt)
    
    def _to_document(self, integration: Integration) -> Dict[str, Any]:
        doc = integration.model_dump(by_alias=True)
        doc["integration_type"] = integration.integration_type.value
        doc["status"] = integration.status.value
        doc["credentials"] = self._encrypt(integration.credentials)
        return doc
    
    def _from_document(self, doc: Dict[str, Any]) -> Integration:
        doc = dict(doc)
        doc["credentials"] = decrypt_credentials(
            doc.get("credentials"),
            self.settings.encryption_key,
            self.settings.encryption_salt,
        )
        return Integration(**doc)
    
    async def get(self, integration_id: str) -> Optional[Integration]:
        doc = await self.collection.find_one({"_id": integration_id})
        return self._from_document(doc) if doc else None
    
    async def _find(self, filters: Dict[str, Any], skip: int = 0, limit: int = 0) -> List[Integration]:
        cursor = self.collection.find(filters).sort("configured_at", -1).skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        
        integrations = []
        async for doc in cursor:
            integrations.append(self._from_document(doc))
        return integrations
    
    async def list_by_tenant(self, tenant_id: str, skip: int = 0, limit: int = 100) -> List[Integration]:
        return await self._find({"tenant_id": tenant_id}, skip, limit)
    
    async def count_by_tenant(self, tenant_id: str) -> int:
        return await self.collection.count_documents({"tenant_id": tenant_id})
    
    async def list_by_status(self, status: IntegrationStatus) -> List[Integration]:
        return await self._find({"status": status.value})
    
    async def list_scheduled(self) -> List[Integration]:
        return await self._find({"sync_interval_minutes": {"$ne": None}})
    
    async def create(self, integration: Integration) -> Integration:
        if not integration.id:
            integration.id = str(uuid.uuid4())
        await self.collection.insert_one(self._to_document(integration))
        logger.info(f"Created integration {integration.id} of type {integration.integration_type.value}")
        return integration
    
    async def update(self, integration_id: str, fields: Dict[str, Any]) -> bool:
        update_data = {
            key: value.value if isinstance(value, IntegrationStatus) else value
            for key, value in fields.items()
        }
        if "credentials" in update_data:
            update_data["credentials"] = self._encrypt(update_data["credentials"])
        update_data["updated_at"] = datetime.now(timezone.utc)
        
        result = await self.collection.update_one(
            {"_id": integration_id},
            {"$set": update_data},
        )
        return result.matched_count > 0
    
    async def delete(self, integration_id: str) -> bool:
        result = await self.collection.delete_one({"_id": integration_id})
        if result.deleted_count > 0:
            logger.info(f"Deleted integration {integration_id}")
            return True
        return False
