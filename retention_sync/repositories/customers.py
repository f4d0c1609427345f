"""MongoDB-backed canonical customer store."""

from datetime import datetime, timezone
import logging

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from retention_sync.core.database import Database, COLLECTIONS
from retention_sync.models import CustomerRecord, MergeOutcome
from retention_sync.repositories.base import CustomerStore

logger = logging.getLogger(__name__)


class MongoCustomerStore(CustomerStore):
    """One document per ``(tenant_id, source, external_id)``."""
    
    def __init__(self, db: Database):
        self.db = db
    
    @property
    def collection(self):
        return self.db.get_collection(COLLECTIONS["customers"])
    
    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("tenant_id", ASCENDING), ("source", ASCENDING), ("external_id", ASCENDING)],
            unique=True,
            name="customer_source_key",
        )
        await self.collection.create_index([("tenant_id", ASCENDING), ("email", ASCENDING)])
    
    async def create_or_update(self, record: CustomerRecord) -> MergeOutcome:
        key = record.merge_key
        fields = record.document_fields()
        
        existing = await self.collection.find_one(key, projection={name: 1 for name in fields})
        if existing is not None and all(existing.get(name) == value for name, value in fields.items()):
            return MergeOutcome.UNCHANGED
        
        now = datetime.now(timezone.utc)
        update = {
            "$set": {**fields, "synced_at": now},
            "$setOnInsert": {"created_at": now},
        }
        try:
            before = await self.collection.find_one_and_update(
                key,
                update,
                upsert=True,
                return_document=ReturnDocument.BEFORE,
            )
        except DuplicateKeyError:
            # A concurrent upsert inserted the key first
            await self.collection.update_one(key, {"$set": update["$set"]})
            return MergeOutcome.UPDATED
        
        return MergeOutcome.CREATED if before is None else MergeOutcome.UPDATED
