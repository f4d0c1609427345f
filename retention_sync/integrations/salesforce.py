"""Salesforce CRM connector."""

from typing import Dict, Any, AsyncIterator, Optional
from datetime import datetime, timezone
import logging

from retention_sync.integrations.base import BaseConnector, parse_timestamp
from retention_sync.models import (
    CustomerRecord,
    Integration,
    IntegrationType,
    SyncOptions,
)

logger = logging.getLogger(__name__)

CONTACT_FIELDS = [
    "Id", "FirstName", "LastName", "Email", "Phone", "Title",
    "Account.Name", "LeadSource", "LastModifiedDate",
]


class SalesforceConnector(BaseConnector):
    """Salesforce CRM connector.
    
    Needs ``instance_url`` in the configuration and an ``access_token``
    credential.
    """
    
    integration_type = IntegrationType.SALESFORCE
    
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_version = self.config["api_version"]
    
    def _api_base(self, integration: Integration) -> str:
        instance_url = self.require_setting(integration, "instance_url").rstrip("/")
        return f"{instance_url}/services/data/{self.api_version}"
    
    async def test_connection(self, integration: Integration) -> bool:
        """Test Salesforce connection."""
        response = await self.make_api_request(
            integration,
            "GET",
            f"{self._api_base(integration)}/limits",
        )
        return response.status_code == 200
    
    def build_contact_query(self, since: Optional[datetime]) -> str:
        query = f"SELECT {', '.join(CONTACT_FIELDS)} FROM Contact"
        if since is not None:
            query += f" WHERE LastModifiedDate >= {since.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')}"
        return query + " ORDER BY LastModifiedDate"
    
    async def _query_salesforce(
        self,
        integration: Integration,
        query: str,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Run a SOQL query and follow ``nextRecordsUrl`` until done."""
        instance_url = self.require_setting(integration, "instance_url").rstrip("/")
        response = await self.make_api_request(
            integration,
            "GET",
            f"{self._api_base(integration)}/query",
            params={"q": query},
        )
        
        while True:
            data = response.json()
            for record in data.get("records", []):
                yield record
            
            next_url = data.get("nextRecordsUrl")
            if data.get("done", True) or not next_url:
                break
            response = await self.make_api_request(
                integration,
                "GET",
                f"{instance_url}{next_url}",
            )
    
    async def fetch_customers(
        self,
        integration: Integration,
        options: SyncOptions,
    ) -> AsyncIterator[Dict[str, Any]]:
        query = self.build_contact_query(self.changed_since(integration, options))
        async for record in self._query_salesforce(integration, query):
            yield record
    
    def external_id_of(self, raw: Dict[str, Any]) -> Optional[str]:
        if isinstance(raw, dict) and raw.get("Id"):
            return str(raw["Id"])
        return None
    
    def map_customer(self, integration: Integration, raw: Dict[str, Any]) -> CustomerRecord:
        account = raw.get("Account") or {}
        
        return CustomerRecord(
            tenant_id=integration.tenant_id,
            source=self.integration_type,
            source_category=self.integration_type.category,
            external_id=str(raw.get("Id") or ""),
            email=raw.get("Email") or "",
            first_name=raw.get("FirstName"),
            last_name=raw.get("LastName"),
            phone=raw.get("Phone"),
            company_name=account.get("Name"),
            job_title=raw.get("Title"),
            attributes={"lead_source": raw.get("LeadSource")},
            last_modified_at=parse_timestamp(raw.get("LastModifiedDate")),
        )
