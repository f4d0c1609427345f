"""HubSpot CRM connector."""

from typing import Dict, Any, AsyncIterator, Optional
import logging

from retention_sync.integrations.base import BaseConnector, parse_timestamp
from retention_sync.models import (
    CustomerRecord,
    Integration,
    IntegrationType,
    SubscriptionStatus,
    SyncOptions,
)

logger = logging.getLogger(__name__)

CONTACT_PROPERTIES = [
    "email", "firstname", "lastname", "phone", "company", "jobtitle",
    "lifecyclestage", "createdate", "lastmodifieddate", "hs_lead_status",
    "hubspot_owner_id",
]

LIFECYCLE_TO_SUBSCRIPTION = {
    "lead": SubscriptionStatus.TRIAL,
    "marketingqualifiedlead": SubscriptionStatus.TRIAL,
    "salesqualifiedlead": SubscriptionStatus.TRIAL,
    "opportunity": SubscriptionStatus.TRIAL,
    "customer": SubscriptionStatus.ACTIVE,
    "evangelist": SubscriptionStatus.ACTIVE,
}


class HubSpotConnector(BaseConnector):
    """HubSpot CRM connector."""
    
    integration_type = IntegrationType.HUBSPOT
    
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_base_url = self.config["api_base_url"]
    
    async def test_connection(self, integration: Integration) -> bool:
        """Test HubSpot connection."""
        response = await self.make_api_request(
            integration,
            "GET",
            f"{self.api_base_url}/crm/v3/objects/contacts",
            params={"limit": 1},
        )
        return response.status_code == 200
    
    async def fetch_customers(
        self,
        integration: Integration,
        options: SyncOptions,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Page through contacts, using the search API for incremental runs."""
        since = self.changed_since(integration, options)
        limit = min(options.batch_size, 100)
        after: Optional[str] = None
        
        while True:
            if since is not None:
                body: Dict[str, Any] = {
                    "filterGroups": [{
                        "filters": [{
                            "propertyName": "lastmodifieddate",
                            "operator": "GTE",
                            "value": str(int(since.timestamp() * 1000)),
                        }]
                    }],
                    "sorts": [{"propertyName": "lastmodifieddate", "direction": "ASCENDING"}],
                    "properties": CONTACT_PROPERTIES,
                    "limit": limit,
                }
                if after:
                    body["after"] = after
                response = await self.make_api_request(
                    integration,
                    "POST",
                    f"{self.api_base_url}/crm/v3/objects/contacts/search",
                    json=body,
                )
            else:
                params: Dict[str, Any] = {
                    "limit": limit,
                    "properties": ",".join(CONTACT_PROPERTIES),
                }
                if after:
                    params["after"] = after
                response = await self.make_api_request(
                    integration,
                    "GET",
                    f"{self.api_base_url}/crm/v3/objects/contacts",
                    params=params,
                )
            
            data = response.json()
            for contact in data.get("results", []):
                yield contact
            
            after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break
    
    def map_customer(self, integration: Integration, raw: Dict[str, Any]) -> CustomerRecord:
        props = raw.get("properties") or {}
        lifecycle_stage = (props.get("lifecyclestage") or "").lower() or None
        
        return CustomerRecord(
            tenant_id=integration.tenant_id,
            source=self.integration_type,
            source_category=self.integration_type.category,
            external_id=str(raw.get("id") or ""),
            email=props.get("email") or "",
            first_name=props.get("firstname"),
            last_name=props.get("lastname"),
            phone=props.get("phone"),
            company_name=props.get("company"),
            job_title=props.get("jobtitle"),
            subscription_status=LIFECYCLE_TO_SUBSCRIPTION.get(lifecycle_stage, SubscriptionStatus.TRIAL),
            attributes={
                "lifecycle_stage": lifecycle_stage,
                "lead_status": props.get("hs_lead_status"),
                "owner_id": props.get("hubspot_owner_id"),
            },
            last_modified_at=parse_timestamp(props.get("lastmodifieddate")),
        )
