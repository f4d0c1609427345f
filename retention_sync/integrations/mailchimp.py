"""Mailchimp marketing connector."""

from typing import Dict, Any, AsyncIterator
import base64
import logging

from retention_sync.integrations.base import BaseConnector, AuthenticationError, parse_timestamp
from retention_sync.models import (
    CustomerRecord,
    Integration,
    IntegrationType,
    SubscriptionStatus,
    SyncOptions,
)

logger = logging.getLogger(__name__)

MEMBER_STATUS_TO_SUBSCRIPTION = {
    "subscribed": SubscriptionStatus.ACTIVE,
    "pending": SubscriptionStatus.TRIAL,
    "transactional": SubscriptionStatus.ACTIVE,
    "unsubscribed": SubscriptionStatus.CANCELLED,
    "cleaned": SubscriptionStatus.EXPIRED,
    "archived": SubscriptionStatus.EXPIRED,
}


class MailchimpConnector(BaseConnector):
    """Mailchimp audience connector.
    
    Needs an ``api_key`` credential (``<key>-<dc>``) and a ``list_id``
    configuration entry naming the audience to sync.
    """
    
    integration_type = IntegrationType.MAILCHIMP
    
    def _api_base(self, integration: Integration) -> str:
        api_key = self.require_credential(integration, "api_key")
        _, _, data_center = api_key.rpartition("-")
        if not data_center or data_center == api_key:
            raise AuthenticationError("Mailchimp api_key has no data-center suffix")
        return self.config["api_base_url"].format(dc=data_center)
    
    def auth_headers(self, integration: Integration) -> Dict[str, str]:
        api_key = self.require_credential(integration, "api_key")
        token = base64.b64encode(f"anystring:{api_key}".encode()).decode()
        return {"Authorization": f"Basic {token}"}
    
    async def test_connection(self, integration: Integration) -> bool:
        """Test Mailchimp connection."""
        response = await self.make_api_request(
            integration,
            "GET",
            f"{self._api_base(integration)}/ping",
        )
        return response.status_code == 200
    
    async def fetch_customers(
        self,
        integration: Integration,
        options: SyncOptions,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Page through audience members with offset pagination."""
        list_id = self.require_setting(integration, "list_id")
        url = f"{self._api_base(integration)}/lists/{list_id}/members"
        since = self.changed_since(integration, options)
        count = min(options.batch_size, 1000)
        offset = 0
        
        while True:
            params: Dict[str, Any] = {"count": count, "offset": offset}
            if since is not None:
                params["since_last_changed"] = since.isoformat()
            
            response = await self.make_api_request(integration, "GET", url, params=params)
            data = response.json()
            members = data.get("members", [])
            for member in members:
                yield member
            
            offset += len(members)
            if not members or offset >= data.get("total_items", 0):
                break
    
    def map_customer(self, integration: Integration, raw: Dict[str, Any]) -> CustomerRecord:
        merge_fields = raw.get("merge_fields") or {}
        stats = raw.get("stats") or {}
        status = raw.get("status")
        
        return CustomerRecord(
            tenant_id=integration.tenant_id,
            source=self.integration_type,
            source_category=self.integration_type.category,
            external_id=str(raw.get("id") or ""),
            email=raw.get("email_address") or "",
            first_name=merge_fields.get("FNAME") or None,
            last_name=merge_fields.get("LNAME") or None,
            phone=merge_fields.get("PHONE") or None,
            subscription_status=MEMBER_STATUS_TO_SUBSCRIPTION.get(status),
            attributes={
                "marketing_status": status,
                "avg_open_rate": stats.get("avg_open_rate", 0.0),
                "avg_click_rate": stats.get("avg_click_rate", 0.0),
                "tags": [tag.get("name") for tag in raw.get("tags", []) if isinstance(tag, dict)],
            },
            last_modified_at=parse_timestamp(raw.get("last_changed")),
        )
