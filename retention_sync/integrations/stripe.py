"""Stripe payments connector."""

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


class StripeConnector(BaseConnector):
    """Stripe payments connector. Authenticates with the ``api_key`` secret key."""
    
    integration_type = IntegrationType.STRIPE
    
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_base_url = self.config["api_base_url"]
    
    def auth_headers(self, integration: Integration) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.require_credential(integration, 'api_key')}"}
    
    async def test_connection(self, integration: Integration) -> bool:
        """Test Stripe connection."""
        response = await self.make_api_request(
            integration,
            "GET",
            f"{self.api_base_url}/v1/customers",
            params={"limit": 1},
        )
        return response.status_code == 200
    
    async def fetch_customers(
        self,
        integration: Integration,
        options: SyncOptions,
    ) -> AsyncIterator[Dict[str, Any]]:
        """List customers with cursor pagination.
        
        Stripe only filters customers by creation time, so an incremental
        run picks up customers created since the cutoff.
        """
        since = self.changed_since(integration, options)
        starting_after: Optional[str] = None
        
        while True:
            params: Dict[str, Any] = {"limit": min(options.batch_size, 100)}
            if since is not None:
                params["created[gte]"] = int(since.timestamp())
            if starting_after:
                params["starting_after"] = starting_after
            
            response = await self.make_api_request(
                integration,
                "GET",
                f"{self.api_base_url}/v1/customers",
                params=params,
            )
            data = response.json()
            customers = data.get("data", [])
            for customer in customers:
                yield customer
            
            if not data.get("has_more") or not customers:
                break
            starting_after = customers[-1].get("id")
            if not starting_after:
                break
    
    def map_customer(self, integration: Integration, raw: Dict[str, Any]) -> CustomerRecord:
        first_name, _, last_name = (raw.get("name") or "").strip().partition(" ")
        delinquent = bool(raw.get("delinquent"))
        
        return CustomerRecord(
            tenant_id=integration.tenant_id,
            source=self.integration_type,
            source_category=self.integration_type.category,
            external_id=str(raw.get("id") or ""),
            email=raw.get("email") or "",
            first_name=first_name or None,
            last_name=last_name or None,
            phone=raw.get("phone"),
            subscription_status=SubscriptionStatus.PAST_DUE if delinquent else SubscriptionStatus.ACTIVE,
            attributes={
                "delinquent": delinquent,
                "balance": raw.get("balance", 0),
                "currency": raw.get("currency"),
                "description": raw.get("description"),
            },
            last_modified_at=parse_timestamp(raw.get("created")),
        )
