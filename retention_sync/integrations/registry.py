"""Connector registry: resolves a connector by platform type."""

from typing import Dict, List, Optional
import logging

from retention_sync.core.config import Settings, get_settings
from retention_sync.core.exceptions import UnsupportedPlatformError
from retention_sync.integrations.base import BaseConnector
from retention_sync.integrations.hubspot import HubSpotConnector
from retention_sync.integrations.mailchimp import MailchimpConnector
from retention_sync.integrations.salesforce import SalesforceConnector
from retention_sync.integrations.stripe import StripeConnector
from retention_sync.models import IntegrationType
from retention_sync.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """Registry of connector instances, one per platform type.
    
    Filled once at startup and read-only afterwards.
    """
    
    def __init__(self, connectors: Optional[List[BaseConnector]] = None):
        self._connectors: Dict[IntegrationType, BaseConnector] = {}
        for connector in connectors or []:
            self.register(connector)
    
    def register(self, connector: BaseConnector) -> None:
        integration_type = connector.integration_type
        if integration_type in self._connectors:
            raise ValueError(f"A connector for {integration_type.value} is already registered")
        self._connectors[integration_type] = connector
    
    def get_service(self, integration_type: IntegrationType) -> BaseConnector:
        """Get the connector for a platform type."""
        connector = self._connectors.get(integration_type)
        if connector is None:
            raise UnsupportedPlatformError(getattr(integration_type, "value", str(integration_type)))
        return connector
    
    def get_all_services(self) -> List[BaseConnector]:
        return list(self._connectors.values())
    
    def supported_types(self) -> List[IntegrationType]:
        return list(self._connectors.keys())
    
    async def aclose(self) -> None:
        limiters = []
        for connector in self._connectors.values():
            await connector.aclose()
            if connector.rate_limiter is not None and connector.rate_limiter not in limiters:
                limiters.append(connector.rate_limiter)
        for limiter in limiters:
            await limiter.close()


def build_default_registry(settings: Optional[Settings] = None) -> ConnectorRegistry:
    """Wire every shipped connector."""
    settings = settings or get_settings()
    rate_limiter = None
    if settings.rate_limit_enabled:
        rate_limiter = RateLimiter(redis_url=settings.redis_url, prefix="connector_rate_limit")
    
    registry = ConnectorRegistry([
        connector_class(settings=settings, rate_limiter=rate_limiter)
        for connector_class in (
            HubSpotConnector,
            SalesforceConnector,
            StripeConnector,
            MailchimpConnector,
        )
    ])
    logger.info(f"Registered connectors: {[t.value for t in registry.supported_types()]}")
    return registry
