"""Platform connectors."""

from .base import (
    BaseConnector,
    IntegrationError,
    IntegrationConnectionError,
    AuthenticationError,
    RateLimitError,
)
from .registry import ConnectorRegistry, build_default_registry
from .hubspot import HubSpotConnector
from .salesforce import SalesforceConnector
from .stripe import StripeConnector
from .mailchimp import MailchimpConnector

__all__ = [
    "BaseConnector",
    "IntegrationError",
    "IntegrationConnectionError",
    "AuthenticationError",
    "RateLimitError",
    "ConnectorRegistry",
    "build_default_registry",
    "HubSpotConnector",
    "SalesforceConnector",
    "StripeConnector",
    "MailchimpConnector",
]
