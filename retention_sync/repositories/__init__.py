"""Persistence for integrations and canonical customers."""

from .base import IntegrationStore, CustomerStore
from .integrations import MongoIntegrationStore
from .customers import MongoCustomerStore

__all__ = [
    "IntegrationStore",
    "CustomerStore",
    "MongoIntegrationStore",
    "MongoCustomerStore",
]
