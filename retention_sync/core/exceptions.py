"""Errors raised by the sync engine itself.

Connector-level failures live in :mod:`retention_sync.integrations.base`.
"""

from typing import Optional


class SyncEngineError(Exception):
    """Base class for engine errors tied to one integration."""
    
    def __init__(self, message: str, integration_id: Optional[str] = None):
        super().__init__(message)
        self.integration_id = integration_id


class IntegrationNotFoundError(SyncEngineError):
    """The integration identity is unknown."""
    
    def __init__(self, integration_id: str):
        super().__init__(f"Integration {integration_id} not found", integration_id)


class UnsupportedPlatformError(SyncEngineError):
    """No connector is registered for the platform type."""
    
    def __init__(self, integration_type: str, integration_id: Optional[str] = None):
        super().__init__(f"Integration type {integration_type} is not supported", integration_id)
        self.integration_type = integration_type


class SyncAlreadyInProgressError(SyncEngineError):
    """Another run holds the lock for this integration."""
    
    def __init__(self, integration_id: str):
        super().__init__(f"Sync already in progress for integration {integration_id}", integration_id)


class IntegrationNotConnectedError(SyncEngineError):
    """The integration has been disconnected and holds no credentials."""
    
    def __init__(self, integration_id: str):
        super().__init__(f"Integration {integration_id} is not connected", integration_id)
