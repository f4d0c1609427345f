"""API dependencies."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict, Any
import httpx
import logging

from retention_sync.core.config import get_settings
from retention_sync.integrations.registry import ConnectorRegistry
from retention_sync.repositories.base import IntegrationStore
from retention_sync.services.integration_sync_service import IntegrationSyncService

logger = logging.getLogger(__name__)
settings = get_settings()

# Security
security = HTTPBearer()


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Dict[str, Any]:
    """Get current user from auth service."""
    token = credentials.credentials
    
    try:
        # Verify token with auth service
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{settings.auth_service_url}/api/v1/users/me",
                headers={"Authorization": f"Bearer {token}"}
            )
            
            if response.status_code != 200:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid authentication credentials",
                    headers={"WWW-Authenticate": "Bearer"},
                )
            
            return response.json()
    except httpx.RequestError as e:
        logger.error(f"Auth service request failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable"
        )


def get_tenant_id(current_user: Dict[str, Any] = Depends(get_current_user)) -> str:
    """Tenant of the calling user."""
    tenant_id = current_user.get("organization_id")
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User does not belong to an organization",
        )
    return tenant_id


# Service dependencies, wired once in the application lifespan
def get_sync_service(request: Request) -> IntegrationSyncService:
    return request.app.state.sync_service


def get_integration_store(request: Request) -> IntegrationStore:
    return request.app.state.integration_store


def get_connector_registry(request: Request) -> ConnectorRegistry:
    return request.app.state.registry
