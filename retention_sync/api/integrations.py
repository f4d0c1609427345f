"""Integration sync API endpoints."""

from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List
from datetime import datetime, timedelta, timezone
import logging

from retention_sync.core.exceptions import (
    IntegrationNotConnectedError,
    IntegrationNotFoundError,
    SyncAlreadyInProgressError,
    SyncEngineError,
    UnsupportedPlatformError,
)
from retention_sync.integrations.base import IntegrationConnectionError, IntegrationError
from retention_sync.integrations.registry import ConnectorRegistry
from retention_sync.models import Integration
from retention_sync.repositories.base import IntegrationStore
from retention_sync.schemas.integration import (
    ConnectionTestResponse,
    IntegrationCreate,
    IntegrationListResponse,
    IntegrationResponse,
    PlatformResponse,
    ScheduleRequest,
    ScheduleResponse,
    SyncAllResponse,
    SyncOutcomeResponse,
    SyncResultResponse,
)
from retention_sync.services.integration_sync_service import IntegrationSyncService
from retention_sync.api.dependencies import (
    get_connector_registry,
    get_current_user,
    get_integration_store,
    get_sync_service,
    get_tenant_id,
)

logger = logging.getLogger(__name__)
router = APIRouter()

ERROR_STATUS = [
    (IntegrationNotFoundError, status.HTTP_404_NOT_FOUND),
    (UnsupportedPlatformError, status.HTTP_400_BAD_REQUEST),
    (SyncAlreadyInProgressError, status.HTTP_409_CONFLICT),
    (IntegrationNotConnectedError, status.HTTP_409_CONFLICT),
    (IntegrationConnectionError, status.HTTP_502_BAD_GATEWAY),
]


def to_http_error(error: Exception) -> HTTPException:
    """Translate an engine error into a response without leaking internals."""
    for error_class, status_code in ERROR_STATUS:
        if isinstance(error, error_class):
            return HTTPException(status_code=status_code, detail=str(error))
    logger.error(f"Unmapped integration error: {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal error",
    )


async def get_owned_integration(
    integration_id: str,
    tenant_id: str,
    store: IntegrationStore,
) -> Integration:
    integration = await store.get(integration_id)
    if not integration:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Integration not found"
        )
    
    # Check ownership
    if integration.tenant_id != tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this integration"
        )
    return integration


@router.get("/", response_model=IntegrationListResponse)
async def list_integrations(
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    tenant_id: str = Depends(get_tenant_id),
    store: IntegrationStore = Depends(get_integration_store),
):
    """List the tenant's integrations."""
    integrations = await store.list_by_tenant(tenant_id, skip, limit)
    total = await store.count_by_tenant(tenant_id)
    
    return IntegrationListResponse(
        items=[IntegrationResponse.from_integration(i) for i in integrations],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post("/", response_model=IntegrationResponse, status_code=status.HTTP_201_CREATED)
async def create_integration(
    request: IntegrationCreate,
    current_user=Depends(get_current_user),
    tenant_id: str = Depends(get_tenant_id),
    service: IntegrationSyncService = Depends(get_sync_service),
):
    """Configure a new integration. It stays disconnected until a connection test passes."""
    try:
        created = await service.create_integration(
            tenant_id=tenant_id,
            integration_type=request.integration_type,
            name=request.name,
            credentials=request.credentials or None,
            configuration=request.configuration,
            configured_by_user_id=current_user.get("id"),
        )
    except (SyncEngineError, IntegrationError) as e:
        raise to_http_error(e)
    
    return IntegrationResponse.from_integration(created)


@router.get("/platforms", response_model=List[PlatformResponse])
async def list_platforms(
    tenant_id: str = Depends(get_tenant_id),
    registry: ConnectorRegistry = Depends(get_connector_registry),
):
    """List platforms that can be connected."""
    return [
        PlatformResponse(
            integration_type=connector.integration_type,
            name=connector.name,
            category=connector.integration_type.category,
        )
        for connector in registry.get_all_services()
    ]


@router.post("/sync", response_model=SyncAllResponse)
async def sync_all_integrations(
    due_only: bool = Query(True),
    full_resync: bool = Query(False),
    tenant_id: str = Depends(get_tenant_id),
    service: IntegrationSyncService = Depends(get_sync_service),
):
    """Sync the tenant's scheduled integrations now."""
    outcomes = await service.sync_all(due_only=due_only, tenant_id=tenant_id, full_resync=full_resync)
    succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
    
    return SyncAllResponse(
        total=len(outcomes),
        succeeded=succeeded,
        failed=len(outcomes) - succeeded,
        outcomes=[SyncOutcomeResponse.from_outcome(outcome) for outcome in outcomes],
    )


@router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(
    integration_id: str,
    tenant_id: str = Depends(get_tenant_id),
    store: IntegrationStore = Depends(get_integration_store),
):
    """Get integration status."""
    integration = await get_owned_integration(integration_id, tenant_id, store)
    return IntegrationResponse.from_integration(integration)


@router.post("/{integration_id}/sync", response_model=SyncResultResponse)
async def sync_integration(
    integration_id: str,
    full_resync: bool = Query(False),
    tenant_id: str = Depends(get_tenant_id),
    store: IntegrationStore = Depends(get_integration_store),
    service: IntegrationSyncService = Depends(get_sync_service),
):
    """Sync one integration now."""
    await get_owned_integration(integration_id, tenant_id, store)
    
    try:
        result = await service.sync_one(integration_id, full_resync=full_resync)
    except (SyncEngineError, IntegrationError) as e:
        raise to_http_error(e)
    
    return SyncResultResponse.from_result(result)


@router.post("/{integration_id}/test", response_model=ConnectionTestResponse)
async def test_connection(
    integration_id: str,
    tenant_id: str = Depends(get_tenant_id),
    store: IntegrationStore = Depends(get_integration_store),
    service: IntegrationSyncService = Depends(get_sync_service),
):
    """Test integration connection."""
    await get_owned_integration(integration_id, tenant_id, store)
    
    try:
        is_connected, message = await service.test_connection(integration_id)
    except (SyncEngineError, IntegrationError) as e:
        raise to_http_error(e)
    
    return ConnectionTestResponse(
        is_connected=is_connected,
        message=message,
        tested_at=datetime.now(timezone.utc),
    )


@router.put("/{integration_id}/schedule", response_model=ScheduleResponse)
async def enable_schedule(
    integration_id: str,
    request: ScheduleRequest,
    tenant_id: str = Depends(get_tenant_id),
    store: IntegrationStore = Depends(get_integration_store),
    service: IntegrationSyncService = Depends(get_sync_service),
):
    """Enable or replace the automatic sync schedule."""
    await get_owned_integration(integration_id, tenant_id, store)
    interval = timedelta(minutes=request.interval_minutes) if request.interval_minutes else None
    
    try:
        next_sync_at = await service.schedule_automatic_sync(integration_id, interval)
    except (SyncEngineError, IntegrationError) as e:
        raise to_http_error(e)
    
    interval = service.scheduler.interval(integration_id)
    return ScheduleResponse(
        integration_id=integration_id,
        enabled=True,
        interval_minutes=int(interval.total_seconds() // 60) if interval else None,
        next_sync_at=next_sync_at,
    )


@router.delete("/{integration_id}/schedule", response_model=ScheduleResponse)
async def disable_schedule(
    integration_id: str,
    tenant_id: str = Depends(get_tenant_id),
    store: IntegrationStore = Depends(get_integration_store),
    service: IntegrationSyncService = Depends(get_sync_service),
):
    """Disable the automatic sync schedule."""
    await get_owned_integration(integration_id, tenant_id, store)
    await service.disable_automatic_sync(integration_id)
    return ScheduleResponse(integration_id=integration_id, enabled=False)


@router.post("/{integration_id}/disconnect", response_model=IntegrationResponse)
async def disconnect_integration(
    integration_id: str,
    tenant_id: str = Depends(get_tenant_id),
    store: IntegrationStore = Depends(get_integration_store),
    service: IntegrationSyncService = Depends(get_sync_service),
):
    """Disconnect an integration and drop its credentials."""
    await get_owned_integration(integration_id, tenant_id, store)
    
    try:
        integration = await service.disconnect(integration_id)
    except (SyncEngineError, IntegrationError) as e:
        raise to_http_error(e)
    
    return IntegrationResponse.from_integration(integration)


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_integration(
    integration_id: str,
    tenant_id: str = Depends(get_tenant_id),
    store: IntegrationStore = Depends(get_integration_store),
    service: IntegrationSyncService = Depends(get_sync_service),
):
    """Delete an integration."""
    await get_owned_integration(integration_id, tenant_id, store)
    
    try:
        await service.delete_integration(integration_id)
    except (SyncEngineError, IntegrationError) as e:
        raise to_http_error(e)
    
    logger.info(f"Deleted integration {integration_id}")
