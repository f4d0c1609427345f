"""Integration API schemas."""

from datetime import datetime
from typing import Optional, Dict, List
from pydantic import BaseModel, Field, field_validator

from retention_sync.models import (
    Integration,
    IntegrationStatus,
    IntegrationSyncOutcome,
    IntegrationType,
    PlatformCategory,
    SyncResult,
)

MAX_REPORTED_FAILURES = 10


class IntegrationCreate(BaseModel):
    """Schema for configuring a new platform connection."""
    integration_type: IntegrationType
    name: str = Field(..., min_length=1)
    credentials: Dict[str, str] = Field(default_factory=dict)
    configuration: Dict[str, str] = Field(default_factory=dict)
    
    @field_validator("credentials")
    @classmethod
    def credentials_not_blank(cls, value: Dict[str, str]) -> Dict[str, str]:
        for name, secret in value.items():
            if not secret.strip():
                raise ValueError(f"credential '{name}' must not be empty")
        return value


class IntegrationResponse(BaseModel):
    """Integration response schema. Credentials are never included."""
    id: str
    tenant_id: str
    integration_type: IntegrationType
    name: str
    status: IntegrationStatus
    configuration: Dict[str, str]
    last_synced_at: Optional[datetime] = None
    synced_record_count: int
    last_sync_error: Optional[str] = None
    sync_interval_minutes: Optional[int] = None
    configured_at: datetime
    updated_at: datetime
    
    @classmethod
    def from_integration(cls, integration: Integration) -> "IntegrationResponse":
        return cls(**integration.model_dump(exclude={"credentials"}))


class IntegrationListResponse(BaseModel):
    """List of integrations response."""
    items: List[IntegrationResponse]
    total: int
    skip: int
    limit: int


class PlatformResponse(BaseModel):
    integration_type: IntegrationType
    name: str
    category: PlatformCategory


class ConnectionTestResponse(BaseModel):
    """Connection test response."""
    is_connected: bool
    message: str
    tested_at: datetime


class SyncFailureResponse(BaseModel):
    external_id: Optional[str] = None
    reason: str


class SyncResultResponse(BaseModel):
    """Counts of one run plus its first few failures."""
    integration_id: str
    fetched: int
    created: int
    updated: int
    skipped: int
    failed: int
    success: bool
    timed_out: bool
    started_at: datetime
    duration_seconds: float
    failures: List[SyncFailureResponse] = Field(default_factory=list)
    
    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        data = result.model_dump(exclude={"failures"})
        failures = [
            SyncFailureResponse(external_id=f.external_id, reason=f.reason)
            for f in result.failures[:MAX_REPORTED_FAILURES]
        ]
        return cls(**data, failures=failures)


class SyncOutcomeResponse(BaseModel):
    integration_id: str
    succeeded: bool
    result: Optional[SyncResultResponse] = None
    error: Optional[str] = None
    error_message: Optional[str] = None
    
    @classmethod
    def from_outcome(cls, outcome: IntegrationSyncOutcome) -> "SyncOutcomeResponse":
        return cls(
            integration_id=outcome.integration_id,
            succeeded=outcome.succeeded,
            result=SyncResultResponse.from_result(outcome.result) if outcome.result else None,
            error=outcome.error,
            error_message=outcome.error_message,
        )


class SyncAllResponse(BaseModel):
    """Fan-out sync response."""
    total: int
    succeeded: int
    failed: int
    outcomes: List[SyncOutcomeResponse]


class ScheduleRequest(BaseModel):
    """Automatic sync schedule. Without an interval the integration's default applies."""
    interval_minutes: Optional[int] = Field(default=None, ge=1)


class ScheduleResponse(BaseModel):
    integration_id: str
    enabled: bool
    interval_minutes: Optional[int] = None
    next_sync_at: Optional[datetime] = None
