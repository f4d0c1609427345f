"""Integration models."""

from datetime import datetime, timezone
from typing import Optional, Dict
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlatformCategory(str, Enum):
    """What kind of customer data a platform contributes."""
    CRM = "crm"
    PAYMENT = "payment"
    MARKETING = "marketing"
    ANALYTICS = "analytics"
    SUPPORT = "support"


class IntegrationType(str, Enum):
    """External platforms a tenant can connect."""
    SALESFORCE = "salesforce"
    HUBSPOT = "hubspot"
    PIPEDRIVE = "pipedrive"
    ZOHO_CRM = "zoho_crm"
    STRIPE = "stripe"
    MAILCHIMP = "mailchimp"
    GOOGLE_ANALYTICS = "google_analytics"
    INTERCOM = "intercom"
    ZENDESK = "zendesk"
    
    @property
    def category(self) -> PlatformCategory:
        return _CATEGORIES[self]


_CATEGORIES = {
    IntegrationType.SALESFORCE: PlatformCategory.CRM,
    IntegrationType.HUBSPOT: PlatformCategory.CRM,
    IntegrationType.PIPEDRIVE: PlatformCategory.CRM,
    IntegrationType.ZOHO_CRM: PlatformCategory.CRM,
    IntegrationType.STRIPE: PlatformCategory.PAYMENT,
    IntegrationType.MAILCHIMP: PlatformCategory.MARKETING,
    IntegrationType.GOOGLE_ANALYTICS: PlatformCategory.ANALYTICS,
    IntegrationType.INTERCOM: PlatformCategory.SUPPORT,
    IntegrationType.ZENDESK: PlatformCategory.SUPPORT,
}


class IntegrationStatus(str, Enum):
    """Integration connection status."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    SYNCING = "syncing"
    ERROR = "error"


class Integration(BaseModel):
    """One connected account of one external platform for one tenant.
    
    ``configuration`` and ``credentials`` are opaque to the engine; their
    schema belongs to the connector for ``integration_type``. Credentials
    are held decrypted in memory only and never appear in ``repr``.
    """
    id: Optional[str] = Field(default=None, alias="_id")
    tenant_id: str
    configured_by_user_id: Optional[str] = None
    integration_type: IntegrationType
    name: str
    status: IntegrationStatus = IntegrationStatus.DISCONNECTED
    
    configuration: Dict[str, str] = Field(default_factory=dict)
    credentials: Optional[Dict[str, str]] = Field(default=None, repr=False)
    
    # Sync bookkeeping
    last_synced_at: Optional[datetime] = None
    # Cutoff for incremental fetches; only advanced by a fully successful run
    last_successful_sync_at: Optional[datetime] = None
    synced_record_count: int = 0
    last_sync_error: Optional[str] = None
    sync_interval_minutes: Optional[int] = None
    
    configured_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    
    class Config:
        populate_by_name = True
    
    @field_validator("credentials")
    @classmethod
    def credentials_not_blank(cls, value: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if value is None:
            return None
        for name, secret in value.items():
            if not isinstance(secret, str) or not secret.strip():
                raise ValueError(f"credential '{name}' must not be empty")
        return value
    
    @field_validator("sync_interval_minutes")
    @classmethod
    def interval_positive(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("sync_interval_minutes must be positive")
        return value
    
    @model_validator(mode="after")
    def status_matches_error(self) -> "Integration":
        if self.status == IntegrationStatus.ERROR and not self.last_sync_error:
            raise ValueError("an integration in error status needs last_sync_error")
        if self.status != IntegrationStatus.ERROR and self.last_sync_error is not None:
            raise ValueError("last_sync_error is only allowed in error status")
        return self
    
    def credential(self, name: str) -> Optional[str]:
        """Get one credential value, or None."""
        return (self.credentials or {}).get(name)
    
    # Status transitions. Each keeps status and last_sync_error consistent.
    
    def mark_syncing(self) -> None:
        self.status = IntegrationStatus.SYNCING
        self.last_sync_error = None
        self.updated_at = utcnow()
    
    def mark_connected(self) -> None:
        self.status = IntegrationStatus.CONNECTED
        self.last_sync_error = None
        self.updated_at = utcnow()
    
    def mark_error(self, message: str) -> None:
        self.status = IntegrationStatus.ERROR
        self.last_sync_error = message or "unknown error"
        self.updated_at = utcnow()
    
    def mark_disconnected(self) -> None:
        self.status = IntegrationStatus.DISCONNECTED
        self.last_sync_error = None
        self.credentials = None
        self.updated_at = utcnow()
