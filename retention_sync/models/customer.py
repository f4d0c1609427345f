"""Canonical customer record produced by connectors."""

from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from .integration import IntegrationType, PlatformCategory


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PAST_DUE = "past_due"


class MergeOutcome(str, Enum):
    """Result of one create-or-update against the customer store."""
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class CustomerRecord(BaseModel):
    """A customer as seen by one external platform.
    
    Records are merged into the canonical store keyed by
    ``(tenant_id, source, external_id)``.
    """
    tenant_id: str
    source: IntegrationType
    source_category: PlatformCategory
    external_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    job_title: Optional[str] = None
    subscription_status: Optional[SubscriptionStatus] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    last_modified_at: Optional[datetime] = None
    
    @field_validator("external_id")
    @classmethod
    def external_id_present(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("record has no external id")
        return value
    
    @field_validator("email")
    @classmethod
    def email_normalized(cls, value: str) -> str:
        value = (value or "").strip().lower()
        if "@" not in value:
            raise ValueError(f"invalid email address '{value}'")
        return value
    
    @property
    def merge_key(self) -> Dict[str, str]:
        return {
            "tenant_id": self.tenant_id,
            "source": self.source.value,
            "external_id": self.external_id,
        }
    
    def document_fields(self) -> Dict[str, Any]:
        """Fields written to the store, everything except the merge key."""
        return self.model_dump(
            mode="json",
            exclude={"tenant_id", "source", "external_id"},
        )
