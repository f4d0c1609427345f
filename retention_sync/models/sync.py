"""Per-run sync options and results."""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from .customer import CustomerRecord


class SyncOptions(BaseModel):
    """Configuration for a single sync run. Built fresh per run, never persisted."""
    full_resync: bool = False
    max_records: Optional[int] = Field(default=None, gt=0)
    timeout_seconds: float = Field(default=300.0, gt=0)
    batch_size: int = Field(default=100, gt=0)
    # Changed-since cutoff for incremental runs; falls back to last_successful_sync_at
    sync_from: Optional[datetime] = None
    
    class Config:
        frozen = True
    
    @property
    def incremental(self) -> bool:
        return not self.full_resync


class SyncFailure(BaseModel):
    """One failure inside a run.
    
    ``external_id`` is None for run-level failures (timeout, connector
    fault); those are not counted in :attr:`SyncResult.failed`.
    """
    external_id: Optional[str] = None
    reason: str
    
    class Config:
        frozen = True


class SyncResult(BaseModel):
    """Outcome of one sync run.
    
    Once merged, ``created + updated + skipped + failed == fetched``.
    """
    integration_id: str
    fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[SyncFailure] = Field(default_factory=list)
    success: bool = True
    timed_out: bool = False
    started_at: datetime
    duration_seconds: float = 0.0
    # Mapped records handed from the connector to the merge step
    records: List[CustomerRecord] = Field(default_factory=list, exclude=True, repr=False)
    
    class Config:
        frozen = True
    
    @property
    def record_failures(self) -> List[SyncFailure]:
        return [f for f in self.failures if f.external_id is not None]
    
    def error_summary(self) -> Optional[str]:
        """Text stored as the integration's last error, None on success."""
        if self.success:
            return None
        if 0 < self.failed < self.fetched:
            return f"partial failure: {self.failed} of {self.fetched} records failed"
        if self.failures:
            return self.failures[0].reason
        return "sync failed"


class IntegrationSyncOutcome(BaseModel):
    """One entry of a fan-out sync: either a result or the error kind."""
    integration_id: str
    result: Optional[SyncResult] = None
    error: Optional[str] = None
    error_message: Optional[str] = None
    
    @property
    def succeeded(self) -> bool:
        return self.result is not None and self.result.success
