"""Interval scheduling of automatic syncs."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol
import logging

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""
    
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class ScheduleEntry:
    integration_id: str
    interval: timedelta
    next_due_at: datetime


class SyncScheduler:
    """Tracks the next due time of every integration with automatic sync.
    
    Each tick collects the elapsed entries and advances their due time
    before anything runs, so a slow or failing run is not resubmitted
    until its next regular slot.
    """
    
    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._entries: Dict[str, ScheduleEntry] = {}
        self._stopped = asyncio.Event()
    
    def __len__(self) -> int:
        return len(self._entries)
    
    def __contains__(self, integration_id: str) -> bool:
        return integration_id in self._entries
    
    def enable(self, integration_id: str, interval: timedelta) -> datetime:
        """Insert or replace the schedule for an integration; returns its due time."""
        if interval <= timedelta(0):
            raise ValueError("sync interval must be positive")
        
        next_due_at = self.clock.now() + interval
        self._entries[integration_id] = ScheduleEntry(integration_id, interval, next_due_at)
        logger.info(f"Scheduled automatic sync for integration {integration_id} every {interval}")
        return next_due_at
    
    def disable(self, integration_id: str) -> bool:
        """Remove the schedule; returns whether one existed."""
        removed = self._entries.pop(integration_id, None) is not None
        if removed:
            logger.info(f"Disabled automatic sync for integration {integration_id}")
        return removed
    
    def due_time(self, integration_id: str) -> Optional[datetime]:
        entry = self._entries.get(integration_id)
        return entry.next_due_at if entry else None
    
    def interval(self, integration_id: str) -> Optional[timedelta]:
        entry = self._entries.get(integration_id)
        return entry.interval if entry else None
    
    def scheduled_ids(self) -> List[str]:
        return list(self._entries)
    
    def collect_due(self, only: Optional[Iterable[str]] = None) -> List[str]:
        """Return the due integrations, advancing each one's due time.
        
        ``only`` restricts the check to the given integration ids.
        """
        now = self.clock.now()
        allowed = set(only) if only is not None else None
        due = []
        for entry in list(self._entries.values()):
            if allowed is not None and entry.integration_id not in allowed:
                continue
            if entry.next_due_at > now:
                continue
            due.append(entry.integration_id)
            next_due_at = entry.next_due_at + entry.interval
            if next_due_at <= now:
                # Missed several slots (downtime); resume from now
                next_due_at = now + entry.interval
            entry.next_due_at = next_due_at
        return due
    
    async def tick(self, submit: Callable[[str], Awaitable[None]]) -> List[str]:
        due = self.collect_due()
        if due:
            logger.info(f"Scheduler tick: {len(due)} integrations due")
        for integration_id in due:
            try:
                await submit(integration_id)
            except Exception as e:
                logger.error(f"Failed to submit scheduled sync for integration {integration_id}: {e}")
        return due
    
    async def run(self, submit: Callable[[str], Awaitable[None]], tick_seconds: float = 60.0) -> None:
        """Tick at a fixed cadence until :meth:`stop` is called."""
        logger.info("Sync scheduler started")
        while not self._stopped.is_set():
            await self.tick(submit)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=tick_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Sync scheduler stopped")
    
    def stop(self) -> None:
        self._stopped.set()
