"""Per-integration execution locks.

Acquisition never waits: a held lock means another run owns the
integration and the caller fails fast.
"""

from abc import ABC, abstractmethod
from typing import Dict, Set
import logging
import threading
import uuid

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class BaseSyncLock(ABC):
    """Try-acquire lock keyed by integration id."""
    
    @abstractmethod
    async def try_acquire(self, integration_id: str) -> bool:
        pass
    
    @abstractmethod
    async def release(self, integration_id: str) -> None:
        """Release the lock; releasing a free lock is a no-op."""
        pass
    
    @abstractmethod
    async def is_locked(self, integration_id: str) -> bool:
        pass


class SyncLockManager(BaseSyncLock):
    """In-process locks for a single engine instance."""
    
    def __init__(self):
        self._held: Set[str] = set()
        self._guard = threading.Lock()
    
    async def try_acquire(self, integration_id: str) -> bool:
        with self._guard:
            if integration_id in self._held:
                return False
            self._held.add(integration_id)
            return True
    
    async def release(self, integration_id: str) -> None:
        with self._guard:
            self._held.discard(integration_id)
    
    async def is_locked(self, integration_id: str) -> bool:
        with self._guard:
            return integration_id in self._held


# Deletes the key only if this holder still owns it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisSyncLockManager(BaseSyncLock):
    """Locks shared by several engine processes through Redis.
    
    The TTL bounds how long a crashed holder can keep an integration
    locked; it should exceed the longest expected run.
    """
    
    def __init__(self, redis_url: str, ttl_seconds: int = 3600, prefix: str = "sync_lock"):
        self.redis_client = redis.from_url(redis_url, decode_responses=True)
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self._tokens: Dict[str, str] = {}
    
    def _key(self, integration_id: str) -> str:
        return f"{self.prefix}:{integration_id}"
    
    async def try_acquire(self, integration_id: str) -> bool:
        token = uuid.uuid4().hex
        acquired = await self.redis_client.set(
            self._key(integration_id),
            token,
            nx=True,
            ex=self.ttl_seconds,
        )
        if acquired:
            self._tokens[integration_id] = token
            return True
        return False
    
    async def release(self, integration_id: str) -> None:
        token = self._tokens.pop(integration_id, None)
        if token is None:
            return
        released = await self.redis_client.eval(_RELEASE_SCRIPT, 1, self._key(integration_id), token)
        if not released:
            logger.warning(f"Sync lock for integration {integration_id} expired before release")
    
    async def is_locked(self, integration_id: str) -> bool:
        return bool(await self.redis_client.exists(self._key(integration_id)))
    
    async def close(self) -> None:
        await self.redis_client.aclose()
