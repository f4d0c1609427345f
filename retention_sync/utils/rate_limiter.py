"""Rate limiting utilities using Redis."""

import redis.asyncio as redis
import time
import uuid


class RateLimiter:
    """Sliding-window rate limiter using Redis sorted sets."""
    
    def __init__(self, redis_url: str, prefix: str = "rate_limit"):
        self.redis_client = redis.from_url(redis_url, decode_responses=True)
        self.prefix = prefix
    
    async def check_rate_limit(
        self,
        key: str,
        limit: int = 100,
        window: int = 3600,
    ) -> bool:
        """Record one call and report whether it fits in the window."""
        full_key = f"{self.prefix}:{key}"
        current_time = time.time()
        window_start = current_time - window
        
        await self.redis_client.zremrangebyscore(full_key, 0, window_start)
        
        count = await self.redis_client.zcard(full_key)
        if count >= limit:
            return False
        
        # Members must be unique or calls within the same instant collapse
        await self.redis_client.zadd(full_key, {uuid.uuid4().hex: current_time})
        await self.redis_client.expire(full_key, window)
        
        return True
    
    async def close(self) -> None:
        await self.redis_client.aclose()
