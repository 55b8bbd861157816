"""Redis Adapter - Connection and key helpers."""
import redis.asyncio as redis
from typing import Optional

_redis_client: Optional[redis.Redis] = None


async def get_redis(redis_url: str) -> redis.Redis:
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(redis_url, decode_responses=True)
    return _redis_client


async def close_redis():
    """Close Redis connection."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


# Audit Keys
def audit_key(timestamp: str, event_id: str) -> str:
    """Generate audit record key (sorts by time)."""
    return f"audit:{timestamp}:{event_id}"
