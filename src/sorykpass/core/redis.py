"""
Redis client configuration
"""
import redis.asyncio as redis
from sorykpass.core.config import settings
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client wrapper"""

    def __init__(self, url: str = None):
        self.url = url or settings.REDIS_URL
        self.redis: Optional[redis.Redis] = None

    async def connect(self):
        """Connect to Redis"""
        try:
            self.redis = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=50
            )
            # Test connection
            await self.redis.ping()
            logger.info("✅ Redis connected successfully")
        except Exception as e:
            # The pool keeps retrying; seat hold calls answer 503 until Redis is reachable
            logger.error(f"❌ Redis connection failed: {e}")

    async def close(self):
        """Close Redis connection"""
        if self.redis:
            await self.redis.aclose()
            logger.info("🔴 Redis connection closed")
            self.redis = None

    async def is_healthy(self) -> bool:
        if not self.redis:
            return False
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning(f"Redis PING failed: {e}")
            return False


# Global Redis client instance
redis_client = RedisClient()
