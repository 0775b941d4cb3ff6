"""
Redis client configuration and management
"""
import redis.asyncio as redis
import structlog
import json
from typing import Any, Dict, Optional

from stockroom.core.config import settings

logger = structlog.get_logger(__name__)

# Global Redis connection pool
redis_client: Optional[redis.Redis] = None


async def init_redis():
    """Initialize Redis connection"""
    global redis_client
    try:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            retry_on_timeout=True,
            socket_keepalive=True,
            health_check_interval=30
        )

        # Test connection
        await redis_client.ping()
        logger.info("Redis connection established successfully")

    except Exception as e:
        logger.error("Failed to connect to Redis", error=str(e))
        raise


async def close_redis():
    """Close Redis connection pool"""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")


async def get_redis() -> redis.Redis:
    """Get Redis client instance"""
    global redis_client
    if redis_client is None:
        await init_redis()
    return redis_client


class RedisManager:
    """Redis pub/sub operations manager"""

    def __init__(self):
        self.client: Optional[redis.Redis] = None

    async def get_client(self) -> redis.Redis:
        """Get Redis client"""
        if self.client is None:
            self.client = await get_redis()
        return self.client

    async def publish_message(self, channel: str, message: Dict[str, Any]):
        """Publish message to Redis channel"""
        client = await self.get_client()
        serialized_message = json.dumps(message, default=str)
        await client.publish(channel, serialized_message)
        logger.info("Published message to Redis channel", channel=channel, message_type=message.get("type"))

    async def subscribe_to_channel(self, channel: str):
        """Subscribe to Redis channel"""
        client = await self.get_client()
        pubsub = client.pubsub()
        await pubsub.subscribe(channel)
        logger.info("Subscribed to Redis channel", channel=channel)
        return pubsub


# Global Redis manager instance
redis_manager = RedisManager()


# Redis channel constants
CHANNELS = {
    "inventory_updates": "inventory:updates",
    "cycle_count_updates": "cycle_count:updates",
    "stock_alerts": "stock:alerts",
    "system_notifications": "system:notifications"
}
