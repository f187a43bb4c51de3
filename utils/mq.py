"""
Redis Pub/Sub publisher with connection pooling and retries.

Used to announce the outcome of each sync run on settings.REDIS_CHANNEL_SYNC.
Only the Redis publish is retried; upstream API calls never are.
"""

import logging
from typing import Any, Optional

import orjson
import redis.asyncio as redis
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from utils.config import settings
from utils.schemas import SyncEvent

logger = logging.getLogger(__name__)


class RedisPublisher:
    """Publishes JSON payloads, serialized with orjson."""

    def __init__(self, redis_url: Optional[str] = None, max_connections: Optional[int] = None) -> None:
        """Initialize Redis publisher.

        Args:
            redis_url: Redis connection URL, defaults to settings.REDIS_URL
            max_connections: Pool size, defaults to settings.REDIS_MAX_CONNECTIONS
        """
        self.redis_url = redis_url or settings.REDIS_URL
        self.max_connections = max_connections or settings.REDIS_MAX_CONNECTIONS
        self.client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Open the pooled connection on first use."""
        if self.client is None:
            self.client = redis.from_url(
                self.redis_url,
                max_connections=self.max_connections,
                decode_responses=False,
            )

    @retry(
        retry=retry_if_exception_type((redis.ConnectionError, redis.TimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        """Publish a message, retrying connection problems.

        Args:
            channel: Redis channel name
            message: Payload, serialized with orjson

        Returns:
            Number of subscribers that received the message

        Raises:
            redis.RedisError: If publishing fails after retries
        """
        await self.connect()
        return await self.client.publish(channel, orjson.dumps(message))

    async def publish_event(self, channel: str, event: SyncEvent) -> int:
        """Publish a validated SyncEvent."""
        receivers = await self.publish(channel, event.model_dump(mode="json"))
        logger.info(
            "Published sync event",
            extra={"channel": channel, "event_type": event.type, "receivers": receivers},
        )
        return receivers

    async def close(self) -> None:
        """Close Redis connection and cleanup resources."""
        if self.client:
            await self.client.aclose()
            self.client = None
