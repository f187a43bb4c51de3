"""
Event Publisher for Extractor Service

Publishes run-completion events to Redis Pub/Sub after each sync run.

Usage:
    from apps.extractor.publisher import publish_sync_event

    await publish_sync_event("sync_completed", summary=summary.to_dict())
"""

import logging
from typing import Any, Optional

from utils.config import Settings, get_settings
from utils.mq import RedisPublisher
from utils.schemas import SyncEvent

logger = logging.getLogger(__name__)


async def publish_sync_event(
    event_type: str,
    summary: Optional[dict[str, Any]] = None,
    error: Optional[str] = None,
    settings: Optional[Settings] = None,
    publisher: Optional[RedisPublisher] = None,
) -> None:
    """
    Publish a sync_completed / sync_failed event to the sync channel.

    Args:
        event_type: "sync_completed" or "sync_failed"
        summary: RunSummary.to_dict() output, if any
        error: Error message for failed runs
        settings: Settings to use, defaults to the cached instance
        publisher: Publisher to use (closed afterwards either way)

    Raises:
        redis.RedisError: If publishing fails
    """
    settings = settings or get_settings()
    publisher = publisher or RedisPublisher(settings.REDIS_URL, settings.REDIS_MAX_CONNECTIONS)
    event = SyncEvent(type=event_type, summary=summary or {}, error=error)

    try:
        await publisher.publish_event(settings.REDIS_CHANNEL_SYNC, event)
    except Exception as e:
        logger.error(
            "Failed to publish event",
            extra={
                "channel": settings.REDIS_CHANNEL_SYNC,
                "event_type": event_type,
                "error": str(e),
            },
        )
        raise
    finally:
        await publisher.close()
