"""
Event Publisher for the Stream Loader

Publishes a notification to Redis Pub/Sub after a feed run finishes, so
downstream consumers can pick up freshly synced articles.

Features:
- Redis Pub/Sub integration via production wrapper
- Automatic connection management and retries
- JSON message serialization
- Structured logging

Usage:
    from apps.stream_loader.publisher import publish_sync_event

    await publish_sync_event(report, install_id=42)
"""

import logging

from utils.config import settings
from utils.mq import RedisPublisher
from utils.schemas import SyncNotification, SyncReport

logger = logging.getLogger(__name__)


async def publish_sync_event(report: SyncReport, install_id: int, publisher: RedisPublisher | None = None) -> None:
    """
    Publish sync completion event to Redis channel.

    Args:
        report: Report of the finished run
        install_id: Partner install ID the run belonged to
        publisher: Publisher to use; a new one is created and closed when omitted

    Raises:
        redis.RedisError: If publishing fails
    """
    owns_publisher = publisher is None
    publisher = publisher or RedisPublisher()

    try:
        message = SyncNotification(
            feed=report.feed,
            install_id=install_id,
            cursor=report.cursor,
            actions_processed=report.actions_processed,
            status=report.status,
        ).model_dump(mode="json")

        await publisher.publish(settings.REDIS_CHANNEL_SYNC, message)

        logger.info(
            "Published sync event",
            extra={
                "channel": settings.REDIS_CHANNEL_SYNC,
                "feed": report.feed,
                "message_type": message["type"],
            },
        )

    except Exception as e:
        logger.error(
            "Failed to publish event",
            extra={
                "channel": settings.REDIS_CHANNEL_SYNC,
                "feed": report.feed,
                "error": str(e),
            },
        )
        raise

    finally:
        # Cleanup connection
        if owns_publisher:
            await publisher.close()
