"""
Redis wrapper with connection pooling and error handling.

- RedisPublisher: Pub/Sub notifications with retries
- installation_lock: one sync run at a time per feed installation
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import orjson
import redis.asyncio as redis
from redis.exceptions import LockError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from utils.config import settings
from utils.errors import SyncLockedError

logger = logging.getLogger(__name__)


def create_client(redis_url: Optional[str] = None) -> redis.Redis:
    """Create a Redis client with connection pooling."""
    return redis.from_url(
        redis_url or settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=False,  # Handle bytes for orjson
    )


class RedisPublisher:
    """Redis publisher for Pub/Sub events with connection pooling and retries."""

    def __init__(self, redis_url: Optional[str] = None) -> None:
        """Initialize Redis publisher.

        Args:
            redis_url: Redis connection URL, defaults to settings.REDIS_URL
        """
        self.redis_url = redis_url or settings.REDIS_URL
        self.client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection with connection pooling."""
        if self.client is None:
            self.client = create_client(self.redis_url)

    @retry(
        retry=retry_if_exception_type((redis.RedisError, redis.ConnectionError, redis.TimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def publish(self, channel: str, message: dict[str, Any]) -> None:
        """Publish message to Redis channel with retry logic.

        Args:
            channel: Redis channel name
            message: Message payload dict (will be JSON-serialized)

        Raises:
            redis.RedisError: If publishing fails after retries
        """
        if self.client is None:
            await self.connect()

        # Serialize with orjson for better performance
        message_bytes = orjson.dumps(message)

        await self.client.publish(channel, message_bytes)

    async def close(self) -> None:
        """Close Redis connection and cleanup resources."""
        if self.client:
            await self.client.aclose()
            self.client = None


def lock_name(feed: str, install_id: int) -> str:
    return f"{settings.APP_NAME}:lock:{feed}:{install_id}"


@asynccontextmanager
async def installation_lock(
    feed: str,
    install_id: int,
    client: Optional[redis.Redis] = None,
    timeout: Optional[int] = None,
) -> AsyncIterator[None]:
    """
    Hold the Redis lock of a feed installation for the duration of the block.

    Args:
        feed: Feed name
        install_id: Partner install ID
        client: Redis client to use; a pooled client is created and closed when omitted
        timeout: Lock expiry in seconds, defaults to settings.SYNC_LOCK_TIMEOUT

    Raises:
        SyncLockedError: If another run already holds the lock
    """
    owns_client = client is None
    if client is None:
        client = create_client()

    name = lock_name(feed, install_id)
    lock = client.lock(name, timeout=timeout or settings.SYNC_LOCK_TIMEOUT)

    try:
        acquired = await lock.acquire(blocking=False)
        if not acquired:
            raise SyncLockedError(f"Another sync run holds {name}")

        logger.debug("Acquired installation lock", extra={"lock": name})
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # expired while the run was still going
                logger.warning("Installation lock lost before release", extra={"lock": name, "error": str(e)})
    finally:
        if owns_client:
            await client.aclose()
