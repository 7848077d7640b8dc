"""Tests for the Redis wrapper and the sync event publisher."""

from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest
from redis.exceptions import LockNotOwnedError

from apps.stream_loader.publisher import publish_sync_event
from utils.config import settings
from utils.errors import SyncLockedError
from utils.mq import RedisPublisher, installation_lock, lock_name
from utils.schemas import SyncReport, SyncStatus


def make_client(acquired: bool = True):
    lock = AsyncMock()
    lock.acquire.return_value = acquired
    client = AsyncMock()
    # lock() is a plain method returning the lock object
    client.lock = MagicMock(return_value=lock)
    return client, lock


@pytest.mark.asyncio
class TestInstallationLock:
    async def test_acquires_and_releases(self):
        client, lock = make_client()

        async with installation_lock("editorial", 42, client=client, timeout=60):
            lock.release.assert_not_awaited()

        client.lock.assert_called_once_with(lock_name("editorial", 42), timeout=60)
        lock.acquire.assert_awaited_once_with(blocking=False)
        lock.release.assert_awaited_once()
        client.aclose.assert_not_awaited()

    async def test_held_lock_raises(self):
        client, lock = make_client(acquired=False)

        with pytest.raises(SyncLockedError):
            async with installation_lock("editorial", 42, client=client):
                pytest.fail("body must not run without the lock")

        lock.release.assert_not_awaited()

    async def test_releases_when_body_fails(self):
        client, lock = make_client()

        with pytest.raises(RuntimeError):
            async with installation_lock("editorial", 42, client=client):
                raise RuntimeError("boom")

        lock.release.assert_awaited_once()

    async def test_expired_lock_on_release_is_logged(self, caplog):
        client, lock = make_client()
        lock.release.side_effect = LockNotOwnedError("expired")

        async with installation_lock("recommendations", 7, client=client):
            pass

        assert "Installation lock lost before release" in caplog.text

    async def test_lock_names_are_per_installation(self):
        assert lock_name("editorial", 1) != lock_name("editorial", 2)
        assert lock_name("editorial", 1) != lock_name("recommendations", 1)


@pytest.mark.asyncio
class TestPublisher:
    async def test_publish_serializes_with_orjson(self):
        publisher = RedisPublisher(redis_url="redis://localhost:6379/0")
        publisher.client = AsyncMock()

        await publisher.publish("streams.sync", {"type": "sync_completed", "feed": "editorial"})

        channel, payload = publisher.client.publish.await_args.args
        assert channel == "streams.sync"
        assert orjson.loads(payload) == {"type": "sync_completed", "feed": "editorial"}

    async def test_publish_sync_event_message(self):
        publisher = AsyncMock(spec=RedisPublisher)
        report = SyncReport(
            feed="editorial",
            status=SyncStatus.COMPLETED,
            cursor="100",
            pages_fetched=2,
            actions_processed=2,
        )

        await publish_sync_event(report, install_id=42, publisher=publisher)

        channel, message = publisher.publish.await_args.args
        assert channel == settings.REDIS_CHANNEL_SYNC
        assert message["type"] == "sync_completed"
        assert message["feed"] == "editorial"
        assert message["install_id"] == 42
        assert message["cursor"] == "100"
        assert message["actions_processed"] == 2
        assert message["status"] == "completed"
        assert "ts" in message
        publisher.close.assert_not_awaited()
