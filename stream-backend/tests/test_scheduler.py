"""Tests for wiring feeds into runs and the scheduler's run-once mode."""

from unittest.mock import AsyncMock

import pytest

from apps.stream_loader import scheduler as scheduler_module
from apps.stream_loader.feeds import get_feed
from apps.stream_loader.scheduler import SyncScheduler, run_feed
from tests.conftest import RecordingSink, ScriptedFetcher, event
from utils.errors import ConfigurationError, CorruptStateError
from utils.schemas import Page, SyncStatus
from utils.state import FileCursorStore

FEED_KINDS = {
    "editorial": ("published", "unpublished"),
    "recommendations": ("recommend", "unrecommend"),
}


def scripted_pages(upsert: str = "published", remove: str = "unpublished") -> ScriptedFetcher:
    return ScriptedFetcher(
        {
            None: Page(events=[event(1, upsert, "A"), event(2, remove, "B")], next_cursor="2"),
            "2": Page(events=[]),
        }
    )


@pytest.mark.asyncio
class TestRunFeed:
    async def test_runs_feed_into_configured_locations(self, app_settings, editorial_feed, tmp_path):
        sink = RecordingSink()

        report = await run_feed(editorial_feed, app_settings=app_settings, sink=sink, fetcher=scripted_pages())

        assert report.status is SyncStatus.COMPLETED
        assert report.actions_processed == 2
        assert (tmp_path / "articles" / "editorial" / "A.xml").read_bytes() == b"<x/>"
        cursor_store = FileCursorStore(tmp_path / "state" / "editorial-42-last-id.json")
        assert cursor_store.load() == "2"

    async def test_sqlite_backend(self, app_settings, editorial_feed):
        app_settings.STORE_BACKEND = "sqlite"

        report = await run_feed(editorial_feed, app_settings=app_settings, sink=RecordingSink(), fetcher=scripted_pages())

        assert report.cursor == "2"

    async def test_holds_installation_lock(self, app_settings, editorial_feed, monkeypatch):
        app_settings.SYNC_LOCK_ENABLED = True
        entered = []

        class FakeLock:
            def __init__(self, feed, install_id):
                entered.append((feed, install_id))

            async def __aenter__(self):
                return None

            async def __aexit__(self, *exc_info):
                entered.append("released")

        monkeypatch.setattr(scheduler_module, "installation_lock", FakeLock)

        await run_feed(editorial_feed, app_settings=app_settings, sink=RecordingSink(), fetcher=scripted_pages())

        assert entered == [("editorial", 42), "released"]

    async def test_corrupt_cursor_is_fatal(self, app_settings, editorial_feed, tmp_path):
        state_file = tmp_path / "state" / "editorial-42-last-id.json"
        state_file.parent.mkdir(parents=True)
        state_file.write_text("12")
        fetcher = scripted_pages()

        with pytest.raises(CorruptStateError):
            await run_feed(editorial_feed, app_settings=app_settings, sink=RecordingSink(), fetcher=fetcher)

        assert fetcher.calls == []


@pytest.mark.asyncio
class TestSyncScheduler:
    async def test_run_once_syncs_each_feed_and_signals_shutdown(self, app_settings, monkeypatch):
        app_settings.SYNC_PUBLISH_EVENTS = True
        ran = []

        async def fake_run_feed(feed, app_settings, cancel, sink):
            ran.append(feed.name)
            return await run_feed(
                feed, app_settings=app_settings, cancel=cancel, sink=sink, fetcher=scripted_pages(*FEED_KINDS[feed.name])
            )

        publish = AsyncMock()
        monkeypatch.setattr(scheduler_module, "run_feed", fake_run_feed)
        monkeypatch.setattr(scheduler_module, "publish_sync_event", publish)

        sync_scheduler = SyncScheduler(run_once=True, app_settings=app_settings)
        reports = await sync_scheduler.execute_sync()

        assert ran == ["editorial", "recommendations"]
        assert [r.feed for r in reports] == ["editorial", "recommendations"]
        assert publish.await_count == 2
        assert sync_scheduler.shutdown_event.is_set()

    async def test_unknown_feed_fails_execution(self, app_settings):
        app_settings.SYNC_FEEDS = "editorial,archive"
        sync_scheduler = SyncScheduler(run_once=True, app_settings=app_settings)

        async def fake_run_feed(feed, app_settings, cancel, sink):
            return await run_feed(feed, app_settings=app_settings, cancel=cancel, sink=sink, fetcher=scripted_pages())

        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(scheduler_module, "run_feed", fake_run_feed)
            with pytest.raises(ConfigurationError):
                await sync_scheduler.execute_sync()

        assert sync_scheduler.shutdown_event.is_set()

    async def test_shutdown_skips_remaining_feeds(self, app_settings, monkeypatch):
        run = AsyncMock()
        monkeypatch.setattr(scheduler_module, "run_feed", run)
        sync_scheduler = SyncScheduler(run_once=False, app_settings=app_settings)
        sync_scheduler.shutdown_event.set()

        reports = await sync_scheduler.execute_sync()

        assert reports == []
        run.assert_not_awaited()


def test_get_feed_rejects_unknown_name(app_settings):
    with pytest.raises(ConfigurationError, match="archive"):
        get_feed(app_settings, "archive")


def test_feed_names_are_trimmed(app_settings):
    app_settings.SYNC_FEEDS = " editorial , ,recommendations "

    assert app_settings.feed_names == ["editorial", "recommendations"]
