"""Shared pytest fixtures for the stream loader tests."""

from typing import Optional

import pytest

from apps.stream_loader.feeds import FeedDefinition, build_feeds
from utils.config import Settings
from utils.schemas import Page, RawEvent, RawSubject
from utils.state import FileCursorStore
from utils.store import FileContentStore


class RecordingSink:
    """Sink that keeps every emitted event."""

    def __init__(self) -> None:
        self.events = []

    def emit(self, event) -> None:
        self.events.append(event)

    def of_type(self, type_name: str) -> list:
        return [event for event in self.events if event.type == type_name]


class ScriptedFetcher:
    """Page fetcher serving pages keyed by the cursor they are requested with."""

    def __init__(self, pages: dict[Optional[str], Page]) -> None:
        self.pages = pages
        self.calls: list[tuple[Optional[str], Optional[int]]] = []
        self.errors: dict[Optional[str], Exception] = {}

    async def fetch(self, cursor: Optional[str], limit: Optional[int]) -> Page:
        self.calls.append((cursor, limit))
        if cursor in self.errors:
            raise self.errors[cursor]
        return self.pages[cursor]


def event(event_id, kind, subject_id="A", document=b"<x/>", subjects=None) -> RawEvent:
    """Build a raw event with a single article unless subjects is given."""
    if subjects is None:
        subjects = [RawSubject(subject_id=subject_id, document=document)]
    return RawEvent(event_id=str(event_id), kind=kind, subjects=subjects)


@pytest.fixture
def app_settings(tmp_path) -> Settings:
    return Settings(
        INSTALL_ID=42,
        API_KEY="secret-key",
        STATE_DIR=str(tmp_path / "state"),
        STORE_DIR=str(tmp_path / "articles"),
        SQLITE_PATH=str(tmp_path / "db" / "articles.db"),
        SYNC_LOCK_ENABLED=False,
        SYNC_PUBLISH_EVENTS=False,
        LOG_FILE=None,
        LOG_FORMAT="text",
    )


@pytest.fixture
def editorial_feed(app_settings) -> FeedDefinition:
    return build_feeds(app_settings)["editorial"]


@pytest.fixture
def recommendations_feed(app_settings) -> FeedDefinition:
    return build_feeds(app_settings)["recommendations"]


@pytest.fixture
def content_store(tmp_path) -> FileContentStore:
    store = FileContentStore(tmp_path / "articles" / "editorial")
    store.check_writable()
    return store


@pytest.fixture
def cursor_store(tmp_path) -> FileCursorStore:
    return FileCursorStore(tmp_path / "state" / "editorial-42-last-id.json")


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
