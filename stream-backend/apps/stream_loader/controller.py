"""
Sync Controller - Cursor-Driven Pagination and Replay Loop

Drives one feed installation from its last committed cursor to the end of the
stream:

    IDLE -> FETCHING_PAGE -> APPLYING_PAGE -> COMMITTING_CURSOR -> FETCHING_PAGE
                                                                -> DONE
    any failure -> FAILED

Pages are handled strictly one at a time. A page's continuation cursor is
saved only after every action in the page was applied, so the committed
cursor always ends a fully applied prefix of the stream and a resumed run
re-fetches at most one page.

Failure policy:
- the whole page is decoded before anything is dispatched, so a DecodeError
  leaves the store untouched for that page
- a StoreError stops the page where it happened; earlier actions stay applied
- in both cases, and on FetchError, the cursor is not committed and the error
  propagates to the caller
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Protocol

from apps.stream_loader.decoder import EventDecoder
from apps.stream_loader.dispatcher import ActionDispatcher
from apps.stream_loader.feeds import FeedDefinition
from utils.errors import FetchError, SyncError
from utils.logging import LoggingSink, SyncSink
from utils.schemas import (
    CursorCommitted,
    CursorLoaded,
    Page,
    PageFetched,
    SyncFailed,
    SyncReport,
    SyncState,
    SyncStatus,
)
from utils.store import ContentStore

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    IDLE = "idle"
    FETCHING_PAGE = "fetching_page"
    APPLYING_PAGE = "applying_page"
    COMMITTING_CURSOR = "committing_cursor"
    DONE = "done"
    FAILED = "failed"


class PageFetcher(Protocol):
    async def fetch(self, cursor: Optional[str], limit: Optional[int]) -> Page: ...


class CursorStore(Protocol):
    def load(self) -> Optional[str]: ...

    def save(self, cursor: str) -> None: ...


class SyncController:
    """
    Sequential fetch, decode, dispatch and commit loop for one feed.

    Args:
        feed: Feed definition (name, page size, cursor ordering)
        fetcher: Source of pages
        decoder: Decoder bound to the feed's action types
        store: Content store partition of the feed
        cursor_store: Durable slot for the committed cursor
        sink: Receiver of progress events, defaults to a LoggingSink
        page_limit: Page size passed to the fetcher, defaults to the feed's
        max_pages: Stop after this many pages (0 or None for no bound)
        on_progress: Called with the SyncState after every committed page
    """

    def __init__(
        self,
        feed: FeedDefinition,
        fetcher: PageFetcher,
        decoder: EventDecoder,
        store: ContentStore,
        cursor_store: CursorStore,
        sink: Optional[SyncSink] = None,
        page_limit: Optional[int] = None,
        max_pages: Optional[int] = None,
        on_progress: Optional[Callable[[SyncState], None]] = None,
    ) -> None:
        self.feed = feed
        self.fetcher = fetcher
        self.decoder = decoder
        self.store = store
        self.cursor_store = cursor_store
        self.sink = sink or LoggingSink()
        self.page_limit = page_limit or feed.page_limit
        self.max_pages = max_pages or None
        self.on_progress = on_progress

        self.dispatcher = ActionDispatcher(feed.name)
        self.phase = SyncPhase.IDLE
        self.state = SyncState()
        self.pages_fetched = 0

    async def run(self, cancel: Optional[asyncio.Event] = None) -> SyncReport:
        """
        Synchronize until the stream reports no continuation.

        Args:
            cancel: Checked before every fetch; once set, the run stops on the
                last committed cursor

        Returns:
            SyncReport with the final status, cursor and counters

        Raises:
            CorruptStateError: If the stored cursor cannot be read
            FetchError: If a page cannot be fetched
            DecodeError: If an event in a page is invalid
            StoreError: If the store or the cursor cannot be written
        """
        try:
            return await self._run(cancel)
        except Exception as e:
            self.phase = SyncPhase.FAILED
            kind = e.kind if isinstance(e, SyncError) else "unexpected_error"
            self.sink.emit(SyncFailed(feed=self.feed.name, kind=kind, detail=str(e)))
            raise

    async def _run(self, cancel: Optional[asyncio.Event]) -> SyncReport:
        self.state = SyncState(cursor=self.cursor_store.load())
        self.pages_fetched = 0
        self.sink.emit(CursorLoaded(feed=self.feed.name, cursor=self.state.cursor))

        while True:
            if cancel is not None and cancel.is_set():
                logger.info("Cancellation requested, stopping between pages", extra={"feed": self.feed.name})
                status = SyncStatus.CANCELLED
                break

            if self.max_pages is not None and self.pages_fetched >= self.max_pages:
                logger.warning(
                    "Page limit reached, stopping",
                    extra={"feed": self.feed.name, "max_pages": self.max_pages},
                )
                status = SyncStatus.PAGE_LIMIT
                break

            self.phase = SyncPhase.FETCHING_PAGE
            page = await self.fetcher.fetch(self.state.cursor, self.page_limit)
            self.pages_fetched += 1

            has_next_cursor = page.next_cursor is not None
            if has_next_cursor:
                self._check_cursor_order(page.next_cursor)

            self.sink.emit(
                PageFetched(
                    feed=self.feed.name,
                    count=len(page.events),
                    cursor=self.state.cursor,
                    has_next_cursor=has_next_cursor,
                )
            )

            self.phase = SyncPhase.APPLYING_PAGE
            actions = [self.decoder.decode(raw) for raw in page.events]
            for action in actions:
                self.sink.emit(self.dispatcher.apply(action, self.store))

            self.phase = SyncPhase.COMMITTING_CURSOR
            cursor = self.state.cursor
            if has_next_cursor:
                self.cursor_store.save(page.next_cursor)
                cursor = page.next_cursor

            self.state = SyncState(
                cursor=cursor,
                actions_processed=self.state.actions_processed + len(actions),
            )
            if has_next_cursor:
                self.sink.emit(
                    CursorCommitted(
                        feed=self.feed.name,
                        cursor=cursor,
                        actions_processed=self.state.actions_processed,
                    )
                )

            logger.info(
                "Processed %d actions",
                self.state.actions_processed,
                extra={"feed": self.feed.name, "page_actions": len(actions)},
            )
            if self.on_progress is not None:
                self.on_progress(self.state)

            if not has_next_cursor:
                status = SyncStatus.COMPLETED
                break

        self.phase = SyncPhase.DONE
        return SyncReport(
            feed=self.feed.name,
            status=status,
            cursor=self.state.cursor,
            pages_fetched=self.pages_fetched,
            actions_processed=self.state.actions_processed,
        )

    def _check_cursor_order(self, next_cursor: str) -> None:
        """The committed cursor must never move backwards."""
        if self.state.cursor is None:
            return
        try:
            regressed = self.feed.cursor_key(next_cursor) < self.feed.cursor_key(self.state.cursor)
        except ValueError as e:
            raise FetchError(f"Cannot order cursors {self.state.cursor!r} and {next_cursor!r}") from e
        if regressed:
            raise FetchError(
                f"Stream returned cursor {next_cursor!r} behind committed cursor {self.state.cursor!r}"
            )
