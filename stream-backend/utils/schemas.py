"""
Pydantic Schemas - Data Validation Models

Defines the models that flow through the stream loader:
- Raw events and pages as returned by a page fetcher
- Decoded actions and stored records
- Sync state, progress events and run reports
- Redis Pub/Sub notification payloads

Usage:
    from utils.schemas import Action, ActionKind

    action = Action(id=1, kind=ActionKind.UPSERT, subject_id="A", payload=b"<x/>")
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ActionKind(str, Enum):
    """Store mutation an action maps to."""

    UPSERT = "upsert"
    REMOVE = "remove"


class RawSubject(BaseModel):
    """One subject sub-record (an article element) inside a raw event."""

    subject_id: str = Field(default="", description="Declared subject identifier")
    document: bytes = Field(..., description="Serialized subject element, verbatim")


class RawEvent(BaseModel):
    """An event exactly as the feed delivered it, before validation."""

    event_id: str = Field(default="", description="Declared action ID")
    kind: str = Field(default="", description="Feed-specific action type")
    subjects: list[RawSubject] = Field(default_factory=list)


class Page(BaseModel):
    """One fetched batch of raw events plus an optional continuation cursor."""

    events: list[RawEvent] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(default=None)

    @property
    def has_next_cursor(self) -> bool:
        return self.next_cursor is not None


class Action(BaseModel):
    """Decoded unit of work.

    Upserts always carry a payload; removes never need one.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Action ID from the feed")
    kind: ActionKind
    subject_id: str = Field(..., min_length=1)
    payload: Optional[bytes] = Field(default=None)

    @model_validator(mode="after")
    def validate_payload(self) -> "Action":
        """Upsert actions must carry a document."""
        if self.kind is ActionKind.UPSERT and self.payload is None:
            raise ValueError("upsert actions require a payload")
        return self


class Record(BaseModel):
    """A stored subject, owned by the content store."""

    subject_id: str
    document: bytes
    last_action: Optional[int] = None


class SyncState(BaseModel):
    """Progress of one feed installation within a run."""

    cursor: Optional[str] = None
    actions_processed: int = 0


class SyncStatus(str, Enum):
    """How a controller run ended without raising."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAGE_LIMIT = "page_limit"


class SyncReport(BaseModel):
    """Outcome of one controller run."""

    feed: str
    status: SyncStatus
    cursor: Optional[str] = None
    pages_fetched: int = 0
    actions_processed: int = 0


# Progress events delivered to the sink


class PageFetched(BaseModel):
    type: Literal["page_fetched"] = "page_fetched"
    feed: str
    count: int
    cursor: Optional[str] = None
    has_next_cursor: bool = False


class ActionApplied(BaseModel):
    type: Literal["action_applied"] = "action_applied"
    feed: str
    id: int
    kind: ActionKind
    subject_id: str
    existed: bool = Field(default=False, description="Diagnostic only: record existed before")


class CursorCommitted(BaseModel):
    type: Literal["cursor_committed"] = "cursor_committed"
    feed: str
    cursor: str
    actions_processed: int = 0


class CursorLoaded(BaseModel):
    type: Literal["cursor_loaded"] = "cursor_loaded"
    feed: str
    cursor: Optional[str] = None


class SyncFailed(BaseModel):
    type: Literal["sync_failed"] = "sync_failed"
    feed: str
    kind: str
    detail: str


SyncEvent = Union[PageFetched, ActionApplied, CursorCommitted, CursorLoaded, SyncFailed]


class SyncNotification(BaseModel):
    """Redis Pub/Sub payload published after a feed run.

    {
        "type": "sync_completed",
        "feed": "editorial",
        "install_id": 42,
        "cursor": "1200",
        "actions_processed": 17,
        "status": "completed",
        "ts": "2025-01-15T03:15:02Z"
    }
    """

    type: str = Field(default="sync_completed", description="Event type")
    feed: str
    install_id: int
    cursor: Optional[str] = None
    actions_processed: int = 0
    status: SyncStatus
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp")
