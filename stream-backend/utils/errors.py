"""
Error Taxonomy - Sync Failure Categories

Every failure the stream loader can surface derives from SyncError so the
scheduler can report it uniformly. The controller never catches these to keep
going: a failed page is never committed and the error propagates.

- FetchError: network, HTTP status or response body problems (one page)
- DecodeError: one raw event could not be turned into an Action
- StoreError: the content store could not apply a mutation
- CorruptStateError: the persisted cursor cannot be read back
- ConfigurationError: pre-flight checks on storage locations failed
- SyncLockedError: another run holds the installation lock
"""

from enum import Enum
from typing import Any


class SyncError(Exception):
    """Base class for all stream loader failures."""

    kind = "sync_error"

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for error reports."""
        return {"kind": self.kind, "detail": str(self)}


class ConfigurationError(SyncError):
    kind = "configuration_error"


class FetchError(SyncError):
    kind = "fetch_error"


class DecodeErrorReason(str, Enum):
    """Why a raw event was rejected."""

    MALFORMED_EVENT = "malformed_event"
    UNKNOWN_KIND = "unknown_kind"


class DecodeError(SyncError):
    """A raw event failed validation.

    Args:
        reason: Which validation rule rejected the event
        event_id: Identifier the event declared, kept for diagnostics
        detail: Human-readable description
    """

    kind = "decode_error"

    def __init__(self, reason: DecodeErrorReason, event_id: str | None, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason
        self.event_id = event_id

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"reason": self.reason.value, "event_id": self.event_id})
        return data


class StoreError(SyncError):
    kind = "store_error"


class CorruptStateError(SyncError):
    kind = "corrupt_state"


class SyncLockedError(SyncError):
    kind = "sync_locked"
