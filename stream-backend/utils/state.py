"""
Cursor State Persistence

Single-slot, crash-safe storage of the last committed feed cursor, one JSON
file per feed installation:

    {"cursor": "1200", "updated_at": "2025-01-15T03:15:02+00:00"}

A missing file means the installation never committed a cursor. Anything
else that cannot be read back is reported as CorruptStateError rather than
treated as "start from the beginning".
"""

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import orjson

from utils.errors import ConfigurationError, CorruptStateError, StoreError

logger = logging.getLogger(__name__)


class FileCursorStore:
    """Cursor store backed by a JSON file replaced atomically on save."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def check_writable(self) -> None:
        """
        Verify the cursor file can be written before a run starts.

        Raises:
            ConfigurationError: If the file or its directory is not writable
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create state directory: {self.path.parent}") from e

        if not os.access(self.path.parent, os.W_OK):
            raise ConfigurationError(f"Cannot write into state directory: {self.path.parent}")
        if self.path.exists() and not os.access(self.path, os.W_OK):
            raise ConfigurationError(f"Cannot write into configured last ID file: {self.path}")

    def load(self) -> Optional[str]:
        """
        Read the committed cursor.

        Returns:
            The cursor, or None if no cursor was ever committed

        Raises:
            CorruptStateError: If the file exists but does not hold a valid cursor
        """
        if not self.path.exists():
            logger.debug("No cursor file present: path=%s", self.path)
            return None

        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise CorruptStateError(f"Cursor file unreadable: {self.path}: {e}") from e

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise CorruptStateError(f"Cursor file is not valid JSON: {self.path}") from e

        if not isinstance(data, dict) or "cursor" not in data:
            raise CorruptStateError(f"Cursor file has no cursor entry: {self.path}")

        cursor = data["cursor"]
        if not isinstance(cursor, str) or not cursor:
            raise CorruptStateError(f"Cursor file holds an invalid cursor {cursor!r}: {self.path}")

        return cursor

    def save(self, cursor: str) -> None:
        """
        Persist the cursor atomically.

        The new content is written to a temporary file in the same directory,
        fsynced, then renamed over the old file, so a crash leaves either the
        old or the new cursor readable.

        Raises:
            StoreError: If the cursor cannot be written
        """
        payload = orjson.dumps(
            {"cursor": cursor, "updated_at": datetime.now(timezone.utc).isoformat()}
        )
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise StoreError(f"Failed to record cursor {cursor!r} to {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
