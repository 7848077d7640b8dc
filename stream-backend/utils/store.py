"""
Content Store - Key-Addressed Subject Records

Defines the ContentStore interface the dispatcher writes through, the
flat-file implementation (one XML document per article) and the factory that
picks a backend from settings.

Layout of the file store:
    <STORE_DIR>/<feed>/<articleId>.xml        document, verbatim
    <STORE_DIR>/<feed>/<articleId>.meta.json  {"last_action": 17, "updated_at": "..."}
"""

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

import orjson

from utils.config import Settings
from utils.db import SqliteContentStore, init_schema
from utils.errors import ConfigurationError, StoreError
from utils.schemas import Record

logger = logging.getLogger(__name__)


class ContentStore(Protocol):
    """Persistent store of subject records addressed by subject ID.

    upsert and remove must both be idempotent; exists is for diagnostics.
    """

    def upsert(self, subject_id: str, document: bytes, action_id: Optional[int] = None) -> None: ...

    def remove(self, subject_id: str) -> None: ...

    def exists(self, subject_id: str) -> bool: ...

    def get(self, subject_id: str) -> Optional[Record]: ...


def _atomic_write(path: Path, data: bytes) -> None:
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)


class FileContentStore:
    """Content store keeping each record as a file in one directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def check_writable(self) -> None:
        """
        Create the store directory if needed and verify it is writable.

        Raises:
            ConfigurationError: If the directory cannot be created or written
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create article store directory: {self.directory}") from e

        if not os.access(self.directory, os.W_OK):
            raise ConfigurationError(
                f"Cannot write into configured article store directory: {self.directory}"
            )

    def _document_path(self, subject_id: str) -> Path:
        if (
            not subject_id
            or subject_id in (".", "..")
            or any(sep in subject_id for sep in ("/", "\\", "\x00"))
        ):
            raise StoreError(f"Subject ID cannot be used as a file name: {subject_id!r}")
        return self.directory / f"{subject_id}.xml"

    def _meta_path(self, subject_id: str) -> Path:
        return self.directory / f"{subject_id}.meta.json"

    def upsert(self, subject_id: str, document: bytes, action_id: Optional[int] = None) -> None:
        doc_path = self._document_path(subject_id)
        meta = orjson.dumps(
            {"last_action": action_id, "updated_at": datetime.now(timezone.utc).isoformat()}
        )
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            _atomic_write(doc_path, document)
            _atomic_write(self._meta_path(subject_id), meta)
        except OSError as e:
            raise StoreError(f"Failed to write article {subject_id}: {e}") from e

    def remove(self, subject_id: str) -> None:
        doc_path = self._document_path(subject_id)
        try:
            doc_path.unlink(missing_ok=True)
            self._meta_path(subject_id).unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to remove article {subject_id}: {e}") from e

    def exists(self, subject_id: str) -> bool:
        return self._document_path(subject_id).exists()

    def get(self, subject_id: str) -> Optional[Record]:
        doc_path = self._document_path(subject_id)
        try:
            document = doc_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreError(f"Failed to read article {subject_id}: {e}") from e

        last_action = None
        meta_path = self._meta_path(subject_id)
        if meta_path.exists():
            try:
                last_action = orjson.loads(meta_path.read_bytes()).get("last_action")
            except (OSError, orjson.JSONDecodeError) as e:
                logger.warning(
                    "Unreadable record metadata, ignoring",
                    extra={"subject_id": subject_id, "error": str(e)},
                )

        return Record(subject_id=subject_id, document=document, last_action=last_action)


def build_content_store(settings: Settings, feed: str) -> ContentStore:
    """
    Build the configured content store partition for a feed.

    Args:
        settings: Application settings (STORE_BACKEND, STORE_DIR, SQLITE_PATH)
        feed: Feed name, used as the partition key

    Raises:
        ConfigurationError: If the backend is unknown or storage is not writable
    """
    backend = settings.STORE_BACKEND.lower()

    if backend == "file":
        store = FileContentStore(Path(settings.STORE_DIR) / feed)
        store.check_writable()
        return store

    if backend == "sqlite":
        init_schema(settings.SQLITE_PATH)
        return SqliteContentStore(feed=feed, path=settings.SQLITE_PATH)

    raise ConfigurationError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")
