"""
Database utilities for SQLite operations.

Provides connection management, schema initialization and the SQLite-backed
content store. Records of every feed share one table, partitioned by feed name.
"""

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from utils.config import settings
from utils.errors import ConfigurationError, StoreError
from utils.schemas import Record

logger = logging.getLogger(__name__)


def get_conn(path: Optional[str] = None) -> sqlite3.Connection:
    """
    Get SQLite database connection with dict-friendly row factory.

    Args:
        path: Database file, defaults to settings.SQLITE_PATH

    Returns:
        SQLite connection with row_factory set to sqlite3.Row

    Raises:
        sqlite3.Error: If connection fails
    """
    db_path = Path(path or settings.SQLITE_PATH)
    # Ensure database directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(path: Optional[str] = None) -> None:
    """
    Initialize database schema by creating required tables if they don't exist.

    Creates:
    - records: one row per (feed, subject_id) holding the latest document

    Raises:
        ConfigurationError: If the database cannot be opened or migrated
    """
    try:
        with closing(get_conn(path)) as conn, conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    feed TEXT NOT NULL,
                    subject_id TEXT NOT NULL,
                    document BLOB NOT NULL,
                    last_action INTEGER,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (feed, subject_id)
                )
            """)
    except (OSError, sqlite3.Error) as e:
        raise ConfigurationError(f"Cannot initialize article database: {e}") from e

    logger.info("DB schema ready")


class SqliteContentStore:
    """Content store partition kept in the SQLite records table."""

    def __init__(self, feed: str, path: Optional[str] = None) -> None:
        self.feed = feed
        self.path = path

    def upsert(self, subject_id: str, document: bytes, action_id: Optional[int] = None) -> None:
        current_ts = datetime.now(timezone.utc).isoformat()
        try:
            with closing(get_conn(self.path)) as conn, conn:
                conn.execute(
                    """
                    INSERT INTO records (feed, subject_id, document, last_action, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT (feed, subject_id) DO UPDATE SET
                        document = excluded.document,
                        last_action = excluded.last_action,
                        updated_at = excluded.updated_at
                    """,
                    (self.feed, subject_id, document, action_id, current_ts),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Database upsert failed for {subject_id}: {e}") from e

    def remove(self, subject_id: str) -> None:
        try:
            with closing(get_conn(self.path)) as conn, conn:
                conn.execute(
                    "DELETE FROM records WHERE feed = ? AND subject_id = ?",
                    (self.feed, subject_id),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Database delete failed for {subject_id}: {e}") from e

    def exists(self, subject_id: str) -> bool:
        return self.get(subject_id) is not None

    def get(self, subject_id: str) -> Optional[Record]:
        try:
            with closing(get_conn(self.path)) as conn:
                row = conn.execute(
                    "SELECT subject_id, document, last_action FROM records WHERE feed = ? AND subject_id = ?",
                    (self.feed, subject_id),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Database lookup failed for {subject_id}: {e}") from e

        if row is None:
            return None
        return Record(
            subject_id=row["subject_id"],
            document=bytes(row["document"]),
            last_action=row["last_action"],
        )
