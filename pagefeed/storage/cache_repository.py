"""
Cache Repository
================

Persistent HTTP validators per source URL. Keys are the exact URL strings
from the feed definitions; no normalization is applied.
"""

import threading
from datetime import datetime
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import CacheRecord, utc_now
from ..utils.logging import get_logger_for_component


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class CacheStore:
    """Repository for cache records.

    Updates replace the whole record inside one transaction and are
    serialized, so concurrent updates of the same URL are last-writer-wins.
    """

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize cache store.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("cache_store")
        self._write_lock = threading.Lock()

    def lookup(self, url: str) -> Optional[CacheRecord]:
        """Return the record stored for ``url``, or None when there is none."""
        row = self.db.execute_one("SELECT * FROM cache_records WHERE url = ?", (url,))
        return CacheRecord.from_db_row(row) if row else None

    def update(self, url: str, record: CacheRecord) -> None:
        """Replace the record for ``url`` atomically."""
        if record.url != url:
            record = record.model_copy(update={"url": url})

        with self._write_lock:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO cache_records (
                        url, etag, last_modified, content_fingerprint,
                        recorded_at, checked_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                    (
                        url,
                        record.etag,
                        _iso(record.last_modified),
                        record.content_fingerprint,
                        _iso(record.recorded_at),
                        _iso(record.checked_at),
                    ),
                )

        self.logger.debug(
            f"Stored cache record for {url}",
            extra={
                "etag": record.etag,
                "has_last_modified": bool(record.last_modified),
            },
        )

    def touch(self, url: str, checked_at: Optional[datetime] = None) -> bool:
        """Record that ``url`` was revalidated without new content.

        Only ``checked_at`` changes; the validators and ``recorded_at`` keep
        describing the content that was actually received.

        Returns:
            True if a record existed and was updated
        """
        with self._write_lock:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    "UPDATE cache_records SET checked_at = ? WHERE url = ?",
                    (_iso(checked_at or utc_now()), url),
                )
                return cursor.rowcount > 0

    def all_records(self) -> List[CacheRecord]:
        """List every record ordered by URL."""
        rows = self.db.execute_query("SELECT * FROM cache_records ORDER BY url")
        return [CacheRecord.from_db_row(row) for row in rows]

    def delete(self, url: str) -> bool:
        """Forget the record for ``url``. Used by the ``cache --clear`` command."""
        with self._write_lock:
            return self.db.execute_update(
                "DELETE FROM cache_records WHERE url = ?", (url,)
            ) > 0
