"""
PageFeed Database Schema
========================

SQLite schema for the cache database:
- cache_records: HTTP validators and body fingerprint per source URL
- output_records: what was last written to each output file
"""

import sqlite3
import logging
from pathlib import Path

from ..utils.exceptions import DatabaseError, ErrorCode

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"cache_records", "output_records"}


class DatabaseSchema:
    """Database schema manager for the PageFeed cache database."""

    def __init__(self, db_path: str):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path).expanduser()

    def create_tables(self) -> None:
        """Create all tables and indexes if they do not exist.

        Raises:
            DatabaseError: If the database cannot be opened or altered
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with sqlite3.connect(self.db_path) as conn:
                self._create_cache_records_table(conn)
                self._create_output_records_table(conn)
                self._create_indexes(conn)
                conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise DatabaseError(
                f"Unable to create cache schema in {self.db_path}: {e}",
                error_code=ErrorCode.DATABASE_SCHEMA,
            ) from e

        logger.debug("Database schema ready")

    def _create_cache_records_table(self, conn: sqlite3.Connection) -> None:
        """Validators and fingerprint of the last body seen per URL."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS cache_records (
                url TEXT PRIMARY KEY,
                etag TEXT,
                last_modified TIMESTAMP,
                content_fingerprint TEXT NOT NULL,
                recorded_at TIMESTAMP NOT NULL,
                checked_at TIMESTAMP NOT NULL
            )
        """
        )

    def _create_output_records_table(self, conn: sqlite3.Connection) -> None:
        """Fingerprint and provenance of the last write per output filename."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS output_records (
                filename TEXT PRIMARY KEY,
                fingerprint TEXT NOT NULL,
                source_url TEXT NOT NULL,
                source_fingerprint TEXT NOT NULL,
                definition_hash TEXT NOT NULL,
                version TEXT NOT NULL,
                written_at TIMESTAMP NOT NULL
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_output_records_source "
            "ON output_records(source_url)"
        )

    def verify_schema(self) -> bool:
        """Check that every expected table exists."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}
        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False

        missing = EXPECTED_TABLES - tables
        if missing:
            logger.error(f"Missing tables: {sorted(missing)}")
            return False

        return True
