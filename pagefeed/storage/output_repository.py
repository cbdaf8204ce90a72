"""
Output Repository
=================

Ledger of the last output written for each feed filename. The orchestrator
compares new output fingerprints against it to skip identical writes, and
uses its provenance fields to decide whether conditional requests are safe.
"""

import threading
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import OutputRecord
from ..utils.logging import get_logger_for_component


class OutputLedger:
    """Repository for output records keyed by output filename."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("output_ledger")
        self._write_lock = threading.Lock()

    def lookup(self, filename: str) -> Optional[OutputRecord]:
        row = self.db.execute_one(
            "SELECT * FROM output_records WHERE filename = ?", (filename,)
        )
        return OutputRecord.from_db_row(row) if row else None

    def record(self, entry: OutputRecord) -> None:
        """Insert or replace the entry for ``entry.filename``."""
        with self._write_lock:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO output_records (
                        filename, fingerprint, source_url, source_fingerprint,
                        definition_hash, version, written_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        entry.filename,
                        entry.fingerprint,
                        entry.source_url,
                        entry.source_fingerprint,
                        entry.definition_hash,
                        entry.version,
                        entry.written_at.isoformat(),
                    ),
                )

        self.logger.debug(f"Recorded output {entry.filename}")

    def all_records(self) -> List[OutputRecord]:
        rows = self.db.execute_query("SELECT * FROM output_records ORDER BY filename")
        return [OutputRecord.from_db_row(row) for row in rows]

    def delete(self, filename: str) -> bool:
        with self._write_lock:
            return self.db.execute_update(
                "DELETE FROM output_records WHERE filename = ?", (filename,)
            ) > 0
