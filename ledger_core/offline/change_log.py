# =============================================================================
# ledger_core/offline/change_log.py
# Change Log Recorder (sync_metadata table)
# =============================================================================
"""
ChangeLogRecorder - Append-only record of local mutations awaiting replication.

Every application write to the local store appends one entry here inside the
same SQLite transaction as the entity write. Entries start unsynced and are
flipped once the SyncEngine confirms the remote replay. Entries are never
deduplicated: three updates to one record are three entries, replayed in
append order.
"""

from __future__ import annotations
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional
import logging

from ledger_core.models import ChangeAction, ChangeLogEntry, utc_now

logger = logging.getLogger(__name__)


class ChangeLogRecorder:
    """
    Reads and writes the change log through a LocalDatabase.

    The recorder never opens its own transaction for record(); callers pass
    the connection of the transaction that performs the entity write.
    """

    TABLE = "sync_metadata"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS sync_metadata (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            table_name TEXT NOT NULL,
            record_id TEXT NOT NULL,
            action TEXT NOT NULL CHECK (action IN ('create', 'update', 'delete')),
            timestamp TEXT NOT NULL,
            synced INTEGER NOT NULL DEFAULT 0,
            attempts INTEGER NOT NULL DEFAULT 0,
            last_error TEXT
        )
    """

    INDEXES = (
        "CREATE INDEX IF NOT EXISTS idx_sync_metadata_synced ON sync_metadata(synced)",
        "CREATE INDEX IF NOT EXISTS idx_sync_metadata_record ON sync_metadata(table_name, record_id)",
    )

    def __init__(self, database):
        """
        Args:
            database: LocalDatabase providing transaction() and fetch_rows()
        """
        self._db = database

    def record(
        self,
        conn: sqlite3.Connection,
        table: str,
        record_id: str,
        action: ChangeAction,
    ) -> int:
        """
        Append an unsynced entry within the caller's transaction.

        Returns:
            The new entry id
        """
        cursor = conn.execute(
            f"""
            INSERT INTO {self.TABLE} (table_name, record_id, action, timestamp, synced)
            VALUES (?, ?, ?, ?, 0)
            """,
            [table, record_id, ChangeAction(action).value, utc_now()],
        )
        logger.debug(f"Change logged: {action} {table}/{record_id}")
        return cursor.lastrowid

    def get_unsynced(self, limit: Optional[int] = None) -> List[ChangeLogEntry]:
        """Unsynced entries in append order (oldest first)."""
        sql = f"SELECT * FROM {self.TABLE} WHERE synced = 0 ORDER BY id ASC"
        params: list = []
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        return [ChangeLogEntry.from_row(row) for row in self._db.fetch_rows(sql, params)]

    def entries_for(self, table: str, record_id: str) -> List[ChangeLogEntry]:
        """Every entry ever recorded for one record, oldest first."""
        rows = self._db.fetch_rows(
            f"SELECT * FROM {self.TABLE} WHERE table_name = ? AND record_id = ? ORDER BY id ASC",
            [table, record_id],
        )
        return [ChangeLogEntry.from_row(row) for row in rows]

    def mark_synced(self, entry_ids: Iterable[int]) -> int:
        """Bulk-flip entries to synced. Returns the number of rows changed."""
        ids = list(entry_ids)
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        with self._db.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE {self.TABLE} SET synced = 1, last_error = NULL WHERE id IN ({placeholders})",
                ids,
            )
            return cursor.rowcount

    def record_failure(self, entry_id: int, error: str) -> None:
        """Note a failed replay; the entry stays unsynced for the next cycle."""
        with self._db.transaction() as conn:
            conn.execute(
                f"UPDATE {self.TABLE} SET attempts = attempts + 1, last_error = ? WHERE id = ?",
                [error, entry_id],
            )

    def pending_count(self) -> int:
        rows = self._db.fetch_rows(f"SELECT COUNT(*) AS count FROM {self.TABLE} WHERE synced = 0")
        return rows[0]["count"] if rows else 0

    def prune_synced(self, older_than_days: int) -> int:
        """
        Delete synced entries older than the cutoff. Unsynced entries are
        always kept.

        Returns:
            Number of entries removed
        """
        cutoff = (datetime.now(timezone.utc) - timedelta(days=older_than_days)).isoformat()
        with self._db.transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM {self.TABLE} WHERE synced = 1 AND timestamp < ?",
                [cutoff],
            )
            removed = cursor.rowcount

        if removed:
            logger.info(f"Pruned {removed} synced change log entries older than {older_than_days} days")
        return removed
