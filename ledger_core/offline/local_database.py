# =============================================================================
# ledger_core/offline/local_database.py
# Local SQLite Mirror for Offline Operations
# =============================================================================
"""
LocalDatabase - SQLite-based local storage that mirrors the Supabase schema.

Features:
- Tables created on first use
- Application writes (put/delete) commit the entity row and its change log
  entry in one transaction
- Pull-phase writes (upsert_synced) bypass the change log
- Thread-local connections
"""

from __future__ import annotations
import sqlite3
import threading
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence
import logging

from ledger_core.errors import LocalStoreError, ValidationError
from ledger_core.models import ChangeAction, ENTITY_TYPES, utc_now
from ledger_core.offline.change_log import ChangeLogRecorder

logger = logging.getLogger(__name__)

# Columns that exist only in the local mirror and are never pushed
LOCAL_ONLY_COLUMNS = ("synced", "last_modified")


class LocalDatabase:
    """
    The on-device copy of every ledger table.

    Column names follow the Supabase tables so rows move between the two as-is.
    Records are keyed by client-generated UUIDs, so an id is valid before
    and after sync.
    """

    DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "local_data" / "ledger.db"

    # One CREATE statement per table; entity columns mirror Supabase
    SCHEMA = {
        "profiles": """
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TEXT,
                synced INTEGER DEFAULT 0,
                last_modified TEXT
            )
        """,
        "customers": """
            CREATE TABLE IF NOT EXISTS customers (
                id TEXT PRIMARY KEY,
                profile_id TEXT NOT NULL,
                name TEXT NOT NULL,
                phone TEXT,
                total_amount REAL NOT NULL,
                installment_amount REAL NOT NULL,
                photo_url TEXT,
                document_url TEXT,
                is_active INTEGER DEFAULT 1,
                created_at TEXT,
                synced INTEGER DEFAULT 0,
                last_modified TEXT
            )
        """,
        "installments": """
            CREATE TABLE IF NOT EXISTS installments (
                id TEXT PRIMARY KEY,
                customer_id TEXT NOT NULL,
                project_id TEXT,
                amount REAL NOT NULL,
                date TEXT NOT NULL,
                created_at TEXT,
                synced INTEGER DEFAULT 0,
                last_modified TEXT
            )
        """,
        "projects": """
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                customer_id TEXT NOT NULL,
                profile_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                total_amount REAL NOT NULL,
                installment_amount REAL NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT,
                is_active INTEGER DEFAULT 1,
                created_at TEXT,
                synced INTEGER DEFAULT 0,
                last_modified TEXT
            )
        """,
        "investments": """
            CREATE TABLE IF NOT EXISTS investments (
                id TEXT PRIMARY KEY,
                profile_id TEXT NOT NULL,
                amount REAL NOT NULL,
                investment_type TEXT NOT NULL,
                description TEXT,
                date TEXT NOT NULL,
                created_at TEXT,
                synced INTEGER DEFAULT 0,
                last_modified TEXT
            )
        """,
        ChangeLogRecorder.TABLE: ChangeLogRecorder.SCHEMA,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT
            )
        """,
    }

    INDEXES = (
        "CREATE INDEX IF NOT EXISTS idx_customers_profile_id ON customers(profile_id)",
        "CREATE INDEX IF NOT EXISTS idx_installments_customer_id ON installments(customer_id)",
        "CREATE INDEX IF NOT EXISTS idx_installments_project_id ON installments(project_id)",
        "CREATE INDEX IF NOT EXISTS idx_installments_date ON installments(date)",
        "CREATE INDEX IF NOT EXISTS idx_projects_profile_id ON projects(profile_id)",
        "CREATE INDEX IF NOT EXISTS idx_projects_customer_id ON projects(customer_id)",
        "CREATE INDEX IF NOT EXISTS idx_investments_profile_id ON investments(profile_id)",
    ) + ChangeLogRecorder.INDEXES

    ENTITY_TABLES = tuple(ENTITY_TYPES)

    def __init__(self, db_path: Optional[Path] = None):
        """
        Open (lazily) the ledger database file.

        Args:
            db_path: SQLite file; defaults to local_data/ledger.db
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self._ensure_directory()
        self._local = threading.local()
        self._initialized = False
        self.change_log = ChangeLogRecorder(self)

    def _ensure_directory(self) -> None:
        """Create the parent folder of the database file."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """One connection per thread, opened on first use."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=10,
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back and raise LocalStoreError on failure."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise LocalStoreError(f"Local database error: {e}", operation="transaction") from e
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Create missing tables and indexes. Safe to call repeatedly."""
        if self._initialized:
            return

        with self.transaction() as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")
            for index in self.INDEXES:
                conn.execute(index)

        self._initialized = True
        logger.info(f"Local database initialized at: {self.db_path}")

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _columns(self, table: str) -> List[str]:
        if table not in ENTITY_TYPES:
            raise ValidationError(f"Unknown table: {table}", field="table", value=table)
        return ENTITY_TYPES[table].field_names() + list(LOCAL_ONLY_COLUMNS)

    def _check_column(self, table: str, column: str) -> str:
        if column not in self._columns(table):
            raise ValidationError(f"Unknown column {table}.{column}", field="column", value=column)
        return column

    # =========================================================================
    # READS
    # =========================================================================

    def fetch_rows(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute a read-only statement and return rows as dicts."""
        try:
            cursor = self._get_connection().execute(sql, list(params or []))
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise LocalStoreError(f"Local query failed: {e}", operation="select") from e

    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Single row by primary key, or None."""
        self._columns(table)
        rows = self.fetch_rows(f"SELECT * FROM {table} WHERE id = ?", [record_id])
        return rows[0] if rows else None

    def query(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        in_filters: Optional[Mapping[str, Sequence[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Filtered read with the same signature as SupabaseRemote.select().

        Args:
            table: Table name
            filters: column -> value equality filters (None matches NULL)
            in_filters: column -> allowed values
            order_by: Column to order by
            descending: Sort order
            limit: Maximum number of rows

        Returns:
            List of row dicts
        """
        self._columns(table)
        clauses: List[str] = []
        params: List[Any] = []

        for column, value in (filters or {}).items():
            self._check_column(table, column)
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(value)

        for column, values in (in_filters or {}).items():
            self._check_column(table, column)
            values = list(values)
            if not values:
                return []
            clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
            params.extend(values)

        sql = f"SELECT * FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_by:
            self._check_column(table, order_by)
            sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))

        return self.fetch_rows(sql, params)

    # =========================================================================
    # WRITES
    # =========================================================================

    def _upsert(
        self,
        conn: sqlite3.Connection,
        table: str,
        record: Dict[str, Any],
        unless_pending: bool = False,
    ) -> int:
        columns = list(record.keys())
        params = [record[c] for c in columns]
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "id")

        sql = f"INSERT INTO {table} ({', '.join(columns)}) SELECT {placeholders}"
        if unless_pending:
            # Single statement, so the guard and the write see the same snapshot
            sql += (
                f" WHERE NOT EXISTS (SELECT 1 FROM {self.change_log.TABLE}"
                " WHERE synced = 0 AND table_name = ? AND record_id = ?)"
            )
            params += [table, record["id"]]
        else:
            sql += " WHERE 1"
        sql += f" ON CONFLICT(id) DO UPDATE SET {updates}" if updates else " ON CONFLICT(id) DO NOTHING"
        return conn.execute(sql, params).rowcount

    def put(
        self,
        table: str,
        record: Mapping[str, Any],
        action: ChangeAction = ChangeAction.CREATE,
    ) -> int:
        """
        Application upsert: entity row plus one change log entry, atomically.

        Args:
            table: Table name
            record: Column values; must include "id"
            action: create or update

        Returns:
            Change log entry id
        """
        if "id" not in record:
            raise ValidationError(f"Record for {table} has no id", field="id")
        data = {self._check_column(table, k): v for k, v in record.items()}
        data["synced"] = 0
        data["last_modified"] = utc_now()

        with self.transaction() as conn:
            self._upsert(conn, table, data)
            return self.change_log.record(conn, table, data["id"], action)

    def delete(self, table: str, record_id: str) -> int:
        """
        Application delete: remove the row and log a delete entry, atomically.

        The entry is logged even when no local row exists, so a record that
        only lives remotely is still deleted on the next push.

        Returns:
            Change log entry id
        """
        self._columns(table)
        with self.transaction() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", [record_id])
            if cursor.rowcount == 0:
                logger.debug(f"Delete of missing local row {table}/{record_id}")
            return self.change_log.record(conn, table, record_id, ChangeAction.DELETE)

    def upsert_synced(self, table: str, record: Mapping[str, Any]) -> bool:
        """
        Pull-phase write of an authoritative remote row. No change log entry.

        Remote-only columns are dropped. A record with an unsynced change log
        entry is left untouched; the pending check is part of the write
        statement, so an application write can't slip in between.

        Returns:
            True if the row was written
        """
        allowed = self._columns(table)
        data = {k: v for k, v in record.items() if k in allowed and k not in LOCAL_ONLY_COLUMNS}
        if "id" not in data:
            raise ValidationError(f"Remote {table} row has no id", field="id")
        data["synced"] = 1
        data["last_modified"] = record.get("created_at")

        with self.transaction() as conn:
            written = self._upsert(conn, table, data, unless_pending=True) > 0
        if not written:
            logger.debug(f"Kept local {table}/{data['id']}: unsynced changes")
        return written

    def mark_record_synced(self, table: str, record_id: str) -> None:
        """Flag a local record as matching the remote store."""
        self._columns(table)
        with self.transaction() as conn:
            conn.execute(f"UPDATE {table} SET synced = 1 WHERE id = ?", [record_id])

    def get_pending_count(self) -> int:
        """Get count of unsynced change log entries."""
        return self.change_log.pending_count()

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Stored value for ``key``; values written before JSON encoding come back raw."""
        rows = self.fetch_rows("SELECT value FROM app_settings WHERE key = ?", [key])
        if rows:
            try:
                return json.loads(rows[0]["value"])
            except json.JSONDecodeError:
                return rows[0]["value"]
        return default

    def set_setting(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` as JSON, so strings like "123" keep their type."""
        value_str = json.dumps(value)
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO app_settings (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, value_str, utc_now()],
            )

    def close(self) -> None:
        """Close this thread's database connection."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None
