# =============================================================================
# ledger_core/offline/sync_engine.py
# Synchronization Engine (push change log, pull remote data)
# =============================================================================
"""
SyncEngine - Reconciles the local SQLite mirror with Supabase.

A sync cycle has two phases:
1. Push: replay unsynced change log entries against Supabase in append order.
   A failing entry is recorded and skipped; the batch continues.
2. Pull: refresh the local mirror from Supabase for one profile or for every
   known profile. Pulled rows are written with synced=1.

Features:
- At most one cycle at a time (concurrent triggers are rejected)
- Probe gating: nothing is sent when the remote store doesn't answer
- Periodic background sync while online
- Automatic sync when the connection comes back
"""

from __future__ import annotations
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from ledger_core.errors import RemoteError, SyncError
from ledger_core.logging import LogContext
from ledger_core.models import ChangeAction, ChangeLogEntry, ENTITY_TYPES, utc_now
from ledger_core.offline.connection_manager import ConnectionState, ConnectionStatus

logger = logging.getLogger(__name__)

MSG_IN_PROGRESS = "Sync already in progress"
MSG_OFFLINE = "Cannot connect to server - working offline"
MSG_SUCCESS = "Sync completed successfully"

LAST_SYNC_SETTING = "last_sync_at"


class SyncState(Enum):
    """Sync engine status."""
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class SyncResult:
    """Outcome of one trigger_sync() call."""
    success: bool
    message: str
    pushed: int = 0
    failed: int = 0
    pulled: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SyncEngine:
    """
    Synchronization engine between local SQLite and Supabase.

    Usage:
        engine = SyncEngine(local_db, remote, connection_manager)
        engine.start()                 # periodic + reconnect sync
        result = engine.trigger_sync() # manual sync
    """

    # Configuration
    SYNC_INTERVAL = 30          # Seconds between periodic sync attempts
    STATUS_RESET_SECONDS = 3    # SUCCESS/ERROR read back as IDLE after this

    def __init__(
        self,
        local_db,
        remote,
        connection_manager,
        sync_interval: Optional[int] = None,
        change_log_retention_days: Optional[int] = None,
        auto_sync: bool = True,
        auto_sync_in_background: bool = True,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            local_db: LocalDatabase
            remote: SupabaseRemote
            connection_manager: ConnectionManager used for probe gating
            sync_interval: Seconds between periodic syncs
            change_log_retention_days: Prune synced entries older than this
            auto_sync: Enable periodic and reconnect syncs in start()
            auto_sync_in_background: Run reconnect syncs on a daemon thread
            clock: Monotonic time source
        """
        self.local_db = local_db
        self.remote = remote
        self.connection_manager = connection_manager
        self.sync_interval = sync_interval or self.SYNC_INTERVAL
        self.change_log_retention_days = change_log_retention_days
        self.auto_sync = auto_sync
        self.auto_sync_in_background = auto_sync_in_background
        self._clock = clock or time.monotonic

        self._cycle_lock = threading.Lock()
        self._status = SyncState.IDLE
        self._status_changed_at = self._clock()
        self.last_result: Optional[SyncResult] = None

        self._sync_thread: Optional[threading.Thread] = None
        self._stop_sync = threading.Event()
        self._callbacks: List[Callable[[SyncState], None]] = []
        self._subscribed = False

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def status(self) -> SyncState:
        """Current status; SUCCESS and ERROR decay to IDLE."""
        if self._status in (SyncState.SUCCESS, SyncState.ERROR):
            if self._clock() - self._status_changed_at >= self.STATUS_RESET_SECONDS:
                return SyncState.IDLE
        return self._status

    @property
    def is_syncing(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def pending_count(self) -> int:
        """Get count of unsynced change log entries."""
        return self.local_db.get_pending_count()

    def _set_status(self, status: SyncState) -> None:
        self._status = status
        self._status_changed_at = self._clock()
        self._notify_callbacks()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, periodic: bool = True) -> None:
        """
        Subscribe to connection changes and optionally start periodic sync.

        Args:
            periodic: Whether to start the background sync loop
        """
        if not self.auto_sync:
            logger.info("Automatic sync disabled; sync runs on demand only")
            return

        if not self._subscribed:
            self.connection_manager.register_callback(self._on_connection_change)
            self._subscribed = True

        if not periodic or (self._sync_thread is not None and self._sync_thread.is_alive()):
            return

        self._stop_sync.clear()
        self._sync_thread = threading.Thread(
            target=self._sync_loop,
            daemon=True,
            name="SyncEngine"
        )
        self._sync_thread.start()
        logger.info("Sync engine started")

    def stop(self) -> None:
        """Stop background sync and unsubscribe from connection changes."""
        self._stop_sync.set()
        if self._sync_thread:
            self._sync_thread.join(timeout=10)
            self._sync_thread = None
        if self._subscribed:
            self.connection_manager.unregister_callback(self._on_connection_change)
            self._subscribed = False
        logger.info("Sync engine stopped")

    def _sync_loop(self) -> None:
        """Background sync loop."""
        while not self._stop_sync.is_set():
            # Wait for interval or stop signal
            if self._stop_sync.wait(timeout=self.sync_interval):
                break

            if self.connection_manager.is_online:
                result = self.trigger_sync()
                logger.debug(f"Periodic sync: {result.message}")

    def _on_connection_change(self, state: ConnectionState) -> None:
        """Handle connection status changes."""
        if state.status != ConnectionStatus.ONLINE:
            return

        logger.info("Connection restored, triggering sync")
        if self.auto_sync_in_background:
            threading.Thread(
                target=self.trigger_sync,
                daemon=True,
                name="SyncEngineReconnect"
            ).start()
        else:
            self.trigger_sync()

    # =========================================================================
    # SYNC CYCLE
    # =========================================================================

    def trigger_sync(self, profile_id: Optional[str] = None) -> SyncResult:
        """
        Run one sync cycle.

        Args:
            profile_id: Pull only this profile (default: every profile)

        Returns:
            SyncResult; never raises
        """
        if not self._cycle_lock.acquire(blocking=False):
            return SyncResult(success=False, message=MSG_IN_PROGRESS)

        try:
            self._set_status(SyncState.SYNCING)
            result = self._run_cycle(profile_id)
            self._finish(result)
            return result
        finally:
            self._cycle_lock.release()

    def _run_cycle(self, profile_id: Optional[str]) -> SyncResult:
        try:
            self.connection_manager.check_connection()
        except Exception as e:
            logger.error(f"Connection check failed before sync: {e}", exc_info=True)
            return SyncResult(success=False, message=f"Sync failed: {e}")

        if not self.connection_manager.is_online:
            return SyncResult(success=False, message=MSG_OFFLINE)

        try:
            with LogContext(logger, "Sync cycle"):
                pushed, failed = self.push_local_changes()
                pulled = self.pull_remote_data(profile_id)
                self.local_db.set_setting(LAST_SYNC_SETTING, utc_now())
                if self.change_log_retention_days is not None:
                    self.local_db.change_log.prune_synced(self.change_log_retention_days)
        except Exception as e:
            return SyncResult(success=False, message=f"Sync failed: {e}")

        return SyncResult(
            success=True,
            message=MSG_SUCCESS,
            pushed=pushed,
            failed=failed,
            pulled=pulled,
        )

    def _finish(self, result: SyncResult) -> None:
        self.last_result = result
        self._set_status(SyncState.SUCCESS if result.success else SyncState.ERROR)

    # =========================================================================
    # PUSH
    # =========================================================================

    def push_local_changes(self) -> Tuple[int, int]:
        """
        Replay every unsynced change log entry in append order.

        Returns:
            (pushed, failed) entry counts
        """
        entries = self.local_db.change_log.get_unsynced()
        if not entries:
            return 0, 0

        logger.info(f"Pushing {len(entries)} change log entries")
        synced_ids: List[int] = []
        failed = 0

        for entry in entries:
            try:
                self._replay(entry)
            except (RemoteError, SyncError) as e:
                logger.warning(
                    f"Replay failed for entry {entry.id} "
                    f"({entry.action.value} {entry.table_name}/{entry.record_id}): {e}"
                )
                self.local_db.change_log.record_failure(entry.id, str(e))
                failed += 1
            else:
                synced_ids.append(entry.id)

        self.local_db.change_log.mark_synced(synced_ids)
        logger.info(f"Push complete: {len(synced_ids)} synced, {failed} failed")
        return len(synced_ids), failed

    def _replay(self, entry: ChangeLogEntry) -> None:
        """Send one entry to Supabase."""
        table = entry.table_name
        if table not in ENTITY_TYPES:
            raise SyncError(f"No replay handler for table {table}", entry_id=entry.id, table=table)

        if entry.action == ChangeAction.DELETE:
            self.remote.delete(table, {"id": entry.record_id})
            return

        row = self.local_db.get(table, entry.record_id)
        if row is None:
            # Deleted locally after this entry was written; the later delete
            # entry carries the change
            logger.debug(f"Settling {entry.action.value} for missing {table}/{entry.record_id}")
            return

        entity = ENTITY_TYPES[table].from_row(row)
        if entry.action == ChangeAction.CREATE:
            self.remote.upsert(table, entity.to_record())
        else:
            self.remote.update(table, {"id": entity.id}, entity.update_fields())

        self.local_db.mark_record_synced(table, entity.id)

    # =========================================================================
    # PULL
    # =========================================================================

    def pull_remote_data(self, profile_id: Optional[str] = None) -> int:
        """
        Refresh the local mirror from Supabase.

        Rows that still have unsynced local changes are left alone.

        Args:
            profile_id: Pull only this profile (default: every profile)

        Returns:
            Number of rows written locally
        """
        pulled = 0

        if profile_id:
            profiles = self.remote.select("profiles", filters={"id": profile_id})
            pulled += self._store("profiles", profiles)
            profile_ids = [profile_id]
        else:
            pulled += self._store("profiles", self.remote.select("profiles"))
            profile_ids = [row["id"] for row in self.local_db.query("profiles")]

        for pid in profile_ids:
            pulled += self._pull_profile(pid)

        logger.info(f"Pulled {pulled} rows for {len(profile_ids)} profile(s)")
        return pulled

    def _pull_profile(self, profile_id: str) -> int:
        pulled = 0
        customers = self.remote.select("customers", filters={"profile_id": profile_id})
        pulled += self._store("customers", customers)

        customer_ids = [row["id"] for row in customers]
        installments = self.remote.select("installments", in_filters={"customer_id": customer_ids})
        pulled += self._store("installments", installments)

        for table in ("projects", "investments"):
            rows = self.remote.select(table, filters={"profile_id": profile_id})
            pulled += self._store(table, rows)

        return pulled

    def _store(self, table: str, rows: List[Dict[str, Any]]) -> int:
        # upsert_synced() refuses rows with unsynced local changes
        return sum(1 for row in rows if self.local_db.upsert_synced(table, row))

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync status changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        """Notify all registered callbacks."""
        for callback in list(self._callbacks):
            try:
                callback(self._status)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}", exc_info=True)

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "status": self.status.value,
            "is_syncing": self.is_syncing,
            "pending_count": self.pending_count,
            "last_sync_at": self.local_db.get_setting(LAST_SYNC_SETTING),
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
