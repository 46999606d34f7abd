# =============================================================================
# ledger_core/offline/__init__.py
# Offline-First Architecture for the Installment Ledger
# =============================================================================
"""
Offline-First Architecture Module

The ledger works the same whether Supabase is reachable or not.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE-FIRST ARCHITECTURE                    │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                 UnifiedDataService                        │  │
│   │         (Single API - the UI uses this only)              │  │
│   └──────────────────────────────────────────────────────────┘  │
│                            │                                     │
│                 ┌──────────┴──────────┐                          │
│                 ▼                     ▼                          │
│        ┌──────────────────┐  ┌──────────────────┐                │
│        │  ConnectionMgr   │  │    SyncEngine    │                │
│        │  (Online/Offline)│  │  (Push / Pull)   │                │
│        └──────────────────┘  └──────────────────┘                │
│                 │                     │                          │
│            ┌────┴─────┐        ┌──────┴──────────┐               │
│            ▼          ▼        ▼                 ▼               │
│        ┌────────┐        ┌──────────┐   ┌────────────────┐       │
│        │Supabase│◄──────►│  SQLite  │──►│  Change Log    │       │
│        │(Cloud) │  Sync  │ (Local)  │   │ (sync_metadata)│       │
│        └────────┘        └──────────┘   └────────────────┘       │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from ledger_core.config import load_settings
from ledger_core.offline import build_data_service

service = build_data_service(load_settings())
service.start()

accounts = service.get_customers(profile_id)
service.add_installment(customer_id, 50, "2024-01-10")
print(service.is_online, service.pending_sync_count)
"""

from typing import Callable, Optional

from ledger_core.data.supabase_client import SupabaseRemote

from ledger_core.offline.change_log import ChangeLogRecorder

from ledger_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)

from ledger_core.offline.local_database import LocalDatabase

from ledger_core.offline.sync_engine import (
    SyncEngine,
    SyncResult,
    SyncState,
)

from ledger_core.offline.unified_data_service import UnifiedDataService


def build_data_service(
    settings,
    remote: Optional[SupabaseRemote] = None,
    internet_check: Optional[Callable[[], bool]] = None,
    auto_sync_in_background: bool = True,
) -> UnifiedDataService:
    """
    Wire the local store, remote client, connection monitor and sync
    engine into a data service. Nothing is started.

    Args:
        settings: AppSettings
        remote: SupabaseRemote to use (default: built from settings)
        internet_check: Platform reachability hint for the ConnectionManager
        auto_sync_in_background: Run reconnect syncs on a daemon thread

    Returns:
        UnifiedDataService
    """
    local_db = LocalDatabase(settings.db_path)
    local_db.initialize()

    remote = remote if remote is not None else SupabaseRemote.from_settings(settings)

    connection_manager = ConnectionManager(
        remote,
        internet_check=internet_check,
        check_interval_online=settings.check_interval_online,
        check_interval_offline=settings.check_interval_offline,
        connection_timeout=settings.connection_timeout,
    )

    sync_engine = SyncEngine(
        local_db,
        remote,
        connection_manager,
        sync_interval=settings.sync_interval,
        change_log_retention_days=settings.change_log_retention_days,
        auto_sync=settings.auto_sync,
        auto_sync_in_background=auto_sync_in_background,
    )

    return UnifiedDataService(local_db, remote, connection_manager, sync_engine)


__all__ = [
    # Connection Management
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    # Local Database
    "LocalDatabase",
    "ChangeLogRecorder",
    # Sync Engine
    "SyncEngine",
    "SyncResult",
    "SyncState",
    # Unified Service (Main API)
    "UnifiedDataService",
    "build_data_service",
]
