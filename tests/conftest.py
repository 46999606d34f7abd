# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import copy
import threading
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from ledger_core.config import AppSettings
from ledger_core.errors import RemoteOperationError, RemoteUnavailableError, ValidationError
from ledger_core.models import ENTITY_TYPES
from ledger_core.offline import (
    ConnectionManager,
    LocalDatabase,
    SyncEngine,
    UnifiedDataService,
)


# =============================================================================
# FAKES
# =============================================================================

class InMemoryRemote:
    """
    Stand-in for SupabaseRemote backed by dicts.

    - reachable=False makes every call raise RemoteUnavailableError
    - fail_ids makes writes touching those record ids raise RemoteOperationError
    - block_upserts holds upsert() until release is set (concurrency tests)
    - calls records (operation, table, record_id) for every write
    """

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in ENTITY_TYPES}
        self.reachable = True
        self.fail_ids = set()
        self.calls: List[tuple] = []
        self.block_upserts = False
        self.upsert_entered = threading.Event()
        self.release = threading.Event()

    # -- helpers ---------------------------------------------------------------

    def seed(self, table: str, row: Dict[str, Any]) -> None:
        self.tables[table][row["id"]] = dict(row)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.tables[table].values()]

    def write_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("insert", "upsert", "update", "delete")]

    def _check(self, operation: str, table: str, record_id: Optional[str] = None) -> None:
        if table not in self.tables:
            raise ValidationError(f"Unknown table: {table}")
        if not self.reachable:
            raise RemoteUnavailableError("network down", table=table, operation=operation)
        if record_id is not None and record_id in self.fail_ids:
            raise RemoteOperationError("rejected", table=table, operation=operation)

    @staticmethod
    def _matches(row, filters, in_filters) -> bool:
        for col, val in (filters or {}).items():
            if row.get(col) != val:
                return False
        for col, values in (in_filters or {}).items():
            if row.get(col) not in list(values):
                return False
        return True

    # -- SupabaseRemote surface -----------------------------------------------

    def select(self, table, filters=None, in_filters=None, order_by=None,
               descending=False, limit=None, columns="*"):
        self._check("select", table)
        self.calls.append(("select", table, None))
        if in_filters and any(not list(v) for v in in_filters.values()):
            return []
        rows = [copy.deepcopy(r) for r in self.tables[table].values()
                if self._matches(r, filters, in_filters)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        if limit:
            rows = rows[:limit]
        return rows

    def insert(self, table, row):
        self._check("insert", table, row.get("id"))
        self.calls.append(("insert", table, row["id"]))
        if row["id"] in self.tables[table]:
            raise RemoteOperationError("duplicate key", table=table, operation="insert")
        self.tables[table][row["id"]] = dict(row)
        return [dict(row)]

    def upsert(self, table, row):
        self._check("upsert", table, row.get("id"))
        if self.block_upserts:
            self.upsert_entered.set()
            self.release.wait(timeout=5)
        self.calls.append(("upsert", table, row["id"]))
        self.tables[table][row["id"]] = dict(row)
        return [dict(row)]

    def update(self, table, filters, patch):
        record_id = filters.get("id")
        self._check("update", table, record_id)
        self.calls.append(("update", table, record_id))
        updated = []
        for row in self.tables[table].values():
            if self._matches(row, filters, None):
                row.update(patch)
                updated.append(dict(row))
        return updated

    def delete(self, table, filters):
        record_id = filters.get("id")
        self._check("delete", table, record_id)
        self.calls.append(("delete", table, record_id))
        doomed = [rid for rid, row in self.tables[table].items() if self._matches(row, filters, None)]
        return [self.tables[table].pop(rid) for rid in doomed]

    def probe(self):
        self._check("select", "profiles")
        return True


class NetworkHint:
    """Injectable internet_check for ConnectionManager."""

    def __init__(self, up: bool = True):
        self.up = up

    def __call__(self) -> bool:
        return self.up


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# CORE FIXTURES
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    """File-backed DB so worker threads see the same data"""
    return tmp_path / "ledger.db"


@pytest.fixture
def settings(db_path):
    return AppSettings(db_path=db_path)


@pytest.fixture
def local_db(db_path):
    db = LocalDatabase(db_path)
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def remote():
    return InMemoryRemote()


@pytest.fixture
def network():
    return NetworkHint(up=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def connection_manager(remote, network):
    return ConnectionManager(remote, internet_check=network)


@pytest.fixture
def sync_engine(local_db, remote, connection_manager, clock):
    return SyncEngine(
        local_db,
        remote,
        connection_manager,
        auto_sync_in_background=False,
        clock=clock,
    )


@pytest.fixture
def data_service(local_db, remote, connection_manager, sync_engine):
    return UnifiedDataService(local_db, remote, connection_manager, sync_engine)


@pytest.fixture
def online_service(data_service):
    """Data service after a successful connection check"""
    data_service.connection_manager.check_connection()
    assert data_service.is_online
    return data_service


@pytest.fixture
def offline_service(data_service, remote, network):
    """Data service with the remote unreachable and no network"""
    remote.reachable = False
    network.up = False
    data_service.connection_manager.check_connection()
    assert not data_service.is_online
    return data_service


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_profile():
    return {"id": "prof-1", "name": "Main Shop", "created_at": "2024-01-01T00:00:00+00:00"}


@pytest.fixture
def sample_customer():
    return {
        "id": "cust1",
        "profile_id": "prof-1",
        "name": "Amina",
        "phone": "0700000000",
        "total_amount": 100.0,
        "installment_amount": 10.0,
        "photo_url": None,
        "document_url": None,
        "is_active": True,
        "created_at": "2024-01-02T00:00:00+00:00",
    }


# =============================================================================
# MOCK FIXTURES
# =============================================================================

def make_query_mock(data=None):
    """A PostgREST query builder whose chain methods return itself"""
    query = MagicMock()
    for method in ("select", "insert", "upsert", "update", "delete",
                   "eq", "is_", "in_", "order", "range", "limit"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data if data is not None else [])
    return query


@pytest.fixture
def mock_supabase():
    """Mock Supabase client; client.table(...) returns one chainable query"""
    mock_client = MagicMock()
    mock_client.query = make_query_mock()
    mock_client.table.return_value = mock_client.query
    return mock_client
