# =============================================================================
# ledger_core/data/supabase_client.py
# Supabase Client for the Installment Ledger
# Handles the remote connection and CRUD operations
# =============================================================================
"""
SupabaseRemote - Typed wrapper over supabase-py for the ledger tables.

Unlike a UI-facing service, every failure is raised as a RemoteError
subclass so the data facade and the sync engine can decide what to do:

    RemoteNotConfiguredError  no credentials / no client
    RemoteOperationError      PostgREST rejected the request
    RemoteUnavailableError    transport failure (DNS, timeout, refused)
"""

from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging

import httpx
from postgrest.exceptions import APIError

from ledger_core.errors import (
    RemoteNotConfiguredError,
    RemoteOperationError,
    RemoteUnavailableError,
    ValidationError,
)
from ledger_core.models import ENTITY_TYPES

logger = logging.getLogger(__name__)


def create_supabase_client(url: Optional[str], key: Optional[str]):
    """
    Create a supabase-py client.

    Returns:
        Supabase client instance or None if not configured
    """
    if not (url and key):
        return None

    from supabase import create_client, Client

    try:
        client: Client = create_client(url, key)
        return client
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {e}")
        return None


class SupabaseRemote:
    """
    Remote store client for profiles, customers, installments, projects
    and investments.
    """

    PAGE_SIZE = 1000  # PostgREST default max rows per request
    PROBE_TABLE = "profiles"

    def __init__(self, client=None):
        """
        Args:
            client: supabase-py Client (None means not configured)
        """
        self.client = client

    @classmethod
    def from_settings(cls, settings) -> SupabaseRemote:
        """Build from AppSettings credentials."""
        return cls(create_supabase_client(settings.supabase_url, settings.supabase_key))

    def is_configured(self) -> bool:
        """Check if a Supabase client is available."""
        return self.client is not None

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _require_client(self):
        if self.client is None:
            raise RemoteNotConfiguredError()
        return self.client

    @staticmethod
    def _check_table(table: str) -> None:
        if table not in ENTITY_TYPES:
            raise ValidationError(f"Unknown table: {table}", field="table", value=table)

    @staticmethod
    def _execute(query, table: str, operation: str):
        try:
            return query.execute()
        except APIError as e:
            message = getattr(e, "message", None) or str(e)
            raise RemoteOperationError(
                f"Supabase rejected {operation} on {table}: {message}",
                table=table,
                operation=operation,
            ) from e
        except (httpx.HTTPError, OSError) as e:
            raise RemoteUnavailableError(
                f"Supabase unreachable during {operation} on {table}: {e}",
                table=table,
                operation=operation,
            ) from e

    @staticmethod
    def _apply_filters(query, filters: Optional[Mapping[str, Any]]):
        for col, val in (filters or {}).items():
            query = query.is_(col, "null") if val is None else query.eq(col, val)
        return query

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        in_filters: Optional[Mapping[str, Sequence[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        columns: str = "*",
    ) -> List[Dict[str, Any]]:
        """
        Fetch rows (handles the Supabase 1000 row limit).

        Args:
            table: Table name
            filters: column -> value equality filters (None matches NULL)
            in_filters: column -> allowed values
            order_by: Column to order by
            descending: Sort order
            limit: Maximum number of rows
            columns: Column list for the select clause

        Returns:
            List of row dicts
        """
        self._check_table(table)
        client = self._require_client()

        in_filters = {col: list(values) for col, values in (in_filters or {}).items()}
        if any(not values for values in in_filters.values()):
            return []

        all_data: List[Dict[str, Any]] = []
        offset = 0

        while True:
            batch_size = self.PAGE_SIZE if limit is None else min(self.PAGE_SIZE, limit - len(all_data))
            if batch_size <= 0:
                break

            query = self._apply_filters(client.table(table).select(columns), filters)
            for col, values in in_filters.items():
                query = query.in_(col, values)
            if order_by:
                query = query.order(order_by, desc=descending)

            query = query.range(offset, offset + batch_size - 1)
            response = self._execute(query, table, "select")

            data = response.data or []
            all_data.extend(data)
            # Fewer than batch_size means we've reached the end
            if len(data) < batch_size:
                break
            offset += batch_size

        return all_data

    def insert(self, table: str, row: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """Insert a single record. Returns the inserted rows."""
        self._check_table(table)
        query = self._require_client().table(table).insert(dict(row))
        return self._execute(query, table, "insert").data or []

    def upsert(self, table: str, row: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """Insert or update a record by primary key."""
        self._check_table(table)
        query = self._require_client().table(table).upsert(dict(row))
        return self._execute(query, table, "upsert").data or []

    def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> List[Dict[str, Any]]:
        """Update records matching filters. Unfiltered updates are refused."""
        self._check_table(table)
        if not filters:
            raise ValidationError(f"Refusing unfiltered update on {table}", field="filters")
        query = self._apply_filters(self._require_client().table(table).update(dict(patch)), filters)
        return self._execute(query, table, "update").data or []

    def delete(self, table: str, filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """Delete records matching filters. Unfiltered deletes are refused."""
        self._check_table(table)
        if not filters:
            raise ValidationError(f"Refusing unfiltered delete on {table}", field="filters")
        query = self._apply_filters(self._require_client().table(table).delete(), filters)
        return self._execute(query, table, "delete").data or []

    def probe(self) -> bool:
        """
        Authoritative reachability check: select one profile id.

        Raises:
            RemoteError: when the remote store cannot answer
        """
        self.select(self.PROBE_TABLE, columns="id", limit=1)
        return True
