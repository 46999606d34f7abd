# =============================================================================
# tests/unit/test_supabase_client.py
# Unit Tests for SupabaseRemote
# =============================================================================

from unittest.mock import MagicMock, call, patch

import httpx
import pytest
from postgrest.exceptions import APIError

from ledger_core.data import SupabaseRemote, create_supabase_client
from ledger_core.errors import (
    RemoteNotConfiguredError,
    RemoteOperationError,
    RemoteUnavailableError,
    ValidationError,
)


class TestSupabaseRemoteSelect:
    """Test paging and filters"""

    def test_select_applies_filters(self, mock_supabase):
        mock_supabase.query.execute.return_value = MagicMock(data=[{"id": "c1"}])
        remote = SupabaseRemote(mock_supabase)

        rows = remote.select(
            "customers",
            filters={"profile_id": "p1", "photo_url": None},
            in_filters={"id": ["c1", "c2"]},
            order_by="created_at",
            descending=True,
        )

        assert rows == [{"id": "c1"}]
        mock_supabase.table.assert_called_with("customers")
        mock_supabase.query.eq.assert_called_with("profile_id", "p1")
        mock_supabase.query.is_.assert_called_with("photo_url", "null")
        mock_supabase.query.in_.assert_called_with("id", ["c1", "c2"])
        mock_supabase.query.order.assert_called_with("created_at", desc=True)

    def test_select_pages_past_row_limit(self, mock_supabase):
        first_page = [{"id": str(i)} for i in range(SupabaseRemote.PAGE_SIZE)]
        mock_supabase.query.execute.side_effect = [
            MagicMock(data=first_page),
            MagicMock(data=[{"id": "last"}]),
        ]
        remote = SupabaseRemote(mock_supabase)

        rows = remote.select("installments")

        assert len(rows) == SupabaseRemote.PAGE_SIZE + 1
        assert mock_supabase.query.range.call_args_list == [call(0, 999), call(1000, 1999)]

    def test_select_respects_limit(self, mock_supabase):
        mock_supabase.query.execute.return_value = MagicMock(data=[{"id": "p1"}])
        remote = SupabaseRemote(mock_supabase)

        remote.select("profiles", columns="id", limit=1)

        mock_supabase.query.select.assert_called_with("id")
        mock_supabase.query.range.assert_called_once_with(0, 0)

    def test_empty_in_filter_skips_request(self, mock_supabase):
        remote = SupabaseRemote(mock_supabase)

        assert remote.select("installments", in_filters={"customer_id": []}) == []
        mock_supabase.query.execute.assert_not_called()

    def test_unknown_table_rejected(self, mock_supabase):
        with pytest.raises(ValidationError):
            SupabaseRemote(mock_supabase).select("payments")


class TestSupabaseRemoteWrites:
    """Test insert/upsert/update/delete"""

    def test_insert_returns_rows(self, mock_supabase):
        mock_supabase.query.execute.return_value = MagicMock(data=[{"id": "p1"}])

        result = SupabaseRemote(mock_supabase).insert("profiles", {"id": "p1", "name": "Shop"})

        assert result == [{"id": "p1"}]
        mock_supabase.query.insert.assert_called_once_with({"id": "p1", "name": "Shop"})

    def test_update_filters_by_id(self, mock_supabase):
        SupabaseRemote(mock_supabase).update("customers", {"id": "c1"}, {"name": "New"})

        mock_supabase.query.update.assert_called_once_with({"name": "New"})
        mock_supabase.query.eq.assert_called_once_with("id", "c1")

    def test_unfiltered_delete_refused(self, mock_supabase):
        with pytest.raises(ValidationError):
            SupabaseRemote(mock_supabase).delete("customers", {})
        mock_supabase.query.delete.assert_not_called()

    def test_unfiltered_update_refused(self, mock_supabase):
        with pytest.raises(ValidationError):
            SupabaseRemote(mock_supabase).update("customers", {}, {"name": "x"})


class TestSupabaseRemoteErrors:
    """Every failure surfaces as a RemoteError subclass"""

    def test_api_error_becomes_operation_error(self, mock_supabase):
        mock_supabase.query.execute.side_effect = APIError({"message": "duplicate key"})

        with pytest.raises(RemoteOperationError) as exc_info:
            SupabaseRemote(mock_supabase).insert("profiles", {"id": "p1", "name": "Shop"})

        assert "duplicate key" in exc_info.value.message
        assert exc_info.value.details["operation"] == "insert"

    def test_transport_error_becomes_unavailable(self, mock_supabase):
        mock_supabase.query.execute.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(RemoteUnavailableError):
            SupabaseRemote(mock_supabase).probe()

    def test_not_configured(self):
        remote = SupabaseRemote(None)

        assert remote.is_configured() is False
        with pytest.raises(RemoteNotConfiguredError):
            remote.select("profiles")

    def test_probe_selects_one_profile(self, mock_supabase):
        assert SupabaseRemote(mock_supabase).probe() is True
        mock_supabase.table.assert_called_with("profiles")


class TestCreateSupabaseClient:
    """Test client construction"""

    def test_missing_credentials(self):
        assert create_supabase_client(None, "key") is None
        assert create_supabase_client("https://x.supabase.co", "") is None

    def test_creation_failure_returns_none(self):
        with patch("supabase.create_client", side_effect=Exception("bad key")):
            assert create_supabase_client("https://x.supabase.co", "key") is None

    def test_from_settings(self, settings):
        with patch("ledger_core.data.supabase_client.create_supabase_client", return_value=None) as factory:
            remote = SupabaseRemote.from_settings(settings)

        factory.assert_called_once_with(settings.supabase_url, settings.supabase_key)
        assert remote.is_configured() is False
