# =============================================================================
# tests/unit/test_connection_manager.py
# Unit Tests for ConnectionManager
# =============================================================================

from unittest.mock import MagicMock

import pytest

from ledger_core.errors import RemoteUnavailableError
from ledger_core.offline import ConnectionManager, ConnectionStatus
from ledger_core.offline.connection_manager import default_internet_check


class TestConnectionStatus:
    """The remote probe decides ONLINE; the hint decides the rest"""

    def test_initial_state_is_unknown(self, connection_manager):
        assert connection_manager.status is ConnectionStatus.UNKNOWN
        assert connection_manager.is_online is False

    def test_probe_success_is_online(self, connection_manager):
        state = connection_manager.check_connection()

        assert state.status is ConnectionStatus.ONLINE
        assert connection_manager.has_supabase is True

    def test_probe_success_wins_over_network_hint(self, connection_manager, network):
        network.up = False

        assert connection_manager.check_connection().status is ConnectionStatus.ONLINE

    def test_probe_failure_with_network_is_degraded(self, connection_manager, remote):
        remote.reachable = False

        state = connection_manager.check_connection()

        assert state.status is ConnectionStatus.DEGRADED
        assert connection_manager.has_internet is True
        assert connection_manager.is_online is False
        assert "network down" in state.error_message

    def test_probe_failure_without_network_is_offline(self, connection_manager, remote, network):
        remote.reachable = False
        network.up = False

        assert connection_manager.check_connection().status is ConnectionStatus.OFFLINE
        assert connection_manager.is_offline is True

    def test_hint_raising_counts_as_no_network(self):
        remote = MagicMock()
        remote.probe.side_effect = RemoteUnavailableError("down")

        def broken_hint():
            raise OSError("no route")

        manager = ConnectionManager(remote, internet_check=broken_hint)

        assert manager.check_connection().status is ConnectionStatus.OFFLINE

    def test_consecutive_failures_reset_when_online(self, connection_manager, remote):
        remote.reachable = False
        connection_manager.check_connection()
        connection_manager.check_connection()
        assert connection_manager.state.consecutive_failures == 2

        remote.reachable = True
        connection_manager.check_connection()
        assert connection_manager.state.consecutive_failures == 0
        assert connection_manager.state.last_online is not None


class TestConnectionCallbacks:
    """Callbacks fire on transitions only"""

    def test_callback_fires_once_per_change(self, connection_manager, remote):
        seen = []
        connection_manager.register_callback(lambda state: seen.append(state.status))

        connection_manager.check_connection()
        connection_manager.check_connection()
        remote.reachable = False
        connection_manager.check_connection()

        assert seen == [ConnectionStatus.ONLINE, ConnectionStatus.DEGRADED]

    def test_duplicate_registration_ignored(self, connection_manager):
        callback = MagicMock()
        connection_manager.register_callback(callback)
        connection_manager.register_callback(callback)

        connection_manager.check_connection()

        callback.assert_called_once()

    def test_unregister(self, connection_manager):
        callback = MagicMock()
        connection_manager.register_callback(callback)
        connection_manager.unregister_callback(callback)

        connection_manager.check_connection()

        callback.assert_not_called()

    def test_failing_callback_does_not_break_others(self, connection_manager):
        good = MagicMock()
        connection_manager.register_callback(MagicMock(side_effect=RuntimeError("boom")))
        connection_manager.register_callback(good)

        connection_manager.check_connection()

        good.assert_called_once()


class TestNetworkEvents:
    """Platform events and manual overrides"""

    def test_network_lost_goes_offline_without_probe(self, connection_manager, remote):
        connection_manager.check_connection()
        remote.calls.clear()

        state = connection_manager.notify_network_change(False)

        assert state.status is ConnectionStatus.OFFLINE
        assert remote.calls == []

    def test_network_restored_runs_probe(self, connection_manager):
        connection_manager.notify_network_change(False)

        assert connection_manager.notify_network_change(True).status is ConnectionStatus.ONLINE

    def test_force_offline(self, connection_manager):
        connection_manager.check_connection()
        connection_manager.force_offline()

        assert connection_manager.is_offline is True

    def test_status_display(self, connection_manager):
        connection_manager.check_connection()
        display = connection_manager.get_status_display()

        assert display["status"] == "online"
        assert display["is_online"] is True
        assert display["last_check"] is not None


class TestMonitoring:
    """Background thread lifecycle"""

    def test_start_and_stop(self, remote, network):
        manager = ConnectionManager(
            remote, internet_check=network, check_interval_online=1, check_interval_offline=1,
        )

        manager.start(monitor=True)
        assert manager.is_online is True
        assert manager._monitor_thread.is_alive()

        manager.stop()
        assert manager._monitor_thread is None

    def test_start_without_monitor(self, connection_manager):
        connection_manager.start(monitor=False)

        assert connection_manager.is_online is True
        assert connection_manager._monitor_thread is None


class TestDefaultInternetCheck:
    """TCP connect to public resolvers"""

    def test_first_reachable_resolver_wins(self, monkeypatch):
        attempts = []

        def fake_connect(address, timeout):
            attempts.append(address)
            if address[0] == "8.8.8.8":
                raise OSError("unreachable")
            return MagicMock()

        monkeypatch.setattr("socket.create_connection", fake_connect)

        assert default_internet_check(timeout=1) is True
        assert attempts == [("8.8.8.8", 53), ("1.1.1.1", 53)]

    def test_all_unreachable(self, monkeypatch):
        monkeypatch.setattr("socket.create_connection", MagicMock(side_effect=OSError("down")))

        assert default_internet_check(timeout=1) is False

    @pytest.mark.parametrize("interval", [None, 0])
    def test_intervals_fall_back_to_defaults(self, remote, interval):
        manager = ConnectionManager(remote, check_interval_online=interval)

        assert manager.check_interval_online == ConnectionManager.CHECK_INTERVAL_ONLINE
