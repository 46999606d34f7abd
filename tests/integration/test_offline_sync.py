# =============================================================================
# tests/integration/test_offline_sync.py
# Integration Tests for the Offline-First Round Trip
# =============================================================================
"""
End-to-end tests wiring the real LocalDatabase, ConnectionManager,
SyncEngine and UnifiedDataService through build_data_service(), with an
in-memory remote standing in for Supabase.
"""

import pytest

from ledger_core.config import AppSettings
from ledger_core.offline import ConnectionStatus, build_data_service


def _device(db_path, remote, network):
    service = build_data_service(
        AppSettings(db_path=db_path),
        remote=remote,
        internet_check=network,
        auto_sync_in_background=False,
    )
    service.start(monitor=False, periodic_sync=False)
    return service


@pytest.fixture
def device(tmp_path, remote, network):
    service = _device(tmp_path / "device.db", remote, network)
    yield service
    service.stop()
    service.local_db.close()


class TestOfflineRoundTrip:
    """Work offline, reconnect, and land everything remotely"""

    def test_offline_payment_reaches_remote_on_reconnect(self, device, remote, network):
        # Go offline
        remote.reachable = False
        device.connection_manager.notify_network_change(False)
        assert device.connection_manager.status is ConnectionStatus.OFFLINE

        profile = device.add_profile("Market Stall")
        customer = device.add_customer({
            "profile_id": profile.id, "name": "Amina", "phone": "0700",
            "total_amount": 100, "installment_amount": 10,
        })
        installment = device.add_installment(customer.id, 50, "2024-01-10")

        assert device.pending_sync_count == 3
        assert device.local_db.get("installments", installment.id)["synced"] == 0
        assert device.get_customer(customer.id).balances.paid_amount == 50
        assert remote.write_calls() == []

        # Network comes back: the reconnect sync runs once
        remote.reachable = True
        network.up = True
        device.connection_manager.notify_network_change(True)

        assert device.is_online
        assert device.pending_sync_count == 0
        assert remote.tables["installments"][installment.id]["amount"] == 50.0
        assert device.local_db.get("installments", installment.id)["synced"] == 1
        assert [c[1] for c in remote.write_calls()] == ["profiles", "customers", "installments"]

        # Online reads now come from the remote store with the same balances
        account = device.get_customer(customer.id)
        assert account.balances.remaining_amount == 50
        assert device.local_db.change_log.entries_for("installments", installment.id)[0].synced

    def test_manual_sync_while_offline_keeps_changes(self, device, remote, network):
        remote.reachable = False
        network.up = False
        device.connection_manager.check_connection()
        device.add_profile("Kiosk")

        result = device.trigger_sync()

        assert result.success is False
        assert result.message == "Cannot connect to server - working offline"
        assert device.pending_sync_count == 1
        assert device.sync_status == "error"

    def test_rejected_entry_does_not_block_the_rest(self, device, remote):
        remote.reachable = False
        device.connection_manager.notify_network_change(False)
        good = device.add_profile("Good")
        bad = device.add_profile("Bad")
        later = device.add_profile("Later")
        remote.fail_ids = {bad.id}

        remote.reachable = True
        result = device.trigger_sync()

        assert result.success is True
        assert (result.pushed, result.failed) == (2, 1)
        assert set(remote.tables["profiles"]) == {good.id, later.id}
        assert device.pending_sync_count == 1


class TestTwoDevices:
    """Two local mirrors sharing one remote store converge"""

    def test_convergence(self, tmp_path, remote, network):
        shop = _device(tmp_path / "shop.db", remote, network)
        phone = _device(tmp_path / "phone.db", remote, network)
        try:
            profile = shop.add_profile("Shared")
            shop.trigger_sync()

            # phone works offline against the pulled profile
            phone.trigger_sync()
            remote.reachable = False
            phone.connection_manager.notify_network_change(False)
            customer = phone.add_customer({
                "profile_id": profile.id, "name": "Bakari", "phone": "0711",
                "total_amount": 200, "installment_amount": 20,
            })
            phone.add_installment(customer.id, 20, "2024-02-01")

            remote.reachable = True
            phone.connection_manager.notify_network_change(True)
            shop.trigger_sync()

            for device in (shop, phone):
                accounts = device.local_db.query("customers")
                assert [a["id"] for a in accounts] == [customer.id]
                assert len(device.local_db.query("installments")) == 1
                assert device.pending_sync_count == 0
        finally:
            for device in (shop, phone):
                device.stop()
                device.local_db.close()
