# =============================================================================
# tests/unit/test_entities.py
# Unit Tests for Entities and Derived Balances
# =============================================================================

import pytest

from ledger_core.models import (
    ChangeAction,
    ChangeLogEntry,
    Customer,
    CustomerAccount,
    Installment,
    Project,
    derive_balances,
    new_id,
)


class TestDeriveBalances:
    """Paid / remaining / progress are computed, never stored"""

    def test_sums_installments(self):
        balances = derive_balances(100, [40, 35])

        assert balances.paid_amount == 75
        assert balances.remaining_amount == 25
        assert balances.progress_percentage == 75

    def test_accepts_installment_objects_and_rows(self):
        items = [
            Installment(id="a", customer_id="c", amount=40.0, date="2024-01-01"),
            {"amount": "35"},
        ]
        assert derive_balances(100, items).paid_amount == 75

    def test_no_installments(self):
        balances = derive_balances(250, [])

        assert balances.paid_amount == 0
        assert balances.remaining_amount == 250
        assert balances.progress_percentage == 0

    def test_overpayment_goes_negative(self):
        balances = derive_balances(100, [80, 50])

        assert balances.remaining_amount == -30
        assert balances.progress_percentage == 130

    def test_zero_total_has_zero_progress(self):
        assert derive_balances(0, [10]).progress_percentage == 0

    def test_progress_rounds_half_up(self):
        # 1/8 = 12.5%
        assert derive_balances(8, [1]).progress_percentage == 13


class TestEntityRows:
    """Row conversion for both stores"""

    def test_from_row_ignores_local_columns_and_coerces(self):
        row = {
            "id": "c1", "profile_id": "p1", "name": "Bo", "phone": "1",
            "total_amount": "100", "installment_amount": 10, "is_active": 0,
            "created_at": "2024-01-01", "synced": 1, "last_modified": "x",
        }
        customer = Customer.from_row(row)

        assert customer.total_amount == 100.0
        assert customer.is_active is False
        assert "synced" not in customer.to_record()

    def test_update_fields_excludes_keys(self):
        project = Project(
            id="p", customer_id="c", profile_id="pr", name="Sofa",
            total_amount=500, installment_amount=50, start_date="2024-01-01",
        )
        fields = project.update_fields()

        assert "id" not in fields
        assert "created_at" not in fields
        assert fields["name"] == "Sofa"

    def test_new_ids_are_unique(self):
        assert new_id() != new_id()

    def test_customer_account_flattens(self, sample_customer):
        account = CustomerAccount(
            customer=Customer.from_row(sample_customer),
            balances=derive_balances(100, [40]),
        )
        data = account.to_dict()

        assert account.id == "cust1"
        assert data["paid_amount"] == 40
        assert data["remaining_amount"] == 60

    def test_change_log_entry_from_row(self):
        entry = ChangeLogEntry.from_row({
            "id": 3, "table_name": "customers", "record_id": "c1", "action": "update",
            "timestamp": "t", "synced": 0, "attempts": None, "last_error": None,
        })

        assert entry.action is ChangeAction.UPDATE
        assert entry.synced is False
        assert entry.attempts == 0
