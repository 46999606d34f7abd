# =============================================================================
# tests/unit/test_export_service.py
# Unit Tests for ExportService
# =============================================================================

import io
import json

import pandas as pd
import pytest

from ledger_core.services import ExportService
from ledger_core.services.export_service import CUSTOMER_EXPORT_COLUMNS, PAYMENT_EXPORT_COLUMNS


@pytest.fixture
def exporter(offline_service):
    return ExportService(offline_service)


@pytest.fixture
def book(offline_service):
    customer = offline_service.add_customer({
        "profile_id": "prof-1", "name": "Amina", "phone": "0700",
        "total_amount": 100, "installment_amount": 10,
    })
    project = offline_service.add_project({
        "customer_id": customer.id, "profile_id": "prof-1", "name": "Sofa",
        "total_amount": 80, "installment_amount": 10, "start_date": "2024-01-01",
    })
    offline_service.add_installment(customer.id, 30, "2024-01-05")
    offline_service.add_installment(customer.id, 10, "2024-01-09", project_id=project.id)
    return {"customer": customer, "project": project}


class TestCustomerExport:
    def test_csv(self, exporter, book):
        result = exporter.export_customers("prof-1")

        assert result.success is True
        assert result.content_type == "text/csv"
        assert result.filename.startswith("customers_") and result.filename.endswith(".csv")

        frame = pd.read_csv(io.StringIO(result.data))
        assert list(frame.columns) == CUSTOMER_EXPORT_COLUMNS
        assert frame.loc[0, "Paid Amount"] == 40
        assert frame.loc[0, "Remaining Amount"] == 60

    def test_json(self, exporter, book):
        result = exporter.export_customers("prof-1", fmt="JSON")

        records = json.loads(result.data)
        assert result.filename.endswith(".json")
        assert records[0]["name"] == "Amina"
        assert records[0]["paid_amount"] == 40

    def test_unknown_format(self, exporter):
        result = exporter.export_customers("prof-1", fmt="xlsx")

        assert result.success is False
        assert "csv" in result.error


class TestPaymentExport:
    def test_csv_latest_first_with_names(self, exporter, book):
        result = exporter.export_payments("prof-1")

        frame = pd.read_csv(io.StringIO(result.data), keep_default_na=False)
        assert list(frame.columns) == PAYMENT_EXPORT_COLUMNS
        assert list(frame["Date"]) == ["2024-01-09", "2024-01-05"]
        assert list(frame["Project Name"]) == ["Sofa", "N/A"]
        assert list(frame["Customer Name"]) == ["Amina", "Amina"]

    def test_date_range(self, exporter, book):
        result = exporter.export_payments("prof-1", start_date="2024-01-06", fmt="json")

        records = json.loads(result.data)
        assert [r["date"] for r in records] == ["2024-01-09"]
        assert records[0]["project"] == {"name": "Sofa"}

    def test_bad_date_reported(self, exporter, book):
        result = exporter.export_payments("prof-1", start_date="yesterday")

        assert result.success is False
        assert "start_date" in result.error
