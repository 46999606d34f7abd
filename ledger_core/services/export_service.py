# =============================================================================
# ledger_core/services/export_service.py
# CSV / JSON Export of Customers and Payments
# =============================================================================

from __future__ import annotations
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
import pandas as pd

from ledger_core.errors import LedgerError, ValidationError, handle_error
from ledger_core.services.base_service import BaseService

EXPORT_FORMATS = {"csv": "text/csv", "json": "application/json"}

CUSTOMER_EXPORT_COLUMNS = [
    "Name", "Phone", "Total Amount", "Paid Amount", "Remaining Amount", "Created Date",
]
PAYMENT_EXPORT_COLUMNS = [
    "Date", "Customer Name", "Customer Phone", "Project Name", "Amount", "Created Date",
]


@dataclass
class ExportResult:
    """Export payload ready for st.download_button."""
    success: bool
    data: str = ""
    filename: Optional[str] = None
    content_type: Optional[str] = None
    error: Optional[str] = None


class ExportService(BaseService):
    """Builds customer and payment exports from facade reads."""

    @staticmethod
    def _check_format(fmt: str) -> str:
        fmt = (fmt or "").lower()
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(
                f"Export format must be one of {sorted(EXPORT_FORMATS)}",
                field="format",
                value=fmt,
            )
        return fmt

    @staticmethod
    def _filename(kind: str, fmt: str) -> str:
        return f"{kind}_{datetime.now().strftime('%Y%m%d')}.{fmt}"

    def _export(self, operation: str, kind: str, fmt: str, build) -> ExportResult:
        try:
            fmt = self._check_format(fmt)
            with self.log_operation(operation):
                data = build(fmt)
            return ExportResult(
                success=True,
                data=data,
                filename=self._filename(kind, fmt),
                content_type=EXPORT_FORMATS[fmt],
            )
        except LedgerError as e:
            handle_error(e)
            return ExportResult(success=False, error=e.message)

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    def export_customers(self, profile_id: str, fmt: str = "csv") -> ExportResult:
        """Active customers with paid and remaining amounts."""
        def build(fmt: str) -> str:
            accounts = self.data.get_customers(profile_id)
            if fmt == "json":
                return json.dumps([a.to_dict() for a in accounts], indent=2)

            frame = pd.DataFrame(
                [
                    [
                        a.customer.name,
                        a.customer.phone,
                        a.customer.total_amount,
                        a.balances.paid_amount,
                        a.balances.remaining_amount,
                        a.customer.created_at,
                    ]
                    for a in accounts
                ],
                columns=CUSTOMER_EXPORT_COLUMNS,
            )
            return frame.to_csv(index=False)

        return self._export("Customer export", "customers", fmt, build)

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def export_payments(
        self,
        profile_id: str,
        start_date: Optional[Any] = None,
        end_date: Optional[Any] = None,
        fmt: str = "csv",
    ) -> ExportResult:
        """Payments for a profile, latest first, optionally within a date range."""
        def build(fmt: str) -> str:
            installments = self.data.get_profile_installments(profile_id, start_date, end_date)
            customers = {
                a.customer.id: a.customer
                for a in self.data.get_customers(profile_id, include_inactive=True)
            }
            projects = {
                a.project.id: a.project
                for a in self.data.get_projects(profile_id, include_inactive=True)
            }

            records = []
            for payment in installments:
                customer = customers.get(payment.customer_id)
                project = projects.get(payment.project_id) if payment.project_id else None
                records.append({
                    "date": payment.date,
                    "amount": payment.amount,
                    "created_at": payment.created_at,
                    "customer": {"name": customer.name, "phone": customer.phone} if customer else None,
                    "project": {"name": project.name} if project else None,
                })

            if fmt == "json":
                return json.dumps(records, indent=2)

            frame = pd.DataFrame(
                [
                    [
                        r["date"],
                        r["customer"]["name"] if r["customer"] else "N/A",
                        r["customer"]["phone"] if r["customer"] else "N/A",
                        r["project"]["name"] if r["project"] else "N/A",
                        r["amount"],
                        r["created_at"],
                    ]
                    for r in records
                ],
                columns=PAYMENT_EXPORT_COLUMNS,
            )
            return frame.to_csv(index=False)

        return self._export("Payment export", "payments", fmt, build)
