# =============================================================================
# ledger_core/services/analytics_service.py
# Collection Analytics (risk, trends, projects, overdue)
# =============================================================================
"""
Analytics Service - Derived collection metrics for one profile.

Everything is computed from facade reads, so analytics work offline against
the local mirror exactly as they do online.
"""

from __future__ import annotations
from datetime import date, timedelta
from typing import Any, Dict, Optional
import pandas as pd
import numpy as np

from ledger_core.errors import ValidationError
from ledger_core.models import Installment
from ledger_core.services.base_service import BaseService, ServiceResult

# =============================================================================
# CONSTANTS
# =============================================================================

NO_PAYMENT_DAYS = 999       # days_since_last_payment when nothing was paid
OVERDUE_AFTER_DAYS = 30
HIGH_RISK_LIMIT = 10

# timeframe -> number of periods looked back
TREND_PERIODS = {"week": 12, "month": 12, "quarter": 8, "year": 5}

CUSTOMER_COLUMNS = [
    "customer_id", "customer_name", "total_amount", "paid_amount",
    "remaining_amount", "completion_rate", "avg_payment_amount",
    "days_since_last_payment", "payment_consistency", "risk_level",
]

TREND_COLUMNS = ["period", "total_collected", "unique_customers", "avg_payment_size"]

OVERDUE_COLUMNS = [
    "customer_id", "customer_name", "customer_phone", "project_id",
    "project_name", "overdue_amount", "days_overdue", "total_remaining",
]


def _round_half_up(values, decimals: int = 0):
    factor = 10 ** decimals
    return np.floor(np.asarray(values, dtype=float) * factor + 0.5) / factor


def _today(today: Optional[date]) -> pd.Timestamp:
    return pd.Timestamp(today or date.today()).normalize()


class AnalyticsService(BaseService):
    """
    Customer, payment and project analytics built on UnifiedDataService.

    Public methods return ServiceResult; data is a DataFrame or dict.
    """

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _installments_frame(self, profile_id: str, start_date: Optional[date] = None) -> pd.DataFrame:
        installments = self.data.get_profile_installments(profile_id, start_date=start_date)
        frame = pd.DataFrame(
            [i.to_record() for i in installments],
            columns=Installment.field_names(),
        )
        frame["amount"] = frame["amount"].astype(float)
        frame["date"] = pd.to_datetime(frame["date"])
        return frame

    @staticmethod
    def _days_since(last_dates: pd.Series, today: pd.Timestamp) -> pd.Series:
        return (today - pd.to_datetime(last_dates)).dt.days.fillna(NO_PAYMENT_DAYS).astype(int)

    # =========================================================================
    # CUSTOMER ANALYTICS
    # =========================================================================

    def _customer_analytics(self, profile_id: str, today: Optional[date] = None) -> pd.DataFrame:
        accounts = self.data.get_customers(profile_id)
        if not accounts:
            return pd.DataFrame(columns=CUSTOMER_COLUMNS)

        frame = pd.DataFrame([
            {
                "customer_id": a.customer.id,
                "customer_name": a.customer.name,
                "total_amount": a.customer.total_amount,
                "paid_amount": a.balances.paid_amount,
                "remaining_amount": a.balances.remaining_amount,
            }
            for a in accounts
        ])

        installments = self._installments_frame(profile_id)
        per_customer = installments.groupby("customer_id").agg(
            payments=("amount", "size"),
            last_payment=("date", "max"),
        )
        frame = frame.join(per_customer, on="customer_id")
        payments = frame["payments"].fillna(0).to_numpy(dtype=float)

        total = frame["total_amount"].to_numpy(dtype=float)
        paid = frame["paid_amount"].to_numpy(dtype=float)
        rate = np.divide(paid * 100, total, out=np.zeros_like(paid), where=total > 0)
        days = self._days_since(frame["last_payment"], _today(today)).to_numpy()

        frame["avg_payment_amount"] = _round_half_up(
            np.divide(paid, payments, out=np.zeros_like(paid), where=payments > 0), 2
        )
        frame["days_since_last_payment"] = days
        frame["payment_consistency"] = np.select(
            [rate >= 90, rate >= 70, rate >= 50],
            ["excellent", "good", "fair"],
            default="poor",
        )
        frame["risk_level"] = np.select(
            [(days > 30) | (rate < 50), (days > 14) | (rate < 70)],
            ["high", "medium"],
            default="low",
        )
        frame["completion_rate"] = _round_half_up(rate).astype(int)

        frame = frame.sort_values("paid_amount", ascending=False, kind="stable")
        return frame[CUSTOMER_COLUMNS].reset_index(drop=True)

    def customer_analytics(self, profile_id: str, today: Optional[date] = None) -> ServiceResult:
        """
        Per-customer collection metrics, highest paid first.

        Risk is high when the last payment is more than 30 days old or less
        than half is paid; medium past 14 days or below 70%.
        """
        return self.safe_execute("Customer analytics", self._customer_analytics, profile_id, today)

    def _risk_summary(self, profile_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        frame = self._customer_analytics(profile_id, today)
        counts = frame["risk_level"].value_counts()
        high = frame[frame["risk_level"] == "high"].sort_values(
            "remaining_amount", ascending=False, kind="stable"
        )
        return {
            "high": int(counts.get("high", 0)),
            "medium": int(counts.get("medium", 0)),
            "low": int(counts.get("low", 0)),
            "high_risk_customers": high.head(HIGH_RISK_LIMIT).to_dict("records"),
        }

    def risk_summary(self, profile_id: str, today: Optional[date] = None) -> ServiceResult:
        """Customer counts per risk level plus the ten largest high-risk balances."""
        return self.safe_execute("Risk summary", self._risk_summary, profile_id, today)

    # =========================================================================
    # PAYMENT TRENDS
    # =========================================================================

    def _payment_trends(
        self,
        profile_id: str,
        timeframe: str = "month",
        today: Optional[date] = None,
    ) -> pd.DataFrame:
        if timeframe not in TREND_PERIODS:
            raise ValidationError(
                f"timeframe must be one of {sorted(TREND_PERIODS)}",
                field="timeframe",
                value=timeframe,
            )

        now = _today(today)
        periods = TREND_PERIODS[timeframe]
        if timeframe == "week":
            start = now - pd.Timedelta(weeks=periods)
        elif timeframe == "month":
            start = now - pd.DateOffset(months=periods)
        elif timeframe == "quarter":
            start = now - pd.DateOffset(months=periods * 3)
        else:
            start = now - pd.DateOffset(years=periods)

        frame = self._installments_frame(profile_id, start_date=start.date())
        if frame.empty:
            return pd.DataFrame(columns=TREND_COLUMNS)

        dates = frame["date"]
        if timeframe == "week":
            iso = dates.dt.isocalendar()
            frame["period"] = iso["year"].astype(str) + "-W" + iso["week"].astype(int).map("{:02d}".format)
        elif timeframe == "month":
            frame["period"] = dates.dt.strftime("%Y-%m")
        elif timeframe == "quarter":
            frame["period"] = dates.dt.year.astype(str) + "-Q" + dates.dt.quarter.astype(str)
        else:
            frame["period"] = dates.dt.year.astype(str)

        trends = frame.groupby("period").agg(
            total_collected=("amount", "sum"),
            unique_customers=("customer_id", "nunique"),
            avg_payment_size=("amount", "mean"),
        )
        return trends.sort_index().reset_index()[TREND_COLUMNS]

    def payment_trends(
        self,
        profile_id: str,
        timeframe: str = "month",
        today: Optional[date] = None,
    ) -> ServiceResult:
        """
        Collections bucketed by week (YYYY-Www), month (YYYY-MM),
        quarter (YYYY-Qn) or year, oldest period first.
        """
        return self.safe_execute("Payment trends", self._payment_trends, profile_id, timeframe, today)

    # =========================================================================
    # PROJECTS
    # =========================================================================

    def _project_analytics(self, profile_id: str) -> Dict[str, Any]:
        accounts = self.data.get_projects(profile_id, include_inactive=True)
        total_projects = len(accounts)
        if not total_projects:
            return {
                "total_projects": 0,
                "active_projects": 0,
                "completed_projects": 0,
                "avg_project_value": 0.0,
                "avg_completion_days": 0,
                "project_success_rate": 0,
            }

        frame = pd.DataFrame([
            {
                "project_id": a.project.id,
                "is_active": a.project.is_active,
                "total_amount": a.project.total_amount,
                "paid_amount": a.balances.paid_amount,
                "start_date": a.project.start_date,
            }
            for a in accounts
        ])
        last_payment = self._installments_frame(profile_id).groupby("project_id")["date"].max()
        frame = frame.join(last_payment.rename("last_payment"), on="project_id")

        completed = frame["paid_amount"] >= frame["total_amount"]
        timed = frame[completed & frame["last_payment"].notna()]
        completion_days = (
            pd.to_datetime(timed["last_payment"]) - pd.to_datetime(timed["start_date"])
        ).dt.days

        return {
            "total_projects": total_projects,
            "active_projects": int(frame["is_active"].sum()),
            "completed_projects": int(completed.sum()),
            "avg_project_value": float(_round_half_up(frame["total_amount"].mean(), 2)),
            "avg_completion_days": int(_round_half_up(completion_days.mean())) if len(timed) else 0,
            "project_success_rate": int(_round_half_up(completed.sum() / total_projects * 100)),
        }

    def project_analytics(self, profile_id: str) -> ServiceResult:
        """Project counts, average value and completion statistics."""
        return self.safe_execute("Project analytics", self._project_analytics, profile_id)

    def _overdue_payments(self, profile_id: str, today: Optional[date] = None) -> pd.DataFrame:
        customers = {a.customer.id: a.customer for a in self.data.get_customers(profile_id)}
        projects = [
            a for a in self.data.get_projects(profile_id)
            if a.project.customer_id in customers and a.balances.remaining_amount > 0
        ]
        if not projects:
            return pd.DataFrame(columns=OVERDUE_COLUMNS)

        last_payment = self._installments_frame(profile_id).groupby("project_id")["date"].max()
        frame = pd.DataFrame([
            {
                "customer_id": a.project.customer_id,
                "customer_name": customers[a.project.customer_id].name,
                "customer_phone": customers[a.project.customer_id].phone,
                "project_id": a.project.id,
                "project_name": a.project.name,
                "overdue_amount": min(a.project.installment_amount, a.balances.remaining_amount),
                "total_remaining": a.balances.remaining_amount,
            }
            for a in projects
        ])
        frame["days_overdue"] = self._days_since(frame["project_id"].map(last_payment), _today(today))

        frame = frame[frame["days_overdue"] > OVERDUE_AFTER_DAYS]
        frame = frame.sort_values("days_overdue", ascending=False, kind="stable")
        return frame[OVERDUE_COLUMNS].reset_index(drop=True)

    def overdue_payments(self, profile_id: str, today: Optional[date] = None) -> ServiceResult:
        """Active projects with a balance and no payment for more than 30 days."""
        return self.safe_execute("Overdue payments", self._overdue_payments, profile_id, today)

    # =========================================================================
    # DASHBOARD CHART
    # =========================================================================

    def _collection_chart(self, profile_id: str, days: int = 7, today: Optional[date] = None) -> pd.DataFrame:
        end = _today(today)
        start = end - timedelta(days=days - 1)
        frame = self._installments_frame(profile_id, start_date=start.date())
        frame = frame[frame["date"] <= end]

        daily = frame.groupby("date")["amount"].sum()
        daily = daily.reindex(pd.date_range(start, end, freq="D"), fill_value=0.0)
        return pd.DataFrame({
            "date": daily.index.strftime("%Y-%m-%d"),
            "daily_total": daily.to_numpy(dtype=float),
        })

    def collection_chart(self, profile_id: str, days: int = 7, today: Optional[date] = None) -> ServiceResult:
        """Daily collected totals for the last `days` days, zero-filled."""
        return self.safe_execute("Collection chart", self._collection_chart, profile_id, days, today)
