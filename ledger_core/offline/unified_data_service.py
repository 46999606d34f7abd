# =============================================================================
# ledger_core/offline/unified_data_service.py
# Unified Data Service - Single API for Online/Offline Operations
# =============================================================================
"""
UnifiedDataService - The primary API for all ledger data operations.

This service provides a unified interface that automatically handles:
- Online mode: reads from Supabase, falling back to SQLite on any remote error
- Offline mode: reads from SQLite
- Writes: attempted remotely when online, always stored locally with a
  change log entry so the SyncEngine can replay them
- Derived balances computed on every read

Usage:
------
from ledger_core.offline import build_data_service

service = build_data_service(settings)
service.start()

accounts = service.get_customers(profile_id)
service.add_installment(customer_id, 50, "2024-01-10")

print(f"Online: {service.is_online}")
print(f"Pending sync: {service.pending_sync_count}")
"""

from __future__ import annotations
import math
from collections import defaultdict
from datetime import date as date_type, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, TypeVar
import logging

from ledger_core.errors import RemoteError, ValidationError
from ledger_core.models import (
    ChangeAction,
    Customer,
    CustomerAccount,
    DashboardStats,
    EnhancedDashboardStats,
    Installment,
    Investment,
    InvestmentType,
    Profile,
    Project,
    ProjectAccount,
    derive_balances,
    new_id,
)
from ledger_core.offline.sync_engine import SyncResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A read function: (table, filters, in_filters, order_by, descending, limit) -> rows
Reader = Callable[..., List[Dict[str, Any]]]


def _normalize_date(value: Any, field: str) -> str:
    """Accept date/datetime objects or YYYY-MM-DD strings."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date_type):
        return value.isoformat()
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date().isoformat()
    except ValueError:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date", field=field, value=value)


def _positive_amount(value: Any, field: str, allow_zero: bool = False) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field, value=value)
    if math.isnan(amount) or amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be greater than zero", field=field, value=value)
    return amount


def _required_text(data: Mapping[str, Any], field: str) -> str:
    value = str(data.get(field) or "").strip()
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    return value


class UnifiedDataService:
    """
    Offline-first data facade.

    This is the main entry point for all data operations in the application.
    It never raises because the remote store is unreachable; errors from the
    local store propagate.
    """

    def __init__(self, local_db, remote, connection_manager, sync_engine):
        """
        Args:
            local_db: LocalDatabase
            remote: SupabaseRemote
            connection_manager: ConnectionManager
            sync_engine: SyncEngine
        """
        self.local_db = local_db
        self.remote = remote
        self.connection_manager = connection_manager
        self.sync_engine = sync_engine

    # =========================================================================
    # LIFECYCLE & STATUS
    # =========================================================================

    def start(self, monitor: bool = True, periodic_sync: bool = True) -> None:
        """Start connection monitoring and background sync."""
        self.connection_manager.start(monitor=monitor)
        self.sync_engine.start(periodic=periodic_sync)

    def stop(self) -> None:
        self.sync_engine.stop()
        self.connection_manager.stop()

    @property
    def is_online(self) -> bool:
        """Check if currently online."""
        return self.connection_manager.is_online

    @property
    def sync_status(self) -> str:
        """idle, syncing, success or error."""
        return self.sync_engine.status.value

    @property
    def pending_sync_count(self) -> int:
        """Get count of pending sync operations."""
        return self.sync_engine.pending_count

    def trigger_sync(self, profile_id: Optional[str] = None) -> SyncResult:
        """Run a sync cycle now."""
        return self.sync_engine.trigger_sync(profile_id)

    def get_status(self) -> Dict[str, Any]:
        """Get comprehensive status for UI display."""
        return {
            "is_online": self.is_online,
            "connection": self.connection_manager.get_status_display(),
            "sync": self.sync_engine.get_status_display(),
        }

    # =========================================================================
    # READ PLUMBING
    # =========================================================================

    def _read(self, operation: str, fn: Callable[[Reader], T]) -> T:
        """
        Run a read against Supabase when online, else (or on failure) SQLite.

        The whole operation runs against one store so composite reads never
        mix sources.
        """
        if self.is_online:
            try:
                return fn(self.remote.select)
            except RemoteError as e:
                logger.warning(f"{operation}: remote read failed, using local data ({e})")
        return fn(self.local_db.query)

    @staticmethod
    def _installments_by(
        read: Reader,
        column: str,
        ids: List[str],
    ) -> Dict[str, List[Installment]]:
        grouped: Dict[str, List[Installment]] = defaultdict(list)
        for row in read("installments", in_filters={column: ids}):
            installment = Installment.from_row(row)
            grouped[getattr(installment, column)].append(installment)
        return grouped

    def _customer_accounts(self, read: Reader, rows: List[Dict[str, Any]]) -> List[CustomerAccount]:
        customers = [Customer.from_row(row) for row in rows]
        paid = self._installments_by(read, "customer_id", [c.id for c in customers])
        return [
            CustomerAccount(customer=c, balances=derive_balances(c.total_amount, paid.get(c.id, [])))
            for c in customers
        ]

    def _project_accounts(self, read: Reader, rows: List[Dict[str, Any]]) -> List[ProjectAccount]:
        projects = [Project.from_row(row) for row in rows]
        paid = self._installments_by(read, "project_id", [p.id for p in projects])
        return [
            ProjectAccount(project=p, balances=derive_balances(p.total_amount, paid.get(p.id, [])))
            for p in projects
        ]

    # =========================================================================
    # READS
    # =========================================================================

    def get_profiles(self) -> List[Profile]:
        return self._read(
            "get_profiles",
            lambda read: [Profile.from_row(r) for r in read("profiles", order_by="created_at")],
        )

    def get_customers(self, profile_id: str, include_inactive: bool = False) -> List[CustomerAccount]:
        """Customers of a profile (active only by default), newest first, with balances."""
        filters: Dict[str, Any] = {"profile_id": profile_id}
        if not include_inactive:
            filters["is_active"] = True

        def fetch(read: Reader) -> List[CustomerAccount]:
            rows = read(
                "customers",
                filters=filters,
                order_by="created_at",
                descending=True,
            )
            return self._customer_accounts(read, rows)

        return self._read("get_customers", fetch)

    def get_customer(self, customer_id: str) -> Optional[CustomerAccount]:
        def fetch(read: Reader) -> Optional[CustomerAccount]:
            rows = read("customers", filters={"id": customer_id}, limit=1)
            accounts = self._customer_accounts(read, rows)
            return accounts[0] if accounts else None

        return self._read("get_customer", fetch)

    def get_installments(self, customer_id: str) -> List[Installment]:
        """Payments of one customer, latest date first."""
        return self._read(
            "get_installments",
            lambda read: [
                Installment.from_row(r)
                for r in read("installments", filters={"customer_id": customer_id},
                              order_by="date", descending=True)
            ],
        )

    def get_profile_installments(
        self,
        profile_id: str,
        start_date: Optional[Any] = None,
        end_date: Optional[Any] = None,
    ) -> List[Installment]:
        """
        Every payment recorded for a profile's customers, latest first.

        Args:
            profile_id: Profile id
            start_date: Inclusive lower bound (YYYY-MM-DD)
            end_date: Inclusive upper bound (YYYY-MM-DD)
        """
        start = _normalize_date(start_date, "start_date") if start_date else None
        end = _normalize_date(end_date, "end_date") if end_date else None

        def fetch(read: Reader) -> List[Installment]:
            customer_ids = [r["id"] for r in read("customers", filters={"profile_id": profile_id})]
            rows = read("installments", in_filters={"customer_id": customer_ids},
                        order_by="date", descending=True)
            installments = [Installment.from_row(r) for r in rows]
            return [
                i for i in installments
                if (start is None or i.date >= start) and (end is None or i.date <= end)
            ]

        return self._read("get_profile_installments", fetch)

    def get_daily_installments(self, profile_id: str, day: Any) -> List[Installment]:
        """Payments recorded on one day for a profile."""
        day = _normalize_date(day, "date")

        def fetch(read: Reader) -> List[Installment]:
            customer_ids = [r["id"] for r in read("customers", filters={"profile_id": profile_id})]
            rows = read("installments", filters={"date": day}, in_filters={"customer_id": customer_ids})
            return [Installment.from_row(r) for r in rows]

        return self._read("get_daily_installments", fetch)

    def get_dashboard_stats(self, profile_id: str) -> DashboardStats:
        """Collected, expected and pending totals over active customers."""
        def fetch(read: Reader) -> DashboardStats:
            accounts = self._customer_accounts(
                read, read("customers", filters={"profile_id": profile_id, "is_active": True})
            )
            collected = sum(a.balances.paid_amount for a in accounts)
            expected = sum(a.customer.total_amount for a in accounts)
            return DashboardStats(
                total_collected=collected,
                total_expected=expected,
                pending_amount=expected - collected,
            )

        return self._read("get_dashboard_stats", fetch)

    def get_enhanced_dashboard_stats(self, profile_id: str) -> EnhancedDashboardStats:
        """Dashboard stats plus investment, net profit and ROI (%)."""
        basic = self.get_dashboard_stats(profile_id)
        total_investment = sum(i.amount for i in self.get_investments(profile_id))
        net_profit = basic.total_collected - total_investment
        roi = math.floor(net_profit / total_investment * 100 + 0.5) if total_investment > 0 else 0

        return EnhancedDashboardStats(
            total_collected=basic.total_collected,
            total_expected=basic.total_expected,
            pending_amount=basic.pending_amount,
            total_investment=total_investment,
            net_profit=net_profit,
            roi=int(roi),
        )

    def get_projects(self, profile_id: str, include_inactive: bool = False) -> List[ProjectAccount]:
        """Projects of a profile (active only by default), newest first, with balances."""
        filters: Dict[str, Any] = {"profile_id": profile_id}
        if not include_inactive:
            filters["is_active"] = True

        def fetch(read: Reader) -> List[ProjectAccount]:
            rows = read("projects", filters=filters,
                        order_by="created_at", descending=True)
            return self._project_accounts(read, rows)

        return self._read("get_projects", fetch)

    def get_customer_projects(self, customer_id: str) -> List[ProjectAccount]:
        def fetch(read: Reader) -> List[ProjectAccount]:
            rows = read("projects", filters={"customer_id": customer_id, "is_active": True},
                        order_by="created_at", descending=True)
            return self._project_accounts(read, rows)

        return self._read("get_customer_projects", fetch)

    def get_project(self, project_id: str) -> Optional[ProjectAccount]:
        def fetch(read: Reader) -> Optional[ProjectAccount]:
            accounts = self._project_accounts(read, read("projects", filters={"id": project_id}, limit=1))
            return accounts[0] if accounts else None

        return self._read("get_project", fetch)

    def get_investments(self, profile_id: str) -> List[Investment]:
        return self._read(
            "get_investments",
            lambda read: [
                Investment.from_row(r)
                for r in read("investments", filters={"profile_id": profile_id},
                              order_by="date", descending=True)
            ],
        )

    # =========================================================================
    # WRITE PLUMBING
    # =========================================================================

    def _create(self, table: str, record: Dict[str, Any]) -> None:
        """Remote insert when online (best effort), then local write + log."""
        if self.is_online:
            try:
                self.remote.insert(table, record)
            except RemoteError as e:
                logger.warning(f"Online insert into {table} failed, saved locally: {e}")
        self.local_db.put(table, record, ChangeAction.CREATE)

    def _current_row(self, table: str, record_id: str) -> Dict[str, Any]:
        row = self.local_db.get(table, record_id)
        if row is None and self.is_online:
            try:
                rows = self.remote.select(table, filters={"id": record_id}, limit=1)
                row = rows[0] if rows else None
            except RemoteError as e:
                logger.warning(f"Could not load {table}/{record_id} from Supabase: {e}")
        if row is None:
            raise ValidationError(f"No {table} record with id {record_id}", field="id", value=record_id)
        return row

    def _update(self, entity_cls, record_id: str, changes: Mapping[str, Any]):
        """Merge changes into the current record and write it like a create."""
        allowed = set(entity_cls.field_names()) - {"id", "created_at"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(
                f"Cannot update {', '.join(sorted(unknown))} on {entity_cls.TABLE}",
                field=sorted(unknown)[0],
            )

        merged = dict(self._current_row(entity_cls.TABLE, record_id))
        merged.update(changes)
        entity = entity_cls.from_row(merged)

        if self.is_online:
            try:
                self.remote.update(entity_cls.TABLE, {"id": record_id}, dict(changes))
            except RemoteError as e:
                logger.warning(f"Online update of {entity_cls.TABLE}/{record_id} failed, saved locally: {e}")
        self.local_db.put(entity_cls.TABLE, entity.to_record(), ChangeAction.UPDATE)
        return entity

    # =========================================================================
    # WRITES
    # =========================================================================

    def add_profile(self, name: str) -> Profile:
        profile = Profile(id=new_id(), name=_required_text({"name": name}, "name"))
        self._create(Profile.TABLE, profile.to_record())
        logger.info(f"Profile created: {profile.id}")
        return profile

    def add_customer(self, data: Mapping[str, Any]) -> Customer:
        """
        Create a customer.

        Args:
            data: profile_id, name, phone, total_amount, installment_amount,
                  and optionally photo_url, document_url, is_active

        Returns:
            The stored Customer (with its client-generated id)
        """
        customer = Customer(
            id=new_id(),
            profile_id=_required_text(data, "profile_id"),
            name=_required_text(data, "name"),
            phone=str(data.get("phone") or "").strip(),
            total_amount=_positive_amount(data.get("total_amount"), "total_amount"),
            installment_amount=_positive_amount(data.get("installment_amount"), "installment_amount"),
            photo_url=data.get("photo_url"),
            document_url=data.get("document_url"),
            is_active=bool(data.get("is_active", True)),
        )
        self._create(Customer.TABLE, customer.to_record())
        logger.info(f"Customer created: {customer.id}")
        return customer

    def update_customer(self, customer_id: str, changes: Mapping[str, Any]) -> Customer:
        return self._update(Customer, customer_id, changes)

    def bulk_update_customer_status(self, customer_ids: Iterable[str], is_active: bool) -> int:
        """Activate or deactivate several customers. Returns the count updated."""
        updated = 0
        for customer_id in customer_ids:
            self._update(Customer, customer_id, {"is_active": bool(is_active)})
            updated += 1
        return updated

    def add_installment(
        self,
        customer_id: str,
        amount: Any,
        date: Any,
        project_id: Optional[str] = None,
    ) -> Installment:
        """Record a payment."""
        if not customer_id:
            raise ValidationError("customer_id is required", field="customer_id")
        installment = Installment(
            id=new_id(),
            customer_id=customer_id,
            amount=_positive_amount(amount, "amount"),
            date=_normalize_date(date, "date"),
            project_id=project_id,
        )
        self._create(Installment.TABLE, installment.to_record())
        return installment

    def add_project(self, data: Mapping[str, Any]) -> Project:
        project = Project(
            id=new_id(),
            customer_id=_required_text(data, "customer_id"),
            profile_id=_required_text(data, "profile_id"),
            name=_required_text(data, "name"),
            total_amount=_positive_amount(data.get("total_amount"), "total_amount"),
            installment_amount=_positive_amount(data.get("installment_amount"), "installment_amount"),
            start_date=_normalize_date(data.get("start_date"), "start_date"),
            description=data.get("description"),
            end_date=_normalize_date(data["end_date"], "end_date") if data.get("end_date") else None,
            is_active=bool(data.get("is_active", True)),
        )
        self._create(Project.TABLE, project.to_record())
        logger.info(f"Project created: {project.id}")
        return project

    def update_project(self, project_id: str, changes: Mapping[str, Any]) -> Project:
        return self._update(Project, project_id, changes)

    def bulk_update_project_status(self, project_ids: Iterable[str], is_active: bool) -> int:
        """Activate or deactivate several projects. Returns the count updated."""
        updated = 0
        for project_id in project_ids:
            self._update(Project, project_id, {"is_active": bool(is_active)})
            updated += 1
        return updated

    def add_investment(self, data: Mapping[str, Any]) -> Investment:
        investment_type = data.get("investment_type")
        try:
            investment_type = InvestmentType(investment_type).value
        except ValueError:
            raise ValidationError(
                f"investment_type must be one of {[t.value for t in InvestmentType]}",
                field="investment_type",
                value=investment_type,
            )

        investment = Investment(
            id=new_id(),
            profile_id=_required_text(data, "profile_id"),
            amount=_positive_amount(data.get("amount"), "amount"),
            investment_type=investment_type,
            date=_normalize_date(data.get("date"), "date"),
            description=data.get("description"),
        )
        self._create(Investment.TABLE, investment.to_record())
        return investment

    def delete_investment(self, investment_id: str) -> None:
        if self.is_online:
            try:
                self.remote.delete(Investment.TABLE, {"id": investment_id})
            except RemoteError as e:
                logger.warning(f"Online delete of investment {investment_id} failed, queued: {e}")
        self.local_db.delete(Investment.TABLE, investment_id)
