# =============================================================================
# ledger_core/models/entities.py
# Ledger Entities and Derived Balances
# =============================================================================
"""
Typed records mirrored between the local SQLite store and Supabase.

Derived amounts (paid, remaining, progress) are never stored on an entity.
They are computed by derive_balances() at every read boundary and returned
alongside the entity in CustomerAccount / ProjectAccount.
"""

from __future__ import annotations
import math
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar


def new_id() -> str:
    """Client-side identifier, valid before and after sync."""
    return str(uuid.uuid4())


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "t", "yes")
    return bool(value)


def _as_float(value: Any) -> float:
    return float(value) if value is not None else 0.0


E = TypeVar("E", bound="Entity")


class ChangeAction(str, Enum):
    """Kind of local mutation recorded in the change log."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class InvestmentType(str, Enum):
    CAPITAL = "capital"
    LOAN = "loan"
    PROFIT_REINVESTMENT = "profit_reinvestment"


@dataclass
class Entity:
    """Base for records that exist in both stores."""

    TABLE = ""
    BOOL_FIELDS = ()
    FLOAT_FIELDS = ()

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_row(cls: Type[E], row: Mapping[str, Any]) -> E:
        """Build an entity from a local or remote row, ignoring extra columns."""
        data = {}
        for name in cls.field_names():
            if name not in row:
                continue
            value = row[name]
            if name in cls.BOOL_FIELDS:
                value = _as_bool(value)
            elif name in cls.FLOAT_FIELDS:
                value = _as_float(value)
            data[name] = value
        return cls(**data)

    def to_record(self) -> Dict[str, Any]:
        """Column:value mapping sent to either store."""
        return asdict(self)

    def update_fields(self) -> Dict[str, Any]:
        """Current values of every mutable column (everything but the keys)."""
        record = self.to_record()
        record.pop("id", None)
        record.pop("created_at", None)
        return record


@dataclass
class Profile(Entity):
    TABLE = "profiles"

    id: str
    name: str
    created_at: str = field(default_factory=utc_now)


@dataclass
class Customer(Entity):
    TABLE = "customers"
    BOOL_FIELDS = ("is_active",)
    FLOAT_FIELDS = ("total_amount", "installment_amount")

    id: str
    profile_id: str
    name: str
    phone: str
    total_amount: float
    installment_amount: float
    photo_url: Optional[str] = None
    document_url: Optional[str] = None
    is_active: bool = True
    created_at: str = field(default_factory=utc_now)


@dataclass
class Installment(Entity):
    TABLE = "installments"
    FLOAT_FIELDS = ("amount",)

    id: str
    customer_id: str
    amount: float
    date: str
    project_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now)


@dataclass
class Project(Entity):
    TABLE = "projects"
    BOOL_FIELDS = ("is_active",)
    FLOAT_FIELDS = ("total_amount", "installment_amount")

    id: str
    customer_id: str
    profile_id: str
    name: str
    total_amount: float
    installment_amount: float
    start_date: str
    description: Optional[str] = None
    end_date: Optional[str] = None
    is_active: bool = True
    created_at: str = field(default_factory=utc_now)


@dataclass
class Investment(Entity):
    TABLE = "investments"
    FLOAT_FIELDS = ("amount",)

    id: str
    profile_id: str
    amount: float
    investment_type: str
    date: str
    description: Optional[str] = None
    created_at: str = field(default_factory=utc_now)


ENTITY_TYPES: Dict[str, Type[Entity]] = {
    cls.TABLE: cls for cls in (Profile, Customer, Installment, Project, Investment)
}


@dataclass
class ChangeLogEntry:
    """One row of the sync_metadata table."""
    id: int
    table_name: str
    record_id: str
    action: ChangeAction
    timestamp: str
    synced: bool = False
    attempts: int = 0
    last_error: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ChangeLogEntry:
        return cls(
            id=row["id"],
            table_name=row["table_name"],
            record_id=row["record_id"],
            action=ChangeAction(row["action"]),
            timestamp=row["timestamp"],
            synced=bool(row["synced"]),
            attempts=row["attempts"] or 0,
            last_error=row["last_error"],
        )


# =============================================================================
# DERIVED BALANCES
# =============================================================================

@dataclass(frozen=True)
class Balances:
    paid_amount: float = 0.0
    remaining_amount: float = 0.0
    progress_percentage: int = 0


def derive_balances(total_amount: float, installments: Iterable[Any]) -> Balances:
    """
    Compute paid/remaining/progress from a total and its installments.

    Installments may be Installment objects, row mappings, or bare amounts.
    Remaining goes negative on overpayment; nothing is clamped.
    """
    paid = 0.0
    for item in installments:
        if isinstance(item, Installment):
            paid += item.amount
        elif isinstance(item, Mapping):
            paid += _as_float(item.get("amount"))
        else:
            paid += _as_float(item)

    total = _as_float(total_amount)
    progress = math.floor(paid / total * 100 + 0.5) if total > 0 else 0
    return Balances(
        paid_amount=paid,
        remaining_amount=total - paid,
        progress_percentage=int(progress),
    )


@dataclass
class CustomerAccount:
    """A customer together with balances derived from its installments."""
    customer: Customer
    balances: Balances

    @property
    def id(self) -> str:
        return self.customer.id

    def to_dict(self) -> Dict[str, Any]:
        data = self.customer.to_record()
        data["paid_amount"] = self.balances.paid_amount
        data["remaining_amount"] = self.balances.remaining_amount
        return data


@dataclass
class ProjectAccount:
    """A project together with balances derived from its installments."""
    project: Project
    balances: Balances

    @property
    def id(self) -> str:
        return self.project.id

    def to_dict(self) -> Dict[str, Any]:
        data = self.project.to_record()
        data["paid_amount"] = self.balances.paid_amount
        data["remaining_amount"] = self.balances.remaining_amount
        data["progress_percentage"] = self.balances.progress_percentage
        return data


@dataclass
class DashboardStats:
    total_collected: float = 0.0
    total_expected: float = 0.0
    pending_amount: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EnhancedDashboardStats(DashboardStats):
    total_investment: float = 0.0
    net_profit: float = 0.0
    roi: int = 0
