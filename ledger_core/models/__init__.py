# =============================================================================
# ledger_core/models/__init__.py
# =============================================================================

from .entities import (
    Balances,
    ChangeAction,
    ChangeLogEntry,
    Customer,
    CustomerAccount,
    DashboardStats,
    ENTITY_TYPES,
    EnhancedDashboardStats,
    Entity,
    Installment,
    Investment,
    InvestmentType,
    Profile,
    Project,
    ProjectAccount,
    derive_balances,
    new_id,
    utc_now,
)

__all__ = [
    "Balances",
    "ChangeAction",
    "ChangeLogEntry",
    "Customer",
    "CustomerAccount",
    "DashboardStats",
    "ENTITY_TYPES",
    "EnhancedDashboardStats",
    "Entity",
    "Installment",
    "Investment",
    "InvestmentType",
    "Profile",
    "Project",
    "ProjectAccount",
    "derive_balances",
    "new_id",
    "utc_now",
]
