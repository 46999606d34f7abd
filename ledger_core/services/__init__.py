# =============================================================================
# ledger_core/services/__init__.py
# Read-side Service Layer for the Installment Ledger
# =============================================================================
"""
Read-side services built on the offline-first data facade.

Usage Example:
-------------
    from ledger_core.offline import build_data_service
    from ledger_core.services import AnalyticsService, ExportService

    data = build_data_service(settings)

    result = AnalyticsService(data).customer_analytics(profile_id)
    if result.success:
        print(result.data.head())

    export = ExportService(data).export_customers(profile_id, fmt="csv")
"""

from .base_service import BaseService, ServiceResult
from .analytics_service import AnalyticsService
from .export_service import ExportService, ExportResult

__all__ = [
    "BaseService",
    "ServiceResult",
    "AnalyticsService",
    "ExportService",
    "ExportResult",
]
