# =============================================================================
# ledger_core/ui/__init__.py
# Streamlit Components
# =============================================================================

from .sync_indicator import (
    render_collection_chart,
    render_dashboard_metrics,
    render_sync_indicator,
)

__all__ = [
    "render_collection_chart",
    "render_dashboard_metrics",
    "render_sync_indicator",
]
