# =============================================================================
# ledger_core/ui/sync_indicator.py
# Connection / Sync Status Widgets and Dashboard Components
# =============================================================================

from __future__ import annotations
from typing import Optional
import pandas as pd
import plotly.graph_objects as go
import streamlit as st

PRIMARY_COLOR = "#3b82f6"
GRID_COLOR = "rgba(148, 163, 184, 0.25)"

STATUS_BADGES = {
    "online": ("🟢", "Online"),
    "degraded": ("🟠", "Server unreachable"),
    "offline": ("🔴", "Offline"),
    "unknown": ("⚪", "Checking..."),
}


def render_sync_indicator(service, profile_id: Optional[str] = None) -> None:
    """
    Connection badge, pending-change count and a manual sync button.

    Args:
        service: UnifiedDataService
        profile_id: Profile to pull on manual sync (None pulls all)
    """
    status = service.get_status()
    icon, label = STATUS_BADGES.get(status["connection"]["status"], STATUS_BADGES["unknown"])
    pending = status["sync"]["pending_count"]

    st.markdown(f"**{icon} {label}**")
    if pending:
        st.caption(f"{pending} change(s) waiting to sync")
    if status["sync"]["last_sync_at"]:
        st.caption(f"Last sync: {status['sync']['last_sync_at'][:19].replace('T', ' ')} UTC")

    if st.button("🔄 Sync now", disabled=status["sync"]["is_syncing"], key="sync_now"):
        with st.spinner("Syncing..."):
            result = service.trigger_sync(profile_id)
        if result.success:
            st.success(f"{result.message} ({result.pushed} pushed, {result.pulled} pulled)")
        else:
            st.warning(result.message)


def render_dashboard_metrics(stats) -> None:
    """Headline numbers from EnhancedDashboardStats."""
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Collected", f"{stats.total_collected:,.0f}")
    col2.metric("Expected", f"{stats.total_expected:,.0f}")
    col3.metric("Pending", f"{stats.pending_amount:,.0f}")
    col4.metric("ROI", f"{stats.roi}%")


def render_collection_chart(chart: pd.DataFrame, key: str = "collection_chart") -> None:
    """Bar chart of daily collections."""
    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=chart["date"],
        y=chart["daily_total"],
        marker_color=PRIMARY_COLOR,
        name="Collected",
    ))
    fig.update_layout(
        title="Collections - last 7 days",
        height=320,
        margin=dict(l=20, r=20, t=50, b=20),
        showlegend=False,
    )
    fig.update_yaxes(showgrid=True, gridcolor=GRID_COLOR)
    st.plotly_chart(fig, use_container_width=True, key=key)
