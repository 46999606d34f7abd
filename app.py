from __future__ import annotations
from datetime import date

import streamlit as st

from ledger_core.config import load_settings
from ledger_core.errors import ErrorContext
from ledger_core.logging import setup_logging
from ledger_core.offline import build_data_service
from ledger_core.services import AnalyticsService, ExportService
from ledger_core.ui import (
    render_collection_chart,
    render_dashboard_metrics,
    render_sync_indicator,
)

# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="Installment Ledger",
    page_icon="📒",
    layout="wide",
)


@st.cache_resource
def get_data_service():
    """One wired and started data service per Streamlit server process."""
    settings = load_settings()
    setup_logging(settings.log_level)
    service = build_data_service(settings)
    service.start()
    return service


service = get_data_service()

# ============================================================================
# SIDEBAR - PROFILE + SYNC
# ============================================================================
with st.sidebar:
    st.markdown("## 📒 Installment Ledger")

    profiles = service.get_profiles()
    profile = st.selectbox(
        "Profile",
        options=profiles,
        format_func=lambda p: p.name,
        key="profile",
    )

    with st.expander("➕ New profile"):
        new_name = st.text_input("Name", key="new_profile_name")
        if st.button("Create profile", key="create_profile"):
            with ErrorContext("Creating profile", notify=st.error) as ctx:
                service.add_profile(new_name)
            if not ctx.failed:
                st.rerun()

    st.markdown("---")
    render_sync_indicator(service, profile.id if profile else None)

if profile is None:
    st.info("Create a profile to start recording customers and payments.")
    st.stop()

# ============================================================================
# DASHBOARD
# ============================================================================
st.title(profile.name)

render_dashboard_metrics(service.get_enhanced_dashboard_stats(profile.id))

chart = AnalyticsService(service).collection_chart(profile.id, days=7)
if chart.success:
    render_collection_chart(chart.data)
else:
    st.warning(f"Chart unavailable: {chart.error}")

# ============================================================================
# CUSTOMERS
# ============================================================================
st.subheader("Customers")
accounts = service.get_customers(profile.id)
if accounts:
    st.dataframe(
        [
            {
                "Name": a.customer.name,
                "Phone": a.customer.phone,
                "Total": a.customer.total_amount,
                "Paid": a.balances.paid_amount,
                "Remaining": a.balances.remaining_amount,
                "Progress %": a.balances.progress_percentage,
            }
            for a in accounts
        ],
        use_container_width=True,
        hide_index=True,
    )
else:
    st.caption("No customers yet.")

col_customer, col_payment = st.columns(2)

with col_customer:
    with st.form("add_customer", clear_on_submit=True):
        st.markdown("**Add customer**")
        name = st.text_input("Name")
        phone = st.text_input("Phone")
        total_amount = st.number_input("Total amount", min_value=0.0, step=100.0)
        installment_amount = st.number_input("Installment amount", min_value=0.0, step=10.0)
        if st.form_submit_button("Save customer"):
            with ErrorContext("Saving customer", notify=st.error) as ctx:
                service.add_customer({
                    "profile_id": profile.id,
                    "name": name,
                    "phone": phone,
                    "total_amount": total_amount,
                    "installment_amount": installment_amount,
                })
            if not ctx.failed:
                st.rerun()

with col_payment:
    with st.form("add_installment", clear_on_submit=True):
        st.markdown("**Record payment**")
        customer = st.selectbox("Customer", options=accounts, format_func=lambda a: a.customer.name)
        amount = st.number_input("Amount", min_value=0.0, step=10.0)
        paid_on = st.date_input("Date", value=date.today())
        if st.form_submit_button("Save payment"):
            if customer is None:
                st.error("Add a customer first")
            else:
                with ErrorContext("Recording payment", notify=st.error) as ctx:
                    service.add_installment(customer.id, amount, paid_on)
                if not ctx.failed:
                    st.rerun()

# ============================================================================
# EXPORT
# ============================================================================
st.subheader("Export")
exporter = ExportService(service)
export_format = st.radio("Format", options=["csv", "json"], horizontal=True, key="export_format")
from_col, to_col = st.columns(2)
with from_col:
    export_start = st.date_input("Payments from", value=None, key="export_start")
with to_col:
    export_end = st.date_input("Payments to", value=None, key="export_end")

exports = {
    "⬇️ Customers": exporter.export_customers(profile.id, fmt=export_format),
    "⬇️ Payments": exporter.export_payments(
        profile.id, start_date=export_start, end_date=export_end, fmt=export_format,
    ),
}
for col, (label, export) in zip(st.columns(len(exports)), exports.items()):
    with col:
        if export.success:
            st.download_button(
                label,
                data=export.data,
                file_name=export.filename,
                mime=export.content_type,
                key=f"download_{export.filename}",
            )
        else:
            st.error(f"Export failed: {export.error}")
