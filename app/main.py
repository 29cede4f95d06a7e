"""
Streamlit Frontend for Life Ledger

Page views only present state owned by the session controller and
call its operations. They never assign session state themselves.

DESIGN PRINCIPLES:
1. Nothing is visible before login
2. Every auth operation shows its outcome as a message
3. The impersonation banner is always visible while impersonating
4. Admin pages check the presented user's role
"""

import asyncio

import streamlit as st

from lifeledger.auth import AdminService, PermissionDeniedError, SessionController
from lifeledger.config import validate_all_settings
from lifeledger.models.records import RecordKind, ReportRange
from lifeledger.models.user import AuthNotice, NoticeLevel
from lifeledger.orchestrator import create_app_components
from lifeledger.queries import DashboardQuery, ReportQuery
from lifeledger.services import EmiService, OverpaymentError, RecurringService
from lifeledger.services.storage import RecordStorageInterface, StorageError


# Page configuration
st.set_page_config(
    page_title="Life Ledger",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def get_components():
    """
    Get or create this browser session's components.

    Each browser session owns its own controller; it is never shared
    between users of the same server process.
    """
    if "components" not in st.session_state:
        st.session_state.components = create_app_components()
    return st.session_state.components


def show_notices(notices: list[AuthNotice]):
    for notice in notices:
        if notice.level == NoticeLevel.SUCCESS:
            st.success(notice.message)
        elif notice.level == NoticeLevel.ERROR:
            st.error(notice.message)
        else:
            st.info(notice.message)


def main():
    """Main application entry point."""
    controller, admin_service, record_storage, dashboard_query = get_components()

    if controller.loading:
        with st.spinner("Checking your session..."):
            run_async(controller.check_session())

    show_notices(controller.pop_notices())

    if controller.user is None:
        render_auth_page(controller)
        return

    render_sidebar(controller)

    pages = ["📊 Dashboard", "💳 Payments", "📈 Reports", "⚙️ Settings"]
    if controller.user.is_admin:
        pages.insert(3, "🛡️ Admin")

    page = st.sidebar.radio("Navigate to:", pages, index=0)

    if page == "📊 Dashboard":
        render_dashboard_page(controller, dashboard_query)
    elif page == "💳 Payments":
        render_payments_page(controller, record_storage)
    elif page == "📈 Reports":
        render_reports_page(controller, record_storage)
    elif page == "🛡️ Admin":
        render_admin_page(controller, admin_service)
    elif page == "⚙️ Settings":
        render_settings_page(controller)


def render_sidebar(controller: SessionController):
    user = controller.user
    st.sidebar.title("💰 Life Ledger")
    if controller.is_demo_mode:
        st.sidebar.caption("Demo Mode - data is stored on this machine")
    st.sidebar.markdown(f"Signed in as **{user.username}** ({user.role.value})")

    if controller.is_impersonating:
        st.sidebar.warning(
            f"Viewing as {user.username}. "
            f"Your account: {controller.original_admin_user.username}"
        )
        if st.sidebar.button("↩️ Return to admin"):
            run_async(controller.return_to_admin())
            st.rerun()

    if st.sidebar.button("🚪 Log out"):
        run_async(controller.logout())
        st.rerun()

    st.sidebar.markdown("---")


def render_auth_page(controller: SessionController):
    """Render login and registration."""
    st.title("💰 Life Ledger")
    if controller.is_demo_mode:
        st.info("Demo Mode: no remote backend is configured. Default admin login is admin/admin.")

    login_tab, register_tab = st.tabs(["Log in", "Register"])

    with login_tab:
        with st.form("login_form"):
            username = st.text_input("Username")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Log in", type="primary")
        if submitted:
            if not username or not password:
                st.error("Please enter your username and password")
            elif run_async(controller.login(username, password)):
                st.rerun()
            else:
                show_notices(controller.pop_notices())

    with register_tab:
        with st.form("register_form"):
            username = st.text_input("Username", key="register_username")
            email = st.text_input("Email", key="register_email")
            password = st.text_input("Password", type="password", key="register_password")
            confirm = st.text_input("Confirm password", type="password")
            submitted = st.form_submit_button("Register")
        if submitted:
            if not username or not email or not password:
                st.error("All fields are required")
            elif password != confirm:
                st.error("Passwords do not match")
            else:
                run_async(controller.register(username, email, password))
                show_notices(controller.pop_notices())


def render_dashboard_page(controller: SessionController, dashboard_query: DashboardQuery):
    """Render the dashboard."""
    st.title("📊 Dashboard")

    try:
        stats = run_async(dashboard_query.get_stats(controller.user.id))
    except StorageError as e:
        st.error(f"Failed to load dashboard: {e}")
        return

    col1, col2, col3 = st.columns(3)
    col1.metric(
        f"Expenses (last {stats.window_days} days)",
        f"₹{stats.total_expenses_in_window:,.2f}",
    )
    col2.metric("Pending to-dos", stats.pending_todos)
    col3.metric("Active EMIs", stats.active_emis)

    st.subheader("🔔 Today's reminders")
    if not stats.today_reminders:
        st.info("No reminders for today.")
    for reminder in stats.today_reminders:
        st.markdown(f"- **{reminder.title}** at {reminder.reminder_date.strftime('%H:%M')}")


def render_payments_page(controller: SessionController, record_storage: RecordStorageInterface):
    """Render EMIs and recurring payments with their pay buttons."""
    st.title("💳 Payments")
    user_id = controller.user.id
    emi_service = EmiService(record_storage)
    recurring_service = RecurringService(record_storage)

    try:
        emis = run_async(record_storage.list_records(RecordKind.EMIS, user_id))
        recurring = run_async(record_storage.list_records(RecordKind.RECURRING_PAYMENTS, user_id))
    except StorageError as e:
        st.error(f"Failed to load payments: {e}")
        return

    st.subheader("EMIs")
    if not emis:
        st.info("No EMIs yet.")
    for emi in emis:
        c1, c2 = st.columns([3, 1])
        c1.markdown(
            f"**{emi.loan_name}**: ₹{emi.paid_amount:,.2f} of ₹{emi.total_amount:,.2f} paid "
            f"(₹{emi.remaining_amount:,.2f} remaining)"
        )
        if emi.is_active and c2.button(f"Pay ₹{emi.monthly_payment:,.2f}", key=f"emi_{emi.id}"):
            try:
                run_async(emi_service.record_payment(user_id, emi.id))
                st.success("EMI payment recorded successfully")
                st.rerun()
            except OverpaymentError as e:
                st.error(str(e))
            except StorageError as e:
                st.error(f"Failed to record EMI payment: {e}")

    st.subheader("Recurring payments")
    if not recurring:
        st.info("No recurring payments yet.")
    for payment in recurring:
        c1, c2 = st.columns([3, 1])
        c1.markdown(
            f"**{payment.title}**: ₹{payment.amount:,.2f} {payment.frequency.value}, "
            f"next due {payment.next_due_date.isoformat()}"
        )
        if c2.button("Process payment", key=f"recurring_{payment.id}"):
            try:
                run_async(recurring_service.process_payment(user_id, payment.id))
                st.success("Payment processed and next due date updated")
                st.rerun()
            except StorageError as e:
                st.error(f"Failed to process payment: {e}")


def render_reports_page(controller: SessionController, record_storage: RecordStorageInterface):
    """Render expense report figures."""
    st.title("📈 Reports")

    labels = {
        ReportRange.LAST_7_DAYS: "Last 7 days",
        ReportRange.LAST_30_DAYS: "Last 30 days",
        ReportRange.LAST_90_DAYS: "Last 90 days",
        ReportRange.THIS_MONTH: "This month",
    }
    report_range = st.selectbox(
        "Period", list(labels), index=1, format_func=lambda r: labels[r]
    )

    try:
        report = run_async(
            ReportQuery(record_storage).get_report(controller.user.id, report_range)
        )
    except StorageError as e:
        st.error(f"Failed to load report: {e}")
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total", f"₹{report.total:,.2f}")
    col2.metric("Daily average", f"₹{report.average_daily:,.2f}")
    col3.metric("Top category", report.highest_category or "None")
    col4.metric("Transactions", report.transaction_count)

    st.subheader("By category")
    for item in report.category_totals:
        st.markdown(f"- {item.category}: ₹{item.amount:,.2f}")

    # Long periods read better per month
    if report_range == ReportRange.LAST_90_DAYS:
        st.subheader("By month")
        series = report.monthly_totals.items()
    else:
        st.subheader("By day")
        series = ((day.isoformat(), amount) for day, amount in report.daily_totals.items())
    st.table([{"Period": key, "Amount": f"₹{amount:,.2f}"} for key, amount in series])


def render_admin_page(controller: SessionController, admin_service: AdminService):
    """Render user approval and impersonation."""
    st.title("🛡️ Admin")

    try:
        summary = run_async(admin_service.summarize())
    except PermissionDeniedError:
        st.error("Admin access required")
        return
    except StorageError as e:
        st.error(f"Failed to load users: {e}")
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total users", summary.total)
    col2.metric("Pending approval", len(summary.pending))
    col3.metric("Active", len(summary.active))
    col4.metric("Inactive", len(summary.inactive))

    st.markdown("---")

    for user in run_async(admin_service.list_users()):
        with st.expander(f"{user.username} ({user.email})"):
            st.markdown(
                f"Role: **{user.role.value}** · "
                f"Approved: **{user.is_approved}** · Active: **{user.is_active}**"
            )
            c1, c2, c3 = st.columns(3)
            try:
                if c1.button(
                    "Unapprove" if user.is_approved else "Approve",
                    key=f"approve_{user.id}",
                ):
                    run_async(admin_service.set_approved(user.id, not user.is_approved))
                    st.rerun()
                if c2.button(
                    "Deactivate" if user.is_active else "Activate",
                    key=f"active_{user.id}",
                ):
                    run_async(admin_service.set_active(user.id, not user.is_active))
                    st.rerun()
            except StorageError as e:
                st.caption(f"Details: {e}")
            finally:
                show_notices(admin_service.pop_notices())

            if user.id != controller.user.id and c3.button(
                "View as user", key=f"impersonate_{user.id}"
            ):
                run_async(controller.impersonate_user(user.id))
                st.rerun()


def render_settings_page(controller: SessionController):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    if status.get("supabase", False):
        st.success("✅ Supabase (Remote backend) - Configured")
    else:
        st.warning(f"⚠️ Supabase - {status.get('supabase_error', 'Not configured')}")

    st.markdown(f"**Mode:** {controller.mode.value}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "Set `SUPABASE_URL` and `SUPABASE_ANON_KEY` in a `.env` file to use "
        "the remote backend. Restart the app after changing them."
    )


if __name__ == "__main__":
    main()
