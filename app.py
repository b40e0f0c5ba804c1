"""
app.py
TAHA @NET subscriber & billing manager (Streamlit).
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
from datetime import date

import pandas as pd
import streamlit as st

import auth
import billing
import config
import db
import queries
import utils
from backend import BackendError
from models import MONTHS, BulkImportInput, ClaimSubscriberInput, MonthStatus, Ok, UserProfile, UserRole
from navigation import (
    PAGE_LABELS,
    Page,
    RenderState,
    SetupFlow,
    ShellState,
    default_page,
    pages_for,
    resolve_page,
    resolve_render_state,
)

st.set_page_config(page_title="TAHA @NET", layout="wide")

logger = logging.getLogger(__name__)

# Backend messages meaning "this account has no subscription behind it".
NOT_LINKED_MARKERS = (
    "does not have a user profile",
    "does not have an active subscription",
    "not booked",
)


def init_once():
    config.setup_logging()
    settings = config.load_settings()
    if settings.backend == "local":
        # Initialize DB + owner account if needed
        db.init_db(settings.admin_username, lambda: auth.hash_password(settings.admin_password))


def require_login():
    if "principal" not in st.session_state:
        st.session_state.principal = None
    if "token" not in st.session_state:
        st.session_state.token = None


def get_shell() -> ShellState:
    page = st.session_state.get("page")
    flow = st.session_state.get("setup_flow") or SetupFlow.PROFILE_FORM.value
    return ShellState(page=Page(page) if page else None, setup_flow=SetupFlow(flow))


def set_shell(shell: ShellState) -> None:
    st.session_state.page = shell.page.value if shell.page else None
    st.session_state.setup_flow = shell.setup_flow.value


def go_to(page: Page) -> None:
    set_shell(get_shell().navigate(page))
    st.rerun()


def logout():
    st.session_state.principal = None
    st.session_state.token = None
    set_shell(ShellState())
    queries.get_client().clear()


# ---------- Notifications ----------

def flash(message: str, icon: str = "✅") -> None:
    """Queue a toast for the next run (st.rerun drops toasts sent in the current one)."""
    st.session_state.setdefault("_flash", []).append((message, icon))


def show_flash() -> None:
    for message, icon in st.session_state.pop("_flash", []):
        st.toast(message, icon=icon)


def toast_error(error: Exception, fallback: str) -> None:
    message = error.message if isinstance(error, BackendError) and error.message else fallback
    st.toast(message, icon="❌")


def period_selectors(key: str) -> tuple[int, int]:
    today = date.today()
    years = utils.year_options(today)
    c1, c2 = st.columns(2)
    with c1:
        month = st.selectbox("Month", list(MONTHS), index=today.month - 1, format_func=MONTHS.get, key=f"{key}_month")
    with c2:
        year = st.selectbox("Year", years, index=years.index(today.year), key=f"{key}_year")
    return int(year), int(month)


# ---------- Gate screens ----------

def login_screen():
    st.title("🌐 TAHA @NET")
    st.caption("Internet Center Subscriber Management")

    settings = config.load_settings()
    col1, col2 = st.columns([1, 1])
    with col1:
        st.subheader("🔐 Login")
        username = st.text_input("Username", key="login_username")
        password = st.text_input("Password", type="password", key="login_password")
        if st.button("Login", type="primary"):
            try:
                identity = auth.login(username.strip(), password)
            except BackendError as e:
                st.error(e.message)
                return
            if identity is None:
                st.error("Invalid username or password.")
                return
            queries.get_client().clear()
            st.session_state.principal = identity.principal
            st.session_state.token = identity.token
            st.rerun()

    with col2:
        if settings.backend != "local":
            st.info("Sign in with your TAHA @NET account.")
            return
        st.subheader("🆕 Create account")
        new_user = st.text_input("Choose a username", key="register_username")
        new1 = st.text_input("Password", type="password", key="register_password")
        new2 = st.text_input("Confirm password", type="password", key="register_confirm")
        if st.button("Create account"):
            problem = auth.validate_new_password(new1, new2)
            if problem:
                st.error(problem)
                return
            try:
                identity = auth.register(new_user, new1)
            except BackendError as e:
                st.error(e.message)
                return
            queries.get_client().clear()
            st.session_state.principal = identity.principal
            st.session_state.token = None
            st.rerun()


def profile_setup_screen():
    st.title("مرحباً بك في TAHA @NET")
    st.caption("يرجى إعداد ملفك الشخصي للمتابعة.")

    with st.form("profile_setup"):
        name = st.text_input("الاسم الكامل", placeholder="أدخل اسمك الكامل")
        phone = st.text_input("رقم الهاتف", placeholder="أدخل رقم هاتفك")
        submitted = st.form_submit_button("متابعة", type="primary")

    if submitted:
        if not name.strip():
            st.toast("يرجى إدخال اسمك", icon="⚠️")
        elif not phone.strip():
            st.toast("يرجى إدخال رقم هاتفك", icon="⚠️")
        else:
            try:
                queries.save_caller_user_profile(UserProfile(name=name.strip(), phone=phone.strip()))
            except BackendError:
                logger.exception("Profile setup failed")
                st.toast("فشل إنشاء الملف الشخصي. يرجى المحاولة مرة أخرى.", icon="❌")
            else:
                flash("تم إنشاء الملف الشخصي بنجاح!")
                st.rerun()

    st.divider()
    st.caption("Already a subscriber? Link your account with the phone number we have on file.")
    if st.button("📱 Link my subscription"):
        set_shell(get_shell().start_claim())
        st.rerun()


def subscriber_login_screen():
    st.title("📱 تسجيل دخول المشترك")
    st.caption("أدخل رقم هاتفك المسجل للوصول إلى حسابك")

    raw = st.text_input("رقم الهاتف", placeholder="09xxxxxxxx", max_chars=10, key="claim_phone")
    st.caption("أدخل رقم هاتفك المكون من 10 أرقام والذي يبدأ بـ 09")
    phone = utils.sanitize_phone(raw)[: utils.PHONE_LENGTH]
    problem = utils.phone_validation_error(phone) if raw else None
    if problem:
        st.error(problem)

    c1, c2 = st.columns(2)
    with c1:
        if st.button("تسجيل الدخول", type="primary", disabled=not utils.is_valid_phone(phone)):
            try:
                queries.claim_subscriber(ClaimSubscriberInput(name=phone, phone=phone))
            except BackendError as e:
                logger.warning("Claim failed for %s: %s", phone, e.message)
                st.error(e.message or "حدث خطأ أثناء ربط الحساب")
                toast_error(e, "فشل ربط الحساب")
            else:
                flash("تم ربط الحساب بنجاح!")
                set_shell(get_shell().back_to_profile_form())
                st.rerun()
    with c2:
        if st.button("رجوع"):
            set_shell(get_shell().back_to_profile_form())
            st.rerun()


def access_denied_screen():
    st.header("🚫 Access Denied")
    st.caption("You do not have permission to access this page")
    st.error(
        "This page is restricted to administrators only. "
        "If you believe you should have access, please contact the system administrator."
    )


# ---------- Pages ----------

def operations_page():
    st.header("🛠️ Owner Operations")
    st.caption("Manage every part of the internet center")

    cards = [
        (Page.DASHBOARD, "📊 Dashboard", "Monthly and yearly dues at a glance."),
        (Page.SUBSCRIBERS, "👥 Subscribers", "Manage subscribers, bulk import, packages."),
        (Page.BILLING, "💵 Monthly Billing", "Due / paid status per subscriber and month."),
    ]
    for col, (page, title, text) in zip(st.columns(3), cards):
        with col:
            st.subheader(title)
            st.caption(text)
            if st.button(f"Open {PAGE_LABELS[page]}", key=f"ops_{page.value}", use_container_width=True):
                go_to(page)

    st.divider()

    st.subheader("Assign role")
    with st.form("assign_role"):
        c1, c2 = st.columns([2, 1])
        with c1:
            principal = st.text_input("User (principal)")
        with c2:
            role = st.selectbox("Role", [r.value for r in UserRole])
        submitted = st.form_submit_button("Assign", type="primary")
    if submitted:
        if not principal.strip():
            st.toast("Please enter a user", icon="⚠️")
        else:
            try:
                queries.assign_user_role(principal.strip(), UserRole(role))
            except BackendError as e:
                logger.exception("Role assignment failed")
                toast_error(e, "Failed to assign role")
            else:
                st.success(f"{principal.strip()} is now {role}.")

    st.subheader("Look up a profile")
    lookup = st.text_input("User (principal)", key="profile_lookup")
    if lookup.strip():
        try:
            profile = queries.user_profile(lookup.strip())
        except BackendError as e:
            st.error(e.message)
        else:
            if profile:
                st.write(f"**{profile.name}** · {utils.format_phone_display(profile.phone)}")
            else:
                st.caption("No profile for this user.")


def dashboard_page():
    st.header("📊 Dashboard")
    st.caption("Overview of dues and revenue")

    year, month = period_selectors("dashboard")

    try:
        month_total = queries.total_due_for_month(year, month)
        year_total = queries.total_due_for_year(year)
    except BackendError as e:
        st.error(f"Failed to load totals. {e.message}")
        return

    c1, c2 = st.columns(2)
    c1.metric(f"Outstanding · {MONTHS[month]} {year}", utils.format_usd(month_total))
    c2.metric(f"Outstanding · {year}", utils.format_usd(year_total))
    st.caption("Only months marked due and not yet paid are counted, for active subscribers.")

    st.divider()

    st.subheader(f"Bills for {MONTHS[month]} {year}")
    try:
        bills = queries.monthly_bills(year, month)
    except BackendError as e:
        st.error(f"Failed to load monthly bills. {e.message}")
        return
    if bills.subscribers:
        df = pd.DataFrame(
            [{"subscriber": b.full_name, "amount_due": utils.format_usd(b.amount_due)} for b in bills.subscribers]
        )
        st.dataframe(df, use_container_width=True, hide_index=True)
    else:
        st.caption("No active subscribers.")


def subscriber_form(packages, existing=None):
    by_id = {p.id: p for p in packages}
    package_ids = list(by_id)

    def package_label(pid):
        p = by_id[pid]
        return f"{p.name} - {utils.format_usd(p.price_usd)}/month"

    if existing:
        st.subheader(f"✏️ Edit Subscriber ({existing.full_name})")
        form_key = "edit_subscriber"
    else:
        st.subheader("➕ Add Subscriber")
        form_key = "add_subscriber"

    with st.form(form_key):
        col1, col2 = st.columns(2)
        with col1:
            full_name = st.text_input(
                "Full name *", value=existing.full_name if existing else "", key=f"{form_key}_full_name"
            )
            phone = st.text_input(
                "Phone *", value=existing.phone if existing else "", disabled=bool(existing), key=f"{form_key}_phone"
            )
            if existing:
                st.caption("Phone number cannot be changed")
        with col2:
            index = None
            if package_ids:
                index = package_ids.index(existing.package_id) if existing and existing.package_id in by_id else 0
            package_id = st.selectbox(
                "Package *",
                options=package_ids,
                index=index,
                format_func=package_label,
                placeholder="Select a package",
                key=f"{form_key}_package_id",
            )
            start_date = None
            if not existing:
                start_date = st.date_input("Subscription start date *", value=date.today(), key=f"{form_key}_start")
        submitted = st.form_submit_button("Update subscriber" if existing else "Create subscriber", type="primary")

    if not submitted:
        return

    if not full_name.strip() or not (existing or phone.strip()) or package_id is None:
        st.toast("Please fill in all required fields", icon="⚠️")
        return

    try:
        if existing:
            queries.update_subscriber(existing.phone, full_name.strip(), package_id, existing.active)
            st.session_state.edit_phone = None
            flash("Subscriber updated successfully")
        else:
            if queries.is_phone_number_taken(phone.strip()):
                st.toast("This phone number is already registered", icon="⚠️")
                return
            queries.create_subscriber(full_name.strip(), phone.strip(), package_id, utils.date_to_ns(start_date))
            flash("Subscriber created successfully")
    except BackendError as e:
        logger.exception("Save subscriber failed")
        toast_error(e, "Failed to save subscriber")
        return
    st.rerun()


def subscriber_actions(sub, packages):
    placeholder = utils.is_placeholder_phone(sub.phone)
    st.write(f"**{sub.full_name}** · {sub.phone if placeholder else utils.format_phone_display(sub.phone)}")
    if placeholder:
        st.caption("⏳ Pending claim: imported without a real phone number.")

    c1, c2, c3 = st.columns(3)
    with c1:
        if st.button("Edit", key=f"edit_{sub.id}"):
            st.session_state.edit_phone = sub.phone
            st.rerun()
    with c2:
        label = "Deactivate" if sub.active else "Reactivate"
        if st.button(label, key=f"active_{sub.id}"):
            try:
                queries.update_subscriber(sub.phone, sub.full_name, sub.package_id, not sub.active)
            except BackendError as e:
                logger.exception("Toggle active failed")
                toast_error(e, "Failed to update subscriber status")
            else:
                flash("Subscriber deactivated" if sub.active else "Subscriber reactivated")
                st.rerun()
    with c3:
        if utils.is_valid_whatsapp_phone(sub.phone):
            st.link_button("💬 WhatsApp", utils.whatsapp_url(sub.phone))
        else:
            st.button("💬 WhatsApp", key=f"wa_{sub.id}", disabled=True, help="Invalid phone number for WhatsApp")

    try:
        summary = queries.subscriber_billing_summary(sub.phone)
    except BackendError as e:
        st.caption(f"Billing summary unavailable: {e.message}")
        return
    m1, m2, m3 = st.columns(3)
    m1.metric("Months due", summary.months_due)
    m2.metric("Months paid", summary.months_paid)
    m3.metric("Outstanding", utils.format_usd(summary.total_outstanding))


def packages_section(packages):
    with st.expander("📦 Packages", expanded=not packages):
        if packages:
            df = pd.DataFrame(
                [{"id": p.id, "name": p.name, "monthly_price": utils.format_usd(p.price_usd)} for p in packages]
            )
            st.dataframe(df, use_container_width=True, hide_index=True)
        else:
            st.caption("No packages yet. Create one before adding subscribers.")

        c1, c2 = st.columns(2)
        with c1:
            with st.form("create_package"):
                st.write("**New package**")
                name = st.text_input("Name")
                price = st.number_input("Monthly price (USD)", min_value=0.0, step=0.5, format="%.2f")
                created = st.form_submit_button("Create package")
            if created:
                if not name.strip():
                    st.toast("Package name is required", icon="⚠️")
                else:
                    try:
                        queries.create_package(name.strip(), utils.dollars_to_cents(price))
                    except BackendError as e:
                        logger.exception("Create package failed")
                        toast_error(e, "Failed to create package")
                    else:
                        flash("Package created")
                        st.rerun()
        with c2:
            if not packages:
                return
            by_id = {p.id: p for p in packages}
            st.write("**Edit package**")
            pid = st.selectbox("Package", list(by_id), format_func=lambda i: by_id[i].name, key="edit_package_id")
            pkg = by_id[pid]
            # Keyed per package so the inputs start from the selected package's values.
            with st.form(f"update_package_{pid}"):
                new_name = st.text_input("Name", value=pkg.name, key=f"package_name_{pid}")
                new_price = st.number_input(
                    "Monthly price (USD)",
                    min_value=0.0,
                    value=pkg.price_usd / 100,
                    step=0.5,
                    format="%.2f",
                    key=f"package_price_{pid}",
                )
                updated = st.form_submit_button("Update package")
            if updated:
                try:
                    queries.update_package(pid, new_name.strip() or pkg.name, utils.dollars_to_cents(new_price))
                except BackendError as e:
                    logger.exception("Update package failed")
                    toast_error(e, "Failed to update package")
                else:
                    flash("Package updated")
                    st.rerun()


def bulk_import_section(packages):
    with st.expander("📥 Bulk import names"):
        if not packages:
            st.caption("Create a package first.")
            return
        by_id = {p.id: p for p in packages}
        with st.form("bulk_import"):
            names = st.text_area("Names (one per line or comma separated)")
            pid = st.selectbox("Package", list(by_id), format_func=lambda i: by_id[i].name, key="bulk_package_id")
            start = st.date_input("Subscription start date", value=date.today(), key="bulk_start")
            submitted = st.form_submit_button("Import")
        if not submitted:
            return
        parsed = utils.parse_bulk_names(names)
        if not parsed:
            st.toast("Please enter at least one name", icon="⚠️")
            return
        try:
            results = queries.bulk_create_subscribers(
                BulkImportInput(names="\n".join(parsed), package_id=pid, subscription_start_date=utils.date_to_ns(start))
            )
        except BackendError as e:
            logger.exception("Bulk import failed")
            toast_error(e, "Bulk import failed")
            return
        rows = []
        for r in results:
            if isinstance(r.outcome, Ok):
                rows.append({"name": r.name, "status": "created", "detail": r.outcome.value.phone})
            else:
                rows.append({"name": r.name, "status": "failed", "detail": r.outcome.reason or "Unknown error"})
        created = sum(1 for r in rows if r["status"] == "created")
        st.success(f"Imported {created} of {len(rows)} names.")
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def danger_zone():
    with st.expander("⚠️ Danger zone"):
        confirm = st.checkbox("I understand this deletes every subscriber and their billing", key="delete_all_confirm")
        if st.button("Delete all subscribers", type="secondary", disabled=not confirm):
            try:
                result = queries.delete_all_subscribers()
            except BackendError as e:
                logger.exception("Delete all subscribers failed")
                toast_error(e, "Failed to delete subscribers")
            else:
                st.session_state.pop("delete_all_confirm", None)
                flash(f"Deleted {result.subscribers_deleted} subscribers")
                st.rerun()


def subscribers_page():
    st.header("👥 Subscribers")
    st.caption("Manage your internet subscribers")

    try:
        subscribers = queries.all_active_subscribers()
        packages = queries.all_packages()
    except BackendError as e:
        st.error(f"Failed to load subscribers. {e.message}")
        return

    with st.sidebar:
        st.subheader("Search")
        search = st.text_input("Search (name/phone)", key="subscriber_search")

    needle = search.strip().lower()
    shown = [s for s in subscribers if needle in s.full_name.lower() or needle in s.phone] if needle else subscribers

    df = utils.subscribers_frame(shown, packages)
    if shown:
        st.dataframe(df, use_container_width=True, hide_index=True)
        st.download_button(
            "Download subscribers.csv",
            data=utils.subscribers_to_csv_bytes(shown, packages),
            file_name="subscribers.csv",
            mime="text/csv",
        )
    elif needle:
        st.caption("No subscribers found matching your search.")
    else:
        st.caption("No subscribers yet. Add your first subscriber to get started.")

    st.divider()

    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select subscriber")
        by_label = {f"{s.full_name} ({s.phone})": s for s in shown}
        selected = st.selectbox("Subscriber", options=["(none)"] + list(by_label))
        lookup = st.text_input("Or find by phone (includes inactive)", key="subscriber_lookup")
    with colB:
        sub = by_label.get(selected)
        if sub is None and lookup.strip():
            try:
                sub = queries.subscriber(lookup.strip())
            except BackendError as e:
                st.caption(e.message)
        if sub is not None:
            st.subheader("Subscriber actions")
            subscriber_actions(sub, packages)

    st.divider()

    editing = st.session_state.get("edit_phone")
    existing = next((s for s in subscribers if s.phone == editing), None) if editing else None
    if editing and existing is None:
        # Inactive subscribers are not in the active list.
        try:
            existing = queries.subscriber(editing)
        except BackendError as e:
            st.caption(f"Cannot edit {editing}: {e.message}")
            st.session_state.edit_phone = None
    if existing:
        subscriber_form(packages, existing=existing)
        if st.button("Cancel edit"):
            st.session_state.edit_phone = None
            st.rerun()
    else:
        subscriber_form(packages)

    st.divider()
    packages_section(packages)
    bulk_import_section(packages)
    danger_zone()


def _apply_status(row: billing.BillingRow, new_status, year: int, month: int, keys: tuple[str, str], message: str):
    try:
        queries.set_month_billing_status(row.phone, year, month, new_status.due, new_status.paid)
    except BackendError as e:
        logger.exception("Billing toggle failed for %s %d-%02d", row.phone, year, month)
        toast_error(e, "Failed to update billing status")
        for k in keys:
            st.session_state.pop(k, None)
        return
    # Widgets re-read the server state on the next run.
    for k in keys:
        st.session_state.pop(k, None)
    flash(message)
    st.rerun()


STATUS_BADGES = {billing.NOT_DUE: ":gray[Not Due]", billing.PAID: ":green[Paid]", billing.UNPAID: ":red[Unpaid]"}


def billing_page():
    st.header("💵 Monthly Billing")
    st.caption("Track and manage monthly payments")

    year, month = period_selectors("billing")

    try:
        subscribers = queries.all_active_subscribers()
        packages = queries.all_packages()
    except BackendError as e:
        st.error(f"Failed to load subscribers. {e.message}")
        return

    st.subheader(f"Billing for {MONTHS[month]} {year}")
    if not subscribers:
        st.caption("No active subscribers found.")
        return

    widths = [3, 2, 2, 1, 1, 1]
    for col, title in zip(st.columns(widths), ["Subscriber", "Package", "Amount Due", "Due", "Paid", "Status"]):
        col.markdown(f"**{title}**")

    for sub in subscribers:
        loaded = True
        try:
            entries = queries.billing_state(sub.phone)
        except BackendError as e:
            logger.warning("Billing state unavailable for %s: %s", sub.phone, e.message)
            entries, loaded = [], False
        row = billing.build_row(sub, packages, entries, year, month)
        due_key = f"due_{row.phone}_{year}_{month}"
        paid_key = f"paid_{row.phone}_{year}_{month}"

        c1, c2, c3, c4, c5, c6 = st.columns(widths)
        c1.write(row.full_name)
        c2.write(row.package_name)
        c3.write(utils.format_usd(row.amount))
        with c4:
            new_due = st.toggle(
                "Due", value=row.status.due, key=due_key, disabled=not loaded, label_visibility="collapsed"
            )
        with c5:
            new_paid = st.toggle(
                "Paid",
                value=row.status.paid,
                key=paid_key,
                disabled=not (loaded and row.paid_enabled),
                label_visibility="collapsed",
            )
        # A row whose state failed to load must not overwrite the stored record.
        if not loaded:
            c6.markdown(":orange[Unavailable]")
            continue
        c6.markdown(STATUS_BADGES[row.label])

        if new_due != row.status.due:
            _apply_status(
                row, billing.toggle_due(row.status), year, month, (due_key, paid_key),
                "Marked as due" if new_due else "Marked as not due",
            )
        elif new_paid != row.status.paid and row.paid_enabled:
            _apply_status(
                row, billing.toggle_paid(row.status), year, month, (due_key, paid_key),
                "Marked as paid" if new_paid else "Marked as unpaid",
            )


def my_dues_page():
    st.header("🧾 My Dues")
    st.caption("Your monthly amount due")

    year, month = period_selectors("dues")

    try:
        due = queries.caller_monthly_due(year, month)
    except BackendError as e:
        if any(marker in e.message for marker in NOT_LINKED_MARKERS):
            st.info(
                "Your account is not linked to an active subscription. "
                "Please contact the administrator to set up your subscription."
            )
        else:
            st.error(f"Failed to load payment dues. {e.message or 'Please try again later.'}")
        return

    st.subheader(f"Amount due for {MONTHS[month]} {year}")
    st.metric("Amount due", utils.format_usd(due.amount_cents))
    label = billing.status_label(MonthStatus(month=month, due=due.due, paid=due.paid))
    st.markdown(STATUS_BADGES[label])
    st.caption("Please contact the administrator for payment details.")


PAGE_RENDERERS = {
    Page.OPERATIONS: operations_page,
    Page.DASHBOARD: dashboard_page,
    Page.SUBSCRIBERS: subscribers_page,
    Page.BILLING: billing_page,
    Page.MY_DUES: my_dues_page,
}


def account_sidebar():
    if config.load_settings().backend != "local":
        return
    with st.sidebar.expander("Account"):
        p1 = st.text_input("New password", type="password", key="new_password")
        p2 = st.text_input("Confirm new password", type="password", key="confirm_password")
        if st.button("Update password"):
            problem = auth.validate_new_password(p1, p2)
            if problem:
                st.error(problem)
            else:
                auth.change_password(st.session_state.principal, p1)
                st.success("Password updated.")


def main_app(profile: UserProfile, is_admin: bool, role: UserRole):
    st.sidebar.title("🌐 TAHA @NET")
    st.sidebar.caption(f"Logged in as: {profile.name} ({role.value})")

    shell = get_shell()
    if shell.page is None:
        shell = shell.navigate(default_page(is_admin))
        set_shell(shell)

    allowed = pages_for(is_admin)
    labels = [PAGE_LABELS[p] for p in allowed]
    index = allowed.index(shell.page) if shell.page in allowed else None
    choice = st.sidebar.radio("Navigate", labels, index=index)
    if choice is not None and allowed[labels.index(choice)] != shell.page:
        shell = shell.navigate(allowed[labels.index(choice)])
        set_shell(shell)

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()
    account_sidebar()

    target = resolve_page(shell.page, is_admin)
    if isinstance(target, RenderState):
        access_denied_screen()
        return
    PAGE_RENDERERS[target]()


# --------- App entry ---------

def run():
    init_once()
    require_login()
    show_flash()

    if queries.current_identity() is None:
        login_screen()
        return

    try:
        profile = queries.caller_user_profile()
        is_admin = queries.is_caller_admin()
        role = queries.caller_user_role()
    except BackendError as e:
        logger.exception("Could not load caller account")
        st.error(f"Could not load your account. {e.message}")
        if st.button("Logout"):
            logout()
            st.rerun()
        return

    state = resolve_render_state(True, profile is not None, is_admin, get_shell().setup_flow)
    if state in (RenderState.PROFILE_SETUP, RenderState.SUBSCRIBER_CLAIM):
        if st.sidebar.button("Logout"):
            logout()
            st.rerun()
        if state == RenderState.PROFILE_SETUP:
            profile_setup_screen()
        else:
            subscriber_login_screen()
        return

    main_app(profile, is_admin, role)


if __name__ == "__main__":
    run()
