# frontend/app.py
# PropFlow – Prop Firm Tracking
#
# Run from repo root: streamlit run frontend/app.py
# Or from frontend folder: streamlit run app.py
#
# The DEV test plan switcher needs ENV=dev (or local) here AND ENV=dev on
# the backend, e.g. ENV=dev streamlit run frontend/app.py

from __future__ import annotations

import time
from typing import Optional

import streamlit as st

# Import environment config (robust fallback for different run contexts)
try:
    from frontend.config import IS_DEV, ENABLE_DEBUG_UI, ENV, SAVE_CONFIRMATION_SECONDS
except ModuleNotFoundError:
    from config import IS_DEV, ENABLE_DEBUG_UI, ENV, SAVE_CONFIRMATION_SECONDS

# Import centralized auth state management
try:
    from frontend.auth import (
        init_auth_state, set_auth, clear_auth, is_authenticated,
        require_auth, get_current_user, get_plan, build_login_payload
    )
except ModuleNotFoundError:
    from auth import (
        init_auth_state, set_auth, clear_auth, is_authenticated,
        require_auth, get_current_user, get_plan, build_login_payload
    )

# Import centralized API client
try:
    from frontend.api_client import api_request, commit_prop_firms, error_detail
except ModuleNotFoundError:
    from api_client import api_request, commit_prop_firms, error_detail

try:
    from frontend.prop_firm_settings import (
        Notice, notice_for, parse_firms, firm_label, selection_counter,
        plan_limit_lines, plan_limit_hint, over_capacity_hint,
        save_button_state, firms_dataframe,
    )
except ModuleNotFoundError:
    from prop_firm_settings import (
        Notice, notice_for, parse_firms, firm_label, selection_counter,
        plan_limit_lines, plan_limit_hint, over_capacity_hint,
        save_button_state, firms_dataframe,
    )

# Import DEV-only observability tools
try:
    from frontend.dev_observability import (
        track_event, get_recent_events, clear_debug_history,
        export_snapshot_json, detect_state_changes, update_fingerprint
    )
except ModuleNotFoundError:
    from dev_observability import (
        track_event, get_recent_events, clear_debug_history,
        export_snapshot_json, detect_state_changes, update_fingerprint
    )

from domains.prop_firms.models import PlanTier
from domains.prop_firms.plans import UnknownPlanError, can_use_feature, parse_plan_tier
from domains.prop_firms.selection import SelectionLifecycleManager

# --------------------------------------------------------------------
# DEV Observability - Keys to track
# --------------------------------------------------------------------

KEYS_OF_INTEREST = [
    "nav_page",
    "current_user",
    "plan",
    "plan_info",
    "auth_token",
    "_prefs_version",
    "_saved_at",
    "_backend_status",
]

PAGES = ["Prop Firms", "Plans"]

DEV_LOGIN_EMAIL = "test@example.com"
DEV_LOGIN_PASSWORD = "password"

# --------------------------------------------------------------------
# State helpers
# --------------------------------------------------------------------


def init_state() -> None:
    ss = st.session_state

    # Auth keys first
    init_auth_state()

    # Set in main() based on auth state
    ss.setdefault("nav_page", None)

    # Prop firm editor (SelectionLifecycleManager, created on first visit)
    ss.setdefault("prop_firm_manager", None)
    # Bumped whenever checkbox widgets must be rebuilt from the pending list
    ss.setdefault("_prefs_version", 0)
    ss.setdefault("_saved_at", None)
    ss.setdefault("_notices", [])

    ss.setdefault("_backend_status", "unknown")


init_state()

ss = st.session_state

# --------------------------------------------------------------------
# Navigation helper (single source of truth)
# --------------------------------------------------------------------

def go_to(page: str) -> None:
    """
    Deterministic navigation helper. Sets ss["nav_page"] and reruns.
    """
    st.session_state["nav_page"] = page
    st.rerun()

# --------------------------------------------------------------------
# Notices
# --------------------------------------------------------------------

def queue_notice(notice: Optional[Notice]) -> None:
    """Notices raised in widget callbacks are shown on the next render."""
    if notice is not None:
        ss["_notices"].append(notice)


def render_notices() -> None:
    notices = ss.get("_notices", [])
    ss["_notices"] = []
    for notice in notices:
        text = f"**{notice.title}** - {notice.description}" if notice.description else f"**{notice.title}**"
        if notice.variant == "error":
            st.error(text)
        elif notice.variant == "warning":
            st.warning(text)
        elif notice.variant == "info":
            st.info(text)
        else:
            st.success(text)

# --------------------------------------------------------------------
# Plan / prop firm loading
# --------------------------------------------------------------------

def current_plan() -> Optional[PlanTier]:
    """
    The user's plan as a PlanTier, or None (with an error shown) when the
    backend reports a plan this client does not recognize.
    """
    try:
        return parse_plan_tier(get_plan())
    except UnknownPlanError as e:
        print(f"[PLAN] ERROR: {e}")
        st.error("⚠️ Your account plan is not recognized. Please contact support.")
        return None


def refresh_plan_info() -> None:
    """Re-read plan and capacity so backend plan changes show up without re-login."""
    resp = api_request("GET", "/account/info", timeout=10)
    if resp is not None and resp.status_code == 200:
        info = resp.json()
        ss["plan_info"] = info
        ss["plan"] = info.get("plan")


def load_prop_firm_manager() -> Optional[SelectionLifecycleManager]:
    """
    Fetch the committed list and build the editor for it.

    The manager lives in session_state so pending edits survive reruns.
    """
    resp = api_request("GET", "/prop-firms", timeout=10)
    if resp is None:
        return None
    if resp.status_code != 200:
        st.error(f"Could not load prop firms: {error_detail(resp)}")
        return None

    data = resp.json()
    manager = SelectionLifecycleManager(parse_firms(data.get("prop_firms", [])), commit=commit_prop_firms)
    ss["prop_firm_manager"] = manager
    ss["plan"] = data.get("plan")
    ss["_prefs_version"] += 1

    if IS_DEV:
        print(f"[PREFS] Loaded {len(manager.committed_firms)} prop firms, selected={manager.selected_count()}")
    return manager

# --------------------------------------------------------------------
# Widget callbacks
# --------------------------------------------------------------------

def on_toggle_firm(firm_id: str, plan: PlanTier) -> None:
    manager: SelectionLifecycleManager = ss["prop_firm_manager"]
    result = manager.toggle(firm_id, plan)
    queue_notice(notice_for(result, "toggle"))

    if not result.ok:
        # Rebuild the checkboxes so the rejected click is not shown as checked
        ss["_prefs_version"] += 1

    if IS_DEV:
        track_event(ss, "prop_firm_toggled", {"firm_id": firm_id, "outcome": result.outcome.value})


def on_discard_changes() -> None:
    manager: SelectionLifecycleManager = ss["prop_firm_manager"]
    manager.discard_changes()
    ss["_prefs_version"] += 1
    if IS_DEV:
        track_event(ss, "prop_firms_discarded")

# --------------------------------------------------------------------
# Sidebar
# --------------------------------------------------------------------

def render_sidebar() -> None:
    with st.sidebar:
        st.markdown("## PropFlow")

        if ss.get("_backend_status") in ("timeout", "connection_error", "error"):
            st.error("⚠️ Backend unreachable")
        elif ss.get("_backend_status") == "ok":
            st.success("✅ Connected")

        st.markdown("---")
        st.markdown("### Account")

        current_user = get_current_user()
        if current_user and isinstance(current_user, dict):
            st.info(f"Logged in as: **{current_user.get('email', 'User')}**")
            plan = get_plan()
            st.caption(f"Plan: {plan.title() if plan else 'Loading...'}")

            st.markdown("---")
            for page in PAGES:
                if st.button(page, use_container_width=True, key=f"nav_{page}"):
                    go_to(page)

            if st.button("Logout", use_container_width=True, key="logout_btn"):
                clear_auth()
                if IS_DEV:
                    track_event(ss, "logout")
                go_to("Login")
        else:
            st.caption("Not logged in")

        if ENABLE_DEBUG_UI:
            render_debug_panel()


def render_debug_panel() -> None:
    st.markdown("---")
    with st.expander("🛠 DEV State Debug"):
        st.caption(f"Environment: {ENV}")
        st.caption(f"Auth token present: {'Yes' if ss.get('auth_token') else 'No'}")

        manager = ss.get("prop_firm_manager")
        if manager is not None:
            st.caption(
                f"Pending selected: {manager.selected_count()} | "
                f"Unsaved changes: {manager.has_pending_changes()}"
            )

        for event in get_recent_events(ss, limit=10):
            st.caption(f"{event['ts']} {event['name']}")

        st.download_button(
            "Export snapshot",
            data=export_snapshot_json(ss, KEYS_OF_INTEREST),
            file_name="propflow_state.json",
            mime="application/json",
        )
        if st.button("Clear history", key="clear_debug_history_btn"):
            clear_debug_history(ss)
            st.rerun()

# --------------------------------------------------------------------
# Pages
# --------------------------------------------------------------------

def render_login() -> None:
    # Widget keys can't be written after creation; clear them before the form on the next run
    if ss.get("_clear_login_fields"):
        ss.pop("login_email", None)
        ss.pop("login_password", None)
        ss.pop("_clear_login_fields", None)

    st.header("Login")

    show_test_options = False
    if ENABLE_DEBUG_UI:
        show_test_options = st.toggle("Show Test Options", key="show_test_options")

    with st.form("login_form"):
        email = st.text_input("Email", value=DEV_LOGIN_EMAIL if IS_DEV else "", key="login_email")
        password = st.text_input(
            "Password", type="password", value=DEV_LOGIN_PASSWORD if IS_DEV else "", key="login_password"
        )

        test_plan = None
        if show_test_options:
            test_plan = st.selectbox(
                "Test Plan Level",
                [tier.value for tier in PlanTier],
                index=[tier.value for tier in PlanTier].index(PlanTier.premium.value),
                key="login_test_plan",
            )
            st.caption(
                "This is for testing only. In production, plan levels would be managed by your backend."
            )

        submitted = st.form_submit_button("Login")

    if submitted:
        if not email or not password:
            st.error("Please enter email and password.")
            return

        resp = api_request("POST", "/auth/login", json=build_login_payload(email, password, test_plan), timeout=10)
        if resp is None:
            return
        if resp.status_code != 200:
            st.error(f"Login failed: {error_detail(resp, 'Invalid credentials')}")
            return

        data = resp.json()
        token = data.get("access_token")
        user = data.get("user", {})
        if not token:
            st.error("Login failed: incomplete session data.")
            return

        set_auth(token, user)
        if IS_DEV:
            track_event(ss, "login_success", {"user": user.get("email", "unknown"), "plan": user.get("plan")})
        ss["_clear_login_fields"] = True
        go_to("Prop Firms")

    st.divider()
    st.subheader("Register New Account")

    with st.form("register_form"):
        reg_email = st.text_input("Email", key="register_email")
        reg_password = st.text_input("Password", type="password", key="register_password")
        reg_submitted = st.form_submit_button("Register")

    if reg_submitted:
        if not reg_email or not reg_password:
            st.error("Please fill in all registration fields.")
            return

        resp = api_request("POST", "/auth/register", json={"email": reg_email, "password": reg_password}, timeout=10)
        if resp is None:
            return
        if resp.status_code != 200:
            st.error(f"Registration failed: {error_detail(resp)}")
            return

        data = resp.json()
        set_auth(data["access_token"], data.get("user", {}))
        if IS_DEV:
            track_event(ss, "register_success", {"user": reg_email})
        go_to("Prop Firms")


def render_prop_firms() -> None:
    if not require_auth(redirect_to_login=True):
        return

    refresh_plan_info()
    plan = current_plan()
    if plan is None:
        return

    manager: Optional[SelectionLifecycleManager] = ss.get("prop_firm_manager")
    if manager is None:
        manager = load_prop_firm_manager()
        if manager is None:
            return

    st.header("Prop Firms")
    st.caption("Select the prop firms you trade with. Transactions are matched on each firm's keyword.")

    render_notices()

    col1, col2 = st.columns(2)
    with col1:
        st.metric("Selected", selection_counter(manager, plan))
    with col2:
        st.metric("Plan", plan.value.title())

    hint = over_capacity_hint(manager, plan)
    if hint:
        st.warning(hint)

    # Firm list (pending copy)
    version = ss["_prefs_version"]
    for firm in manager.pending_firms:
        st.checkbox(
            firm_label(firm),
            value=firm.is_selected,
            key=f"firm_{firm.id}_{version}",
            disabled=not manager.can_select(firm.id, plan),
            on_change=on_toggle_firm,
            args=(firm.id, plan),
            help=firm.description or None,
        )
        if firm.description:
            st.caption(firm.description)

    render_custom_firm_form(manager, plan)

    limit_lines = plan_limit_lines(plan)
    if limit_lines:
        st.warning("**Plan Limits:**\n" + "\n".join(f"- {line}" for line in limit_lines))
        st.caption(plan_limit_hint(plan))

    # Footer: Cancel / Save
    dirty = manager.has_pending_changes()
    label, disabled = save_button_state(dirty, ss.get("_saved_at"), time.time(), SAVE_CONFIRMATION_SECONDS)

    col_cancel, col_save, col_note = st.columns([1, 2, 3])
    with col_cancel:
        if dirty:
            st.button("Cancel", key="discard_prefs_btn", on_click=on_discard_changes, disabled=disabled)
    with col_save:
        if st.button(label, key="save_prefs_btn", type="primary", disabled=disabled):
            result = manager.save_preferences()
            queue_notice(notice_for(result, "save"))
            if result.ok:
                ss["_saved_at"] = time.time()
                ss["_prefs_version"] += 1
            if IS_DEV:
                track_event(ss, "prop_firms_saved", {"outcome": result.outcome.value})
            st.rerun()
    with col_note:
        if dirty:
            st.caption("You have unsaved changes")

    with st.expander("Saved selection"):
        st.dataframe(firms_dataframe(manager.committed_firms), hide_index=True, use_container_width=True)


def render_custom_firm_form(manager: SelectionLifecycleManager, plan: PlanTier) -> None:
    if ss.get("_clear_custom_fields"):
        ss.pop("custom_firm_name", None)
        ss.pop("custom_firm_keyword", None)
        ss.pop("_clear_custom_fields", None)

    enabled = can_use_feature(plan, "custom_firms")

    st.markdown("---")
    if enabled:
        st.subheader("Add Custom Prop Firm")
    else:
        st.subheader("🔒 Add Custom Prop Firm")
        st.caption("(Premium Feature)")
        if st.button("👑 Upgrade", key="custom_firm_upgrade_btn"):
            go_to("Plans")

    with st.form("custom_firm_form"):
        name = st.text_input("Firm name", placeholder="Firm name (e.g. My Custom Firm)",
                             key="custom_firm_name", disabled=not enabled)
        keyword = st.text_input("Transaction keyword", placeholder="Transaction keyword (e.g. MYCUSTOM)",
                                key="custom_firm_keyword", disabled=not enabled)
        submitted = st.form_submit_button("Add Custom", disabled=not enabled)
    st.caption("Add custom prop firm names if they're not in the list above")

    if submitted:
        result = manager.add_custom_firm(name, keyword, plan)
        queue_notice(notice_for(result, "add_custom"))
        if result.ok:
            ss["_clear_custom_fields"] = True
            ss["_prefs_version"] += 1
        if IS_DEV:
            track_event(ss, "custom_firm_added", {"outcome": result.outcome.value})
        st.rerun()


def render_plans() -> None:
    if not require_auth(redirect_to_login=True):
        return

    st.header("Plans")

    resp = api_request("GET", "/account/plans", timeout=10)
    if resp is None:
        return
    if resp.status_code != 200:
        st.error(f"Could not load plans: {error_detail(resp)}")
        return

    current = get_plan()
    plans = resp.json().get("plans", [])
    columns = st.columns(len(plans)) if plans else []
    for col, plan in zip(columns, plans):
        with col:
            title = plan["name"].title()
            if plan["name"] == current:
                title += " (current)"
            st.subheader(title)
            st.markdown(f"**${plan['price_monthly']:.0f}/month**")
            if plan.get("trial_days"):
                st.caption(f"{plan['trial_days']}-day trial")
            st.caption(plan["summary"])
            for feature in plan.get("features", []):
                st.markdown(f"- {feature}")

    st.info("Plan changes are handled by billing. Contact support to change your plan.")

# --------------------------------------------------------------------
# Main
# --------------------------------------------------------------------

def main() -> None:
    # Auth keys must exist before any widget or API call on every rerun
    init_auth_state()

    # DEV: diff-based change detection (logs only when state changed)
    if IS_DEV:
        changed, old_fp, new_fp = detect_state_changes(ss)
        if changed:
            track_event(ss, "state_changed", {"old_fp": old_fp, "new_fp": new_fp})
            update_fingerprint(ss)

    # Logged-out users always land on Login
    if not ss.get("nav_page") or (ss["nav_page"] != "Login" and not is_authenticated()):
        ss["nav_page"] = "Prop Firms" if is_authenticated() else "Login"

    # Routing diagnostics (no tokens/emails)
    print(
        f"[ROUTING] page={ss.get('nav_page')} | token_present={bool(ss.get('auth_token'))} "
        f"| plan={ss.get('plan')}"
    )

    render_sidebar()

    nav_page = ss.get("nav_page", "Login")
    if nav_page == "Login":
        render_login()
    elif nav_page == "Prop Firms":
        render_prop_firms()
    elif nav_page == "Plans":
        render_plans()
    else:
        ss["nav_page"] = "Login"
        render_login()


if __name__ == "__main__":
    main()
