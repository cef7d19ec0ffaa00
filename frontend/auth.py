"""
frontend/auth.py
Centralized authentication state management for the PropFlow frontend.

Streamlit reruns the whole script on every interaction, so auth state must
be initialized at the top of every rerun and read from one place:

- init_auth_state(): MUST be called at the top of main()
- set_auth(): Atomically updates all auth-related keys when login succeeds
- clear_auth(): Wipes auth state (and the prop firm editor) on logout/expiry
- require_auth(): Guards protected pages
- get_auth_header(): Authorization header dict for API calls
- build_login_payload(): Request body for /auth/login
"""

from typing import Optional, Dict, Any
import streamlit as st

try:
    from frontend.config import ENABLE_DEBUG_UI
except ModuleNotFoundError:
    from config import ENABLE_DEBUG_UI


def init_auth_state() -> None:
    """
    Initialize authentication-related session state keys.

    Idempotent - safe to call on every rerun.
    """
    ss = st.session_state

    ss.setdefault("auth_token", None)
    ss.setdefault("current_user", None)
    ss.setdefault("is_authenticated", False)

    # Plan info from /account/info
    # Structure: {"plan": "standard", "selection_capacity": 3, "capacity_label": "3", ...}
    ss.setdefault("plan_info", None)
    ss.setdefault("plan", None)

    # Keep is_authenticated in sync with token presence
    if ss["auth_token"] and not ss["is_authenticated"]:
        ss["is_authenticated"] = True
    elif not ss["auth_token"] and ss["is_authenticated"]:
        ss["is_authenticated"] = False


def set_auth(auth_token: str, current_user: Dict[str, Any]) -> None:
    """
    Set authentication state after successful login/register.

    Args:
        auth_token: JWT access token (Bearer token for API calls)
        current_user: User object from backend (id, email, plan)
    """
    ss = st.session_state

    ss["auth_token"] = auth_token
    ss["current_user"] = current_user
    ss["is_authenticated"] = True

    if isinstance(current_user, dict):
        ss["plan"] = current_user.get("plan")

    # A different user (or plan) must not inherit a previous editor
    ss["prop_firm_manager"] = None
    ss["plan_info"] = None


def clear_auth() -> None:
    """Clear all authentication state. Safe to call multiple times."""
    ss = st.session_state

    ss["auth_token"] = None
    ss["current_user"] = None
    ss["is_authenticated"] = False
    ss["plan"] = None
    ss["plan_info"] = None
    ss["prop_firm_manager"] = None


def is_authenticated() -> bool:
    return bool(st.session_state.get("auth_token"))


def get_current_user() -> Optional[Dict[str, Any]]:
    return st.session_state.get("current_user")


def get_auth_header() -> Dict[str, str]:
    """
    Get Authorization header dict for API requests.

    Returns:
        {"Authorization": "Bearer <token>"} if authenticated, {} otherwise
    """
    token = st.session_state.get("auth_token")
    if token:
        return {"Authorization": f"Bearer {token}"}
    return {}


def require_auth(redirect_to_login: bool = True) -> bool:
    """
    Guard for protected pages.

    Usage at top of page render functions:
        if not require_auth():
            return

    Returns:
        True if authenticated (continue execution), False otherwise
    """
    if not is_authenticated():
        st.warning("⚠️ You must be logged in to access this page.")

        if redirect_to_login:
            st.session_state["nav_page"] = "Login"
            st.info("Please log in to continue.")

        if st.button("Go to Login", type="primary"):
            st.session_state["nav_page"] = "Login"
            st.rerun()

        return False

    return True


def get_plan() -> Optional[str]:
    """
    Get current user's plan.

    Prefers the latest /account/info result over the plan returned at login,
    so a plan change on the backend shows up without logging in again.
    """
    info = st.session_state.get("plan_info")
    if info and isinstance(info, dict):
        return info.get("plan")
    return st.session_state.get("plan")


def build_login_payload(email: str, password: str, test_plan: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the /auth/login request body.

    The test plan is only sent when the debug UI is enabled; the backend
    rejects it outside dev anyway.
    """
    payload: Dict[str, Any] = {"email": email.strip(), "password": password}
    if test_plan and ENABLE_DEBUG_UI:
        payload["plan"] = test_plan
    return payload
