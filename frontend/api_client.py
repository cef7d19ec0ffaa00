"""
frontend/api_client.py
Centralized API client for all backend requests.

This module ensures:
1. All API calls automatically attach Authorization header when authenticated
2. Consistent handling of 401 (session expiry) and 403
3. Centralized API base URL configuration (dev/staging/prod)
"""

import time
from typing import Any, Dict, List, Optional, Literal
import requests
import streamlit as st

# Import config (robust fallback for different run contexts)
try:
    from frontend.config import get_api_base_url, IS_DEV
except ModuleNotFoundError:
    from config import get_api_base_url, IS_DEV

try:
    from frontend.auth import get_auth_header, clear_auth
except ModuleNotFoundError:
    from auth import get_auth_header, clear_auth

from domains.prop_firms.models import PropFirm
from domains.prop_firms.selection import PersistenceFailure


__all__ = ["api_request", "get_api_base_url", "commit_prop_firms"]

PUBLIC_PATHS = ("/health", "/auth/login", "/auth/register", "/account/plans")


def is_public_endpoint(path: str) -> bool:
    """Public endpoints never get an Authorization header."""
    return path in PUBLIC_PATHS


def api_request(
    method: Literal["GET", "POST", "PUT", "DELETE"],
    path: str,
    json: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, Any]] = None,
    timeout: int = 20,
) -> Optional[requests.Response]:
    """
    Make an API request with automatic auth header attachment and error handling.

    This is the ONLY function that should make backend API calls.

    Security:
    - Never logs or prints tokens/auth headers
    - Uses configured base URL with environment validation

    Returns:
        Response object (any status) or None on connection/config error.
        A 401 on a protected endpoint clears auth and returns None.

    Raises:
        Does NOT raise exceptions - shows a user-facing message instead
    """
    try:
        base_url = get_api_base_url()
    except (RuntimeError, ValueError) as e:
        st.error(f"⚙️ Configuration error: {str(e)}")
        return None

    url = f"{base_url}{path}"
    headers = {"Accept": "application/json"}

    if not is_public_endpoint(path):
        auth_headers = get_auth_header()
        if not auth_headers:
            st.error("🔒 Authentication required. Please log in.")
            return None
        headers.update(auth_headers)

    try:
        resp = requests.request(method, url, json=json, params=params, headers=headers, timeout=timeout)
    except requests.exceptions.Timeout:
        if IS_DEV:
            print(f"[API] Timeout on {method} {path}")
        st.error(f"⏱️ Request timed out after {timeout}s. Please try again.")
        _update_backend_status("timeout")
        return None
    except requests.exceptions.ConnectionError:
        if IS_DEV:
            print(f"[API] Connection error on {method} {path}")
        st.error(f"🔌 Cannot connect to backend at {base_url}. Please check your connection.")
        _update_backend_status("connection_error")
        return None
    except requests.exceptions.RequestException as e:
        if IS_DEV:
            print(f"[API] Request error on {method} {path}: {type(e).__name__}")
        st.error("❌ Unexpected error talking to the backend.")
        _update_backend_status("error")
        return None

    _update_backend_status("ok")

    if resp.status_code == 401 and not is_public_endpoint(path):
        if IS_DEV:
            print(f"[API] 401 on {path}, session expired")
        _handle_session_expired()
        return None

    if resp.status_code == 403 and IS_DEV:
        print(f"[API] 403 Forbidden on {path}")

    return resp


def error_detail(resp: Optional[requests.Response], default: str = "Request failed") -> str:
    """Extract FastAPI's error detail from a response."""
    if resp is None:
        return default
    try:
        detail = resp.json().get("detail")
    except ValueError:
        return f"{default} (HTTP {resp.status_code})"
    if isinstance(detail, list):
        # Pydantic validation errors
        return "; ".join(str(item.get("msg", item)) for item in detail if isinstance(item, dict)) or default
    return str(detail) if detail else default


def commit_prop_firms(firms: List[PropFirm]) -> bool:
    """
    Commit collaborator for SelectionLifecycleManager: PUT the full list.

    Raises:
        PersistenceFailure: With the backend's reason when the commit is rejected
    """
    resp = api_request("PUT", "/prop-firms", json={"prop_firms": [f.model_dump() for f in firms]})
    if resp is None:
        raise PersistenceFailure("Could not reach the server")
    if resp.status_code != 200:
        raise PersistenceFailure(error_detail(resp, "Could not save preferences"))
    return True


def _handle_session_expired() -> None:
    """Clear auth and send the user back to Login."""
    st.warning("🔒 Your session has expired. Please log in again.")
    clear_auth()
    st.session_state["nav_page"] = "Login"
    st.rerun()


def _update_backend_status(status: str) -> None:
    """
    Record backend connection status in session state.

    Args:
        status: "ok", "timeout", "connection_error", "error"
    """
    ss = st.session_state
    ss["_backend_status"] = status
    ss["_backend_last_ping_time"] = time.time()
