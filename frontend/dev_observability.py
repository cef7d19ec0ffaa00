# frontend/dev_observability.py
# DEV-only state observability for the prop firm editor and login session

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

# Sensitive keys that must be redacted
SENSITIVE_KEYS = {
    "auth_token",
    "password",
    "login_password",
    "jwt",
    "token",
    "secret",
}

MAX_EVENTS = 100


def redact_value(key: str, value: Any) -> Any:
    """
    Redact sensitive values.
    - If key is sensitive: return "[REDACTED]"
    - If key is an id and the value is a long string: return last 4 chars
    - Otherwise: return actual value
    """
    key_lower = key.lower()

    if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
        return "[REDACTED]"

    if key_lower.endswith("id") and isinstance(value, str) and len(value) > 4:
        return f"…{value[-4:]}"

    return value


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_state_fingerprint(session_state: dict) -> str:
    """
    Compute a stable fingerprint of the session state that drives rendering.

    Includes the page, the user id and plan, and the editor's pending
    selection (ids only). Tokens, emails and timestamps are left out.

    Returns:
        Short hash string (first 12 chars of SHA256)
    """
    fingerprint_data = {
        "nav_page": session_state.get("nav_page"),
        "plan": session_state.get("plan"),
    }

    current_user = session_state.get("current_user")
    if current_user and isinstance(current_user, dict):
        fingerprint_data["user_id"] = current_user.get("id")

    plan_info = session_state.get("plan_info")
    if plan_info and isinstance(plan_info, dict):
        fingerprint_data["info_plan"] = plan_info.get("plan")

    manager = session_state.get("prop_firm_manager")
    if manager is not None:
        fingerprint_data["pending_selected"] = [f.id for f in manager.pending_firms if f.is_selected]
        fingerprint_data["pending_count"] = len(manager.pending_firms)
        fingerprint_data["dirty"] = manager.has_pending_changes()

    json_str = json.dumps(fingerprint_data, sort_keys=True, default=str)
    return hashlib.sha256(json_str.encode()).hexdigest()[:12]


def detect_state_changes(session_state: dict) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Detect if session state has changed since the last update_fingerprint().

    Returns:
        (changed, old_fingerprint, new_fingerprint)
    """
    new_fingerprint = compute_state_fingerprint(session_state)
    old_fingerprint = session_state.get("_debug_last_fingerprint")

    if old_fingerprint is None:
        return True, None, new_fingerprint

    return new_fingerprint != old_fingerprint, old_fingerprint, new_fingerprint


def update_fingerprint(session_state: dict) -> None:
    session_state["_debug_last_fingerprint"] = compute_state_fingerprint(session_state)
    session_state["_debug_last_change_time"] = now_iso()


def track_event(session_state: dict, event_name: str, details: Optional[Dict[str, Any]] = None) -> None:
    """
    Append an event to the session event timeline.

    Args:
        session_state: Streamlit session_state dict
        event_name: Short descriptive name (e.g., "login_success", "prop_firm_toggled")
        details: Optional dict of additional context (will be redacted)
    """
    events = session_state.setdefault("_dev_events", [])

    event: Dict[str, Any] = {"ts": now_iso(), "name": event_name}
    if details:
        event["details"] = {k: redact_value(k, v) for k, v in details.items()}

    events.append(event)

    if len(events) > MAX_EVENTS:
        session_state["_dev_events"] = events[-MAX_EVENTS:]


def snapshot_state(session_state: dict, keys_of_interest: List[str]) -> Dict[str, Any]:
    """Create a redacted snapshot of the given session state keys."""
    snapshot = {}
    for key in keys_of_interest:
        if key in session_state:
            snapshot[key] = {"value": redact_value(key, session_state[key]), "exists": True}
        else:
            snapshot[key] = {"exists": False}
    return snapshot


def get_recent_events(session_state: dict, limit: int = 30) -> List[Dict[str, Any]]:
    """Most recent events first."""
    events = session_state.get("_dev_events", [])
    return list(reversed(events[-limit:]))


def clear_debug_history(session_state: dict) -> None:
    if "_dev_events" in session_state:
        session_state["_dev_events"] = []


def export_snapshot_json(session_state: dict, keys_of_interest: List[str]) -> str:
    """
    Export a diagnostic snapshot (state, recent events, change detection)
    as a formatted JSON string.
    """
    changed, old_fp, new_fp = detect_state_changes(session_state)

    export = {
        "timestamp": now_iso(),
        "state": snapshot_state(session_state, keys_of_interest),
        "recent_events": get_recent_events(session_state, limit=50),
        "change_detection": {
            "changed_since_last": changed,
            "old_fingerprint": old_fp,
            "new_fingerprint": new_fp,
            "last_change_time": session_state.get("_debug_last_change_time"),
        },
    }

    return json.dumps(export, indent=2, default=str)
