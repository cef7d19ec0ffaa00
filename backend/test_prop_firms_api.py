"""
backend/test_prop_firms_api.py

API tests for auth, account info and prop firm commits.

Tests verify:
1. Login (including the DEV-only test plan override)
2. First load seeds the catalog with nothing selected
3. Commits are validated against the plan server-side (402/422)
4. Plan changes apply without re-login
5. A failed write leaves the previous commit intact (503)
6. The selection lifecycle manager round-trips through the API

Run:
    pytest backend/test_prop_firms_api.py -v
"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError, OperationalError

sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.main import app
from backend.accounts import create_user
from backend.db import execute_query, get_db_connection, init_db, init_engine
from domains.prop_firms.catalog import catalog_ids
from domains.prop_firms.models import PlanTier, PropFirm
from domains.prop_firms.selection import SelectionLifecycleManager, SelectionOutcome

client = TestClient(app)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def temp_db(tmp_path):
    """Point the engine at a fresh SQLite file for every test."""
    init_engine(f"sqlite:///{tmp_path / 'propflow_test.db'}")
    init_db()
    yield
    init_engine()


def make_user(email="trader@example.com", password="secret", plan=PlanTier.starter):
    with get_db_connection() as conn:
        return create_user(conn, email, password, plan=plan)


def auth_headers(email="trader@example.com", password="secret", plan=None):
    body = {"email": email, "password": password}
    if plan:
        body["plan"] = plan
    resp = client.post("/auth/login", json=body)
    assert resp.status_code == 200, f"Login failed: {resp.text}"
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def load(headers):
    resp = client.get("/prop-firms", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def selecting(firms, *ids):
    return [dict(f, is_selected=f["id"] in ids) for f in firms]


def commit(headers, firms):
    return client.put("/prop-firms", headers=headers, json={"prop_firms": firms})


# ============================================================================
# Test: Auth
# ============================================================================

def test_health():
    assert client.get("/health").json() == {"status": "ok"}


def test_login_returns_token_and_plan():
    make_user(plan=PlanTier.standard)

    resp = client.post("/auth/login", json={"email": "Trader@Example.com ", "password": "secret"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["access_token"]
    assert data["user"]["email"] == "trader@example.com"
    assert data["user"]["plan"] == "standard"


def test_login_rejects_bad_password():
    make_user()

    resp = client.post("/auth/login", json={"email": "trader@example.com", "password": "nope"})

    assert resp.status_code == 401


def test_login_unknown_user():
    resp = client.post("/auth/login", json={"email": "ghost@example.com", "password": "x"})

    assert resp.status_code == 401


def test_login_with_test_plan_in_dev():
    make_user(plan=PlanTier.premium)

    with patch("backend.main.IS_DEV", True):
        headers = auth_headers(plan="starter")

    info = client.get("/account/info", headers=headers).json()
    assert info["plan"] == "starter"
    assert info["selection_capacity"] == 1
    assert info["capacity_label"] == "1"
    assert info["custom_firms_enabled"] is False


def test_login_test_plan_forbidden_outside_dev():
    make_user()

    with patch("backend.main.IS_DEV", False):
        resp = client.post(
            "/auth/login",
            json={"email": "trader@example.com", "password": "secret", "plan": "premium"},
        )

    assert resp.status_code == 403


def test_login_test_plan_must_be_known():
    make_user()

    with patch("backend.main.IS_DEV", True):
        resp = client.post(
            "/auth/login",
            json={"email": "trader@example.com", "password": "secret", "plan": "gold"},
        )

    assert resp.status_code == 400
    assert "gold" in resp.json()["detail"]


def test_register_starts_on_starter():
    resp = client.post("/auth/register", json={"email": "new@example.com", "password": "pw"})

    assert resp.status_code == 200
    assert resp.json()["user"]["plan"] == "starter"

    dup = client.post("/auth/register", json={"email": "NEW@example.com", "password": "pw"})
    assert dup.status_code == 400


def test_protected_routes_require_token():
    resp = client.get("/prop-firms")

    assert resp.status_code in (401, 403)


def test_unrecognized_stored_plan_is_server_error():
    user = make_user()
    headers = auth_headers()
    with get_db_connection() as conn:
        execute_query(conn, "UPDATE users SET plan = 'gold' WHERE id = :id", {"id": user.id})

    resp = client.get("/prop-firms", headers=headers)

    assert resp.status_code == 500


def test_plans_are_public():
    plans = client.get("/account/plans").json()["plans"]

    assert [p["name"] for p in plans] == ["starter", "standard", "premium"]
    assert [p["capacity_label"] for p in plans] == ["1", "3", "∞"]


# ============================================================================
# Test: Prop firm commits
# ============================================================================

def test_first_load_seeds_catalog():
    make_user()
    data = load(auth_headers())

    assert [f["id"] for f in data["prop_firms"]] == catalog_ids()
    assert not any(f["is_selected"] for f in data["prop_firms"])
    assert data["plan"] == "starter"
    assert data["selection_capacity"] == 1


def test_starter_commit_within_capacity():
    make_user()
    headers = auth_headers()
    firms = load(headers)["prop_firms"]

    resp = commit(headers, selecting(firms, "ftmo"))

    assert resp.status_code == 200
    assert resp.json()["status"] == "saved"
    saved = load(headers)["prop_firms"]
    assert [f["id"] for f in saved if f["is_selected"]] == ["ftmo"]


def test_starter_commit_over_capacity_rejected():
    make_user()
    headers = auth_headers()
    firms = load(headers)["prop_firms"]

    resp = commit(headers, selecting(firms, "ftmo", "topstep"))

    assert resp.status_code == 402
    assert "Upgrade to Standard" in resp.json()["detail"]
    assert not any(f["is_selected"] for f in load(headers)["prop_firms"])


def test_custom_firm_requires_premium():
    make_user(plan=PlanTier.standard)
    headers = auth_headers()
    firms = load(headers)["prop_firms"]
    custom = {"id": "custom-abc", "name": "Acme", "description": "", "is_selected": False,
              "is_custom": True, "match_keyword": "ACME"}

    resp = commit(headers, firms + [custom])

    assert resp.status_code == 402
    assert len(load(headers)["prop_firms"]) == len(firms)


def test_premium_custom_firm_persisted():
    make_user(plan=PlanTier.premium)
    headers = auth_headers()
    firms = load(headers)["prop_firms"]
    custom = {"id": "custom-abc", "name": "Acme Capital", "description": "", "is_selected": True,
              "is_custom": True, "match_keyword": "ACMECAP"}

    resp = commit(headers, firms + [custom])

    assert resp.status_code == 200
    saved = load(headers)["prop_firms"][-1]
    assert saved["id"] == "custom-abc"
    assert saved["is_custom"] is True
    assert saved["is_selected"] is True
    assert saved["match_keyword"] == "ACMECAP"


def test_downgraded_user_cannot_rewrite_custom_firm():
    user = make_user(plan=PlanTier.premium)
    headers = auth_headers()
    firms = load(headers)["prop_firms"]
    custom = {"id": "custom-abc", "name": "Acme Capital", "description": "", "is_selected": False,
              "is_custom": True, "match_keyword": "ACMECAP"}
    assert commit(headers, firms + [custom]).status_code == 200

    with patch("backend.main.IS_DEV", True):
        client.post("/admin/set_plan", params={"user_id": user.id, "plan": "standard"})

    rewritten = dict(custom, name="Other Corp", match_keyword="OTHERCORP")
    resp = commit(headers, load(headers)["prop_firms"][:-1] + [rewritten])

    assert resp.status_code == 200
    saved = load(headers)["prop_firms"][-1]
    assert saved["name"] == "Acme Capital"
    assert saved["match_keyword"] == "ACMECAP"


def test_commit_cannot_remove_firms():
    make_user()
    headers = auth_headers()
    firms = load(headers)["prop_firms"]

    resp = commit(headers, firms[1:])

    assert resp.status_code == 422


def test_commit_with_invalid_payload():
    make_user()
    headers = auth_headers()

    resp = commit(headers, [{"id": "ftmo", "name": ""}])

    assert resp.status_code == 422


def test_plan_change_applies_without_relogin():
    user = make_user(plan=PlanTier.premium)
    headers = auth_headers()
    firms = load(headers)["prop_firms"]
    assert commit(headers, selecting(firms, "ftmo", "topstep", "fundednext")).status_code == 200

    with patch("backend.main.IS_DEV", True):
        resp = client.post("/admin/set_plan", params={"user_id": user.id, "plan": "starter"})
    assert resp.status_code == 200

    firms = load(headers)["prop_firms"]
    assert load(headers)["plan"] == "starter"

    # Keeping the inherited selection is allowed, swapping in a new firm is not
    assert commit(headers, firms).status_code == 200
    assert commit(headers, selecting(firms, "ftmo", "topstep", "earn2trade")).status_code == 402
    assert commit(headers, selecting(firms, "ftmo")).status_code == 200


def test_failed_write_keeps_previous_commit():
    make_user(plan=PlanTier.premium)
    headers = auth_headers()
    firms = load(headers)["prop_firms"]
    assert commit(headers, selecting(firms, "ftmo")).status_code == 200

    def failing_save(conn, user_id, _firms):
        execute_query(conn, "DELETE FROM prop_firm_selections WHERE user_id = :user_id", {"user_id": user_id})
        raise OperationalError("INSERT INTO prop_firm_selections", {}, Exception("disk I/O error"))

    with patch("backend.main.save_prop_firms", side_effect=failing_save):
        resp = commit(headers, selecting(firms, "topstep"))

    assert resp.status_code == 503
    saved = load(headers)["prop_firms"]
    assert [f["id"] for f in saved if f["is_selected"]] == ["ftmo"]


def test_failed_first_load_is_service_unavailable():
    make_user()
    headers = auth_headers()
    duplicate_seed = IntegrityError("INSERT INTO prop_firm_selections", {}, Exception("UNIQUE constraint failed"))

    with patch("backend.main.load_prop_firms", side_effect=duplicate_seed):
        resp = client.get("/prop-firms", headers=headers)

    assert resp.status_code == 503
    assert load(headers)["prop_firms"]


# ============================================================================
# Test: Lifecycle manager wired to the API
# ============================================================================

def test_manager_round_trip_through_api():
    make_user(plan=PlanTier.premium)
    headers = auth_headers()

    def api_commit(firms):
        payload = [f.model_dump() for f in firms]
        return commit(headers, payload).status_code == 200

    committed = [PropFirm(**f) for f in load(headers)["prop_firms"]]
    manager = SelectionLifecycleManager(committed, commit=api_commit)

    manager.toggle("ftmo", PlanTier.premium)
    manager.add_custom_firm("Acme Capital", "ACMECAP", PlanTier.premium)
    snapshot = manager.pending_firms

    assert manager.save_preferences().ok
    assert manager.has_pending_changes() is False

    reloaded = [PropFirm(**f) for f in load(headers)["prop_firms"]]
    assert tuple(reloaded) == snapshot


def test_manager_keeps_pending_when_server_rejects():
    user = make_user(plan=PlanTier.standard)
    headers = auth_headers()

    def api_commit(firms):
        return commit(headers, [f.model_dump() for f in firms]).status_code == 200

    committed = [PropFirm(**f) for f in load(headers)["prop_firms"]]
    manager = SelectionLifecycleManager(committed, commit=api_commit)
    manager.toggle("ftmo", PlanTier.standard)
    manager.toggle("topstep", PlanTier.standard)

    # Plan downgraded behind the client's back
    with patch("backend.main.IS_DEV", True):
        client.post("/admin/set_plan", params={"user_id": user.id, "plan": "starter"})

    result = manager.save_preferences()

    assert result.outcome == SelectionOutcome.persistence_error
    assert manager.has_pending_changes() is True
    assert manager.selected_count() == 2
