# ---------------------------------------------------------
# backend/main.py
# PropFlow - Prop Firm Tracking Backend
#
# Run: uvicorn backend.main:app --reload (from repo root)
# ENV defaults to "dev" here; the DEV test plan override and /admin/set_plan
# are only served when ENV=dev. Start the frontend with ENV=dev (or local)
# so its test plan switcher is shown.
#
# - FastAPI + SQLAlchemy (SQLite locally, Postgres when DATABASE_URL is set)
# - /auth/login       : login (optional DEV-only test plan override)
# - /account/info     : plan, selection capacity, feature flags
# - /prop-firms (GET) : committed prop firm list
# - /prop-firms (PUT) : commit the full list (plan-validated server-side)
# ---------------------------------------------------------

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

# Import local modules (robust fallback for different run contexts)
try:
    from backend.config import (
        CORS_ORIGINS,
        DEMO_USER_EMAIL,
        DEMO_USER_PASSWORD,
        IS_DEV,
        SEED_DEMO_USER,
    )
    from backend.db import get_db_connection, init_db
    from backend.accounts import (
        EmailAlreadyRegisteredError,
        create_user,
        ensure_demo_user,
        get_user_by_email,
        set_user_plan,
        verify_password,
    )
    from backend.auth_context import AuthContext, create_access_token, require_auth_context
    from backend.preferences import load_prop_firms, save_prop_firms
    from backend.entitlements import (
        CommitValidationError,
        FeatureNotAllowedError,
        SelectionLimitError,
        validate_commit,
    )
except ModuleNotFoundError:
    from config import (
        CORS_ORIGINS,
        DEMO_USER_EMAIL,
        DEMO_USER_PASSWORD,
        IS_DEV,
        SEED_DEMO_USER,
    )
    from db import get_db_connection, init_db
    from accounts import (
        EmailAlreadyRegisteredError,
        create_user,
        ensure_demo_user,
        get_user_by_email,
        set_user_plan,
        verify_password,
    )
    from auth_context import AuthContext, create_access_token, require_auth_context
    from preferences import load_prop_firms, save_prop_firms
    from entitlements import (
        CommitValidationError,
        FeatureNotAllowedError,
        SelectionLimitError,
        validate_commit,
    )

from domains.prop_firms.models import PlanTier, PropFirm
from domains.prop_firms.plans import (
    UnknownPlanError,
    can_use_feature,
    capacity_label,
    get_plan_config,
    parse_plan_tier,
    selection_capacity,
)


# ---------------------------------------------------------
# Startup
# ---------------------------------------------------------
def bootstrap_db() -> None:
    init_db()
    if SEED_DEMO_USER:
        with get_db_connection() as conn:
            ensure_demo_user(conn, DEMO_USER_EMAIL, DEMO_USER_PASSWORD)


bootstrap_db()

app = FastAPI(title="PropFlow API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------
# Request / response models
# ---------------------------------------------------------
class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: str
    password: str
    # DEV-only: log in with a chosen plan for testing
    plan: Optional[str] = None


class PropFirmsCommitRequest(BaseModel):
    prop_firms: List[PropFirm]


def user_payload(user_id: int, email: str, plan: PlanTier) -> Dict[str, Any]:
    return {"id": user_id, "email": email, "plan": plan.value}


def plan_payload(plan: PlanTier) -> Dict[str, Any]:
    return {
        "plan": plan.value,
        "selection_capacity": selection_capacity(plan),
        "capacity_label": capacity_label(plan),
        "custom_firms_enabled": can_use_feature(plan, "custom_firms"),
    }


def firms_payload(firms: List[PropFirm]) -> List[Dict[str, Any]]:
    return [firm.model_dump() for firm in firms]


# ============================================================================
# API ENDPOINT CLASSIFICATION
# ============================================================================
#
# [PUBLIC]
#   • /health
#   • /auth/register
#   • /auth/login
#   • /account/plans
#
# [AUTH_ONLY] - scoped to the authenticated user via AuthContext
#   • /account/info
#   • /prop-firms (GET, PUT)
#
# [DEV-ONLY]
#   • /admin/set_plan - gated by IS_DEV
#   • plan override on /auth/login - gated by IS_DEV
#
# ============================================================================

# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/register")
def register(req: RegisterRequest):
    try:
        with get_db_connection() as conn:
            user = create_user(conn, req.email, req.password, plan=PlanTier.starter)
    except EmailAlreadyRegisteredError:
        raise HTTPException(status_code=400, detail="Email already registered")

    print(f"[REGISTER] User created: user_id={user.id}, plan={user.plan}")

    plan = parse_plan_tier(user.plan)
    access_token = create_access_token({"sub": str(user.id), "email": user.email})
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": user_payload(user.id, user.email, plan),
    }


@app.post("/auth/login")
def login(req: LoginRequest):
    requested_plan: Optional[PlanTier] = None
    if req.plan:
        if not IS_DEV:
            raise HTTPException(status_code=403, detail="Test plan selection only available in dev")
        try:
            requested_plan = parse_plan_tier(req.plan)
        except UnknownPlanError as e:
            raise HTTPException(status_code=400, detail=str(e))

    with get_db_connection() as conn:
        user = get_user_by_email(conn, req.email)
        if user is None:
            print("[LOGIN] User not found by email")
            raise HTTPException(status_code=401, detail="Invalid credentials")

        if not verify_password(req.password, user.password_hash):
            print(f"[LOGIN] Password verification failed: user_id={user.id}")
            raise HTTPException(status_code=401, detail="Invalid credentials")

        if not user.is_active:
            raise HTTPException(status_code=403, detail="Account inactive")

        if requested_plan is not None:
            set_user_plan(conn, user.id, requested_plan)
            user.plan = requested_plan.value
            print(f"[LOGIN] DEV plan override: user_id={user.id}, plan={requested_plan.value}")

    try:
        plan = parse_plan_tier(user.plan)
    except UnknownPlanError as e:
        print(f"[LOGIN] ERROR: Unrecognized plan for user_id={user.id}: {e}")
        raise HTTPException(status_code=500, detail="Account plan is not recognized - this is a server error")

    access_token = create_access_token({"sub": str(user.id), "email": user.email})
    print(f"[LOGIN] Login successful: user_id={user.id}, plan={plan.value}")

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": user_payload(user.id, user.email, plan),
    }


@app.get("/account/info")
def get_account_info(ctx: AuthContext = Depends(require_auth_context)):
    info = {"user_id": ctx.user_id, "email": ctx.email}
    info.update(plan_payload(ctx.plan))
    return info


@app.get("/account/plans")
def get_available_plans():
    return {"plans": [get_plan_config(plan) for plan in PlanTier]}


@app.post("/admin/set_plan")
def admin_set_plan(user_id: int, plan: str):
    """
    Change a user's plan (dev/testing only).
    In production, plans are managed by billing.
    """
    if not IS_DEV:
        raise HTTPException(status_code=403, detail="Admin endpoints only available in dev")

    try:
        plan_tier = parse_plan_tier(plan)
    except UnknownPlanError:
        valid_plans = [p.value for p in PlanTier]
        raise HTTPException(status_code=400, detail=f"Invalid plan name. Valid options: {valid_plans}")

    with get_db_connection() as conn:
        updated = set_user_plan(conn, user_id, plan_tier)

    if not updated:
        raise HTTPException(status_code=404, detail="User not found")

    print(f"[ADMIN] Set user {user_id} plan to {plan_tier.value}")
    return {"status": "ok", "user_id": user_id, "plan": plan_tier.value}


@app.get("/prop-firms")
def list_prop_firms(ctx: AuthContext = Depends(require_auth_context)):
    try:
        with get_db_connection() as conn:
            firms = load_prop_firms(conn, ctx.user_id)
    except SQLAlchemyError as e:
        # First load seeds the catalog, so this can fail on a concurrent seed
        print(f"[PREFS] ERROR: Load failed for user_id={ctx.user_id}: {type(e).__name__}")
        raise HTTPException(status_code=503, detail="Could not load preferences - please try again")

    result = {"prop_firms": firms_payload(firms)}
    result.update(plan_payload(ctx.plan))
    return result


@app.put("/prop-firms")
def commit_prop_firms(req: PropFirmsCommitRequest, ctx: AuthContext = Depends(require_auth_context)):
    """
    Commit the user's full prop firm list (the frontend's pending list).

    The write is all-or-nothing: on any error the previously committed list
    stays in place and the client keeps its pending edits for a retry.
    """
    try:
        with get_db_connection() as conn:
            stored = load_prop_firms(conn, ctx.user_id)
            firms = validate_commit(stored, req.prop_firms, ctx.plan)
            save_prop_firms(conn, ctx.user_id, firms)
    except CommitValidationError as e:
        print(f"[PREFS] Rejected commit: user_id={ctx.user_id}, reason={e}")
        raise HTTPException(status_code=422, detail=str(e))
    except (FeatureNotAllowedError, SelectionLimitError) as e:
        print(f"[PREFS] Plan restriction: user_id={ctx.user_id}, plan={ctx.plan.value}, reason={e}")
        raise HTTPException(status_code=402, detail=str(e))
    except SQLAlchemyError as e:
        print(f"[PREFS] ERROR: Commit failed for user_id={ctx.user_id}: {type(e).__name__}")
        raise HTTPException(status_code=503, detail="Could not save preferences - please try again")

    selected = sum(1 for firm in firms if firm.is_selected)
    print(f"[PREFS] Saved: user_id={ctx.user_id}, firms={len(firms)}, selected={selected}")

    result = {"status": "saved", "prop_firms": firms_payload(firms)}
    result.update(plan_payload(ctx.plan))
    return result
