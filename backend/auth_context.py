"""
backend/auth_context.py

Shared authentication context primitives for FastAPI dependency injection.

Contains:
- create_access_token / verify_token: JWT issue and verification
- AuthContext: Immutable per-request identity with the user's current plan
- require_auth_context: FastAPI dependency for auth enforcement

This module MUST NOT import backend.main to avoid circular dependencies.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict

try:
    from backend.config import ACCESS_TOKEN_MINUTES, ALGORITHM, IS_DEV, SECRET_KEY
    from backend.db import get_db_connection
    from backend.accounts import get_user
except ModuleNotFoundError:
    from config import ACCESS_TOKEN_MINUTES, ALGORITHM, IS_DEV, SECRET_KEY
    from db import get_db_connection
    from accounts import get_user

from domains.prop_firms.models import PlanTier
from domains.prop_firms.plans import UnknownPlanError, parse_plan_tier

# Security scheme for HTTPBearer
security = HTTPBearer()


# ---------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------
def create_access_token(data: Dict[str, Any]) -> str:
    payload = dict(data)
    payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_MINUTES)
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired or invalid
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Identity for protected endpoints, derived from the JWT and the users table.
    Never trust user_id or plan from request bodies or query params.
    """
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    plan: PlanTier


def require_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthContext:
    """
    Auth dependency for protected routes.

    The plan is re-read from the database on every request, so a plan change
    (upgrade, downgrade, DEV override) takes effect without a new token.

    Raises:
        HTTPException(401): Invalid/expired token or unknown user
        HTTPException(403): Inactive user
        HTTPException(500): Stored plan is not a known tier
    """
    payload = verify_token(credentials.credentials)
    user_id = payload.get("sub")

    if not user_id:
        print("[AUTH] Missing user_id in token payload")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    with get_db_connection() as conn:
        user = get_user(conn, int(user_id))

    if user is None:
        print(f"[AUTH] User not found: user_id={user_id}")
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        print(f"[AUTH] Inactive user attempted access: user_id={user_id}")
        raise HTTPException(status_code=403, detail="Account inactive")

    try:
        plan = parse_plan_tier(user.plan)
    except UnknownPlanError as e:
        print(f"[AUTH] ERROR: Unrecognized plan for user_id={user_id}: {e}")
        raise HTTPException(status_code=500, detail="Account plan is not recognized - this is a server error")

    ctx = AuthContext(user_id=user.id, email=user.email, plan=plan)

    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}, plan={ctx.plan.value}")

    return ctx
