"""
backend/accounts.py

User records for PropFlow.

Source of truth for a user's plan: users.plan. It is read on every
authenticated request, so plan changes apply without re-login.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

try:
    from backend.db import execute_query, fetch_one
except ModuleNotFoundError:
    from db import execute_query, fetch_one

from domains.prop_firms.models import PlanTier


class EmailAlreadyRegisteredError(Exception):
    pass


@dataclass
class UserRecord:
    id: int
    email: str
    password_hash: str
    plan: str  # raw stored value; parsed by callers
    is_active: bool = True
    created_at: Optional[str] = None


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def verify_password(password: str, password_hash: str) -> bool:
    return hash_password(password) == password_hash


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _row_to_user(row: Optional[dict]) -> Optional[UserRecord]:
    if row is None:
        return None
    return UserRecord(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        plan=row["plan"],
        is_active=bool(row["is_active"]),
        created_at=row.get("created_at"),
    )


def get_user(conn: Connection, user_id: int) -> Optional[UserRecord]:
    row = fetch_one(
        conn,
        "SELECT id, email, password_hash, plan, is_active, created_at FROM users WHERE id = :id",
        {"id": user_id},
    )
    return _row_to_user(row)


def get_user_by_email(conn: Connection, email: str) -> Optional[UserRecord]:
    row = fetch_one(
        conn,
        "SELECT id, email, password_hash, plan, is_active, created_at FROM users WHERE email = :email",
        {"email": normalize_email(email)},
    )
    return _row_to_user(row)


def create_user(
    conn: Connection,
    email: str,
    password: str,
    plan: PlanTier = PlanTier.starter,
) -> UserRecord:
    """
    Insert a new user.

    Raises:
        EmailAlreadyRegisteredError: If the email is taken
    """
    email_norm = normalize_email(email)
    if get_user_by_email(conn, email_norm) is not None:
        raise EmailAlreadyRegisteredError(email_norm)

    try:
        row = execute_query(
            conn,
            """
            INSERT INTO users (email, password_hash, plan, is_active, created_at)
            VALUES (:email, :password_hash, :plan, :is_active, :created_at)
            RETURNING id
            """,
            {
                "email": email_norm,
                "password_hash": hash_password(password),
                "plan": plan.value,
                "is_active": True,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        ).first()
    except IntegrityError:
        raise EmailAlreadyRegisteredError(email_norm)

    return get_user(conn, row[0])


def set_user_plan(conn: Connection, user_id: int, plan: PlanTier) -> bool:
    """Update a user's plan. Returns False if the user does not exist."""
    result = execute_query(
        conn,
        "UPDATE users SET plan = :plan WHERE id = :id",
        {"plan": plan.value, "id": user_id},
    )
    return result.rowcount > 0


def ensure_demo_user(conn: Connection, email: str, password: str) -> UserRecord:
    """Create the dev login account (premium) if it does not exist yet."""
    user = get_user_by_email(conn, email)
    if user is not None:
        return user
    print(f"[ACCOUNTS] Seeding demo user {email}")
    return create_user(conn, email, password, plan=PlanTier.premium)
