"""
backend/preferences.py

Persistence for a user's prop firm selection (the committed list).

- load_prop_firms: read the committed list, seeding the catalog on first use
- save_prop_firms: replace the committed list in a single transaction

Callers pass a connection from backend.db.get_db_connection(); the write
only lands when that transaction commits, so a failed save never leaves a
partial list behind.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List

from sqlalchemy.engine import Connection

try:
    from backend.db import execute_query, fetch_all
except ModuleNotFoundError:
    from db import execute_query, fetch_all

from domains.prop_firms.catalog import default_catalog
from domains.prop_firms.models import PropFirm


def _row_to_firm(row: dict) -> PropFirm:
    return PropFirm(
        id=row["firm_id"],
        name=row["name"],
        description=row["description"] or "",
        is_selected=bool(row["is_selected"]),
        is_custom=bool(row["is_custom"]),
        match_keyword=row["match_keyword"] or "",
    )


def load_prop_firms(conn: Connection, user_id: int) -> List[PropFirm]:
    """
    Committed prop firms for a user, in display order.

    A user with no stored rows gets the default catalog (nothing selected),
    which is written so later commits have a baseline to validate against.
    """
    rows = fetch_all(
        conn,
        """
        SELECT firm_id, name, description, is_selected, is_custom, match_keyword
        FROM prop_firm_selections
        WHERE user_id = :user_id
        ORDER BY position
        """,
        {"user_id": user_id},
    )
    if rows:
        return [_row_to_firm(row) for row in rows]

    firms = default_catalog()
    save_prop_firms(conn, user_id, firms)
    print(f"[PREFS] Seeded catalog for user_id={user_id} ({len(firms)} firms)")
    return firms


def save_prop_firms(conn: Connection, user_id: int, firms: Iterable[PropFirm]) -> None:
    """Replace the user's committed list. Errors propagate to roll back the transaction."""
    now = datetime.now(timezone.utc).isoformat()

    execute_query(
        conn,
        "DELETE FROM prop_firm_selections WHERE user_id = :user_id",
        {"user_id": user_id},
    )
    for position, firm in enumerate(firms):
        execute_query(
            conn,
            """
            INSERT INTO prop_firm_selections (
                user_id, firm_id, position, name, description,
                is_selected, is_custom, match_keyword, updated_at
            ) VALUES (
                :user_id, :firm_id, :position, :name, :description,
                :is_selected, :is_custom, :match_keyword, :updated_at
            )
            """,
            {
                "user_id": user_id,
                "firm_id": firm.id,
                "position": position,
                "name": firm.name,
                "description": firm.description,
                "is_selected": firm.is_selected,
                "is_custom": firm.is_custom,
                "match_keyword": firm.match_keyword,
                "updated_at": now,
            },
        )
