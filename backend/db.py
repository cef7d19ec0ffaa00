# backend/db.py
# Database layer supporting PostgreSQL (production) and SQLite (dev) via SQLAlchemy Core

from contextlib import contextmanager
from pathlib import Path as FsPath
from typing import Any, Dict, Generator, Optional
from urllib.parse import urlparse

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

try:
    from backend.config import DATABASE_URL, DATABASE_PATH
except ModuleNotFoundError:
    from config import DATABASE_URL, DATABASE_PATH


# Global engine, created lazily
_engine: Optional[Engine] = None


def default_database_url() -> str:
    if DATABASE_URL:
        # SQLAlchemy only understands the postgresql:// scheme
        if DATABASE_URL.startswith("postgres://"):
            return "postgresql://" + DATABASE_URL[len("postgres://"):]
        return DATABASE_URL
    db_path = FsPath(__file__).resolve().parent / DATABASE_PATH
    return f"sqlite:///{db_path}"


def init_engine(url: Optional[str] = None) -> Engine:
    """
    (Re)create the global engine.

    Tests call this with a temporary SQLite URL before init_db().
    """
    global _engine

    url = url or default_database_url()
    parsed = urlparse(url)
    if not parsed.scheme:
        raise ValueError(f"Invalid database URL: {url[:20]}...")

    if _engine is not None:
        _engine.dispose()

    if parsed.scheme.startswith("sqlite"):
        _engine = create_engine(url, connect_args={"check_same_thread": False})
        print("[DB] Using SQLite (local dev mode)")
    else:
        _engine = create_engine(
            url,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,  # Verify connections before use
        )
        print(f"[DB] Using PostgreSQL ({parsed.hostname})")

    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


@contextmanager
def get_db_connection() -> Generator[Connection, None, None]:
    """
    Transactional connection: commits on normal exit, rolls back if the
    block raises.
    """
    with get_engine().begin() as conn:
        yield conn


def execute_query(conn: Connection, query: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """Execute a query using :name placeholders (same syntax on SQLite and Postgres)."""
    return conn.execute(text(query), params or {})


def fetch_one(conn: Connection, query: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    row = execute_query(conn, query, params).mappings().first()
    return dict(row) if row is not None else None


def fetch_all(conn: Connection, query: str, params: Optional[Dict[str, Any]] = None) -> list:
    return [dict(row) for row in execute_query(conn, query, params).mappings().all()]


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        plan TEXT NOT NULL DEFAULT 'starter',
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS prop_firm_selections (
        user_id INTEGER NOT NULL,
        firm_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        is_selected BOOLEAN NOT NULL DEFAULT FALSE,
        is_custom BOOLEAN NOT NULL DEFAULT FALSE,
        match_keyword TEXT NOT NULL DEFAULT '',
        updated_at TEXT,
        PRIMARY KEY (user_id, firm_id)
    )
    """,
]


def init_db() -> None:
    """Create tables if missing. Safe to call on every startup."""
    with get_db_connection() as conn:
        is_postgres = conn.dialect.name == "postgresql"
        for statement in SCHEMA:
            if is_postgres:
                statement = statement.replace("id INTEGER PRIMARY KEY", "id SERIAL PRIMARY KEY")
            execute_query(conn, statement)
