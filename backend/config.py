# backend/config.py
# Environment-aware configuration for PropFlow backend

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT configuration
SECRET_KEY = os.environ.get("SECRET_KEY", "propflow-dev-secret")
ALGORITHM = "HS256"

# Token lifetime
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", "60"))

# Database configuration
# DATABASE_URL takes precedence (managed Postgres in hosted environments)
# Falls back to a SQLite file next to this module for local development
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "propflow.db")

# Seed test@example.com / password on startup (dev only by default)
SEED_DEMO_USER = os.environ.get("SEED_DEMO_USER", "1" if IS_DEV else "0") == "1"
DEMO_USER_EMAIL = "test@example.com"
DEMO_USER_PASSWORD = "password"

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:8501",  # Streamlit default
    "http://127.0.0.1:8501",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())

# Database type detection
IS_POSTGRES = DATABASE_URL.startswith(("postgres://", "postgresql://"))
IS_SQLITE = not IS_POSTGRES

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {'PostgreSQL' if IS_POSTGRES else 'SQLite (local dev)'}")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_MINUTES} minutes")
