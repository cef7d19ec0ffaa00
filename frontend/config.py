# frontend/config.py
# Environment-aware configuration for the PropFlow frontend

import os
from typing import Literal

# The backend names its environments dev/staging/prod; accept those too so
# one shared ENV works for both tiers
ENV_ALIASES = {"dev": "local", "prod": "production"}


def normalize_env(raw: str) -> Literal["local", "staging", "production"]:
    """Map an ENV value to local/staging/production (unknown values mean production)."""
    env = ENV_ALIASES.get(raw.strip().lower(), raw.strip().lower())
    return env if env in ("local", "staging", "production") else "production"  # type: ignore


ENV = normalize_env(os.environ.get("ENV", "production"))

# Environment flags (using normalized ENV)
IS_LOCAL = (ENV == "local")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "production")

IS_DEV = IS_LOCAL


def validate_api_url(url: str, env: str) -> None:
    """
    Validate API base URL according to environment security rules.

    Args:
        url: The API base URL to validate
        env: Current environment ("local", "staging", "production")

    Raises:
        ValueError: If URL violates security constraints for the environment
    """
    if not url:
        raise ValueError("API base URL cannot be empty")

    # Production/staging must use HTTPS and never localhost
    if env in ("staging", "production"):
        if not url.startswith("https://"):
            raise ValueError(f"Production/staging must use HTTPS. Got: {url}")
        if "127.0.0.1" in url or "localhost" in url:
            raise ValueError(f"Production/staging cannot use localhost URLs. Got: {url}")


def get_api_base_url() -> str:
    """
    Get API base URL.

    Priority:
    1. BACKEND_URL environment variable
    2. API_BASE_URL environment variable
    3. http://127.0.0.1:8000 ONLY if ENV == "local"

    Raises:
        RuntimeError: If production/staging environment has no configured URL
    """
    for var in ("BACKEND_URL", "API_BASE_URL"):
        value = os.environ.get(var, "").strip()
        if value:
            url = value.rstrip("/")
            validate_api_url(url, ENV)
            return url

    if ENV == "local":
        return "http://127.0.0.1:8000"

    raise RuntimeError(
        f"Backend URL not configured for {ENV.upper()} environment. "
        f"Set BACKEND_URL to the PropFlow API service URL (HTTPS, not localhost)."
    )


try:
    BACKEND_URL = get_api_base_url()
except RuntimeError as e:
    print(f"[CONFIG] CRITICAL: {e}")
    BACKEND_URL = ""  # API calls will report the configuration error

# Seconds the Save button shows its confirmation before it can be pressed again
SAVE_CONFIRMATION_SECONDS = float(os.environ.get("SAVE_CONFIRMATION_SECONDS", "1.0"))

# Feature flags
ENABLE_DEBUG_UI = IS_DEV  # Test plan switcher and debug panels
ENABLE_VERBOSE_LOGGING = IS_DEV or IS_STAGING

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Backend URL: {BACKEND_URL}")
print(f"[CONFIG] Debug UI: {'enabled' if ENABLE_DEBUG_UI else 'disabled'}")
