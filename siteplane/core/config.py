"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Services take these as constructor defaults so tests can pass their own.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _is_enabled(value: str | None) -> bool:
    return (value or "").strip().lower() in {"true", "1", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


# Control plane (site records, crawl jobs, actions, widget, billing)
CONTROL_PLANE_URL: str = os.getenv("CONTROL_PLANE_URL", "").strip().rstrip("/")
# Tenant-scoped key for /api/* calls
CONTROL_PLANE_API_KEY: str = os.getenv("CONTROL_PLANE_API_KEY", "").strip()
# Service key for /internal/* calls
CONTROL_PLANE_INTERNAL_KEY: str = os.getenv("CONTROL_PLANE_INTERNAL_KEY", "").strip()

# Retrieval index (per-tenant document index)
RAG_API_URL: str = os.getenv("RAG_API_URL", "").strip().rstrip("/")
SITE_RAG_ENABLED: bool = _is_enabled(os.getenv("SITE_RAG_ENABLED"))
SITE_RAG_TOP_K: int = _int_env("SITE_RAG_TOP_K", 4)
SITE_RAG_MAX_CHARS: int = _int_env("SITE_RAG_MAX_CHARS", 1500)
# Both default on; only the literal "false" turns them off
SITE_RAG_REQUIRE_SOURCE_URL: bool = os.getenv("SITE_RAG_REQUIRE_SOURCE_URL", "").strip() != "false"
SITE_RAG_ALLOW_ROOT_URL: bool = os.getenv("SITE_RAG_ALLOW_ROOT_URL", "").strip() != "false"

# Cache TTLs (seconds)
SITE_CACHE_TTL_SECONDS: float = float(_int_env("SITE_CACHE_TTL_SECONDS", 300))
TENANT_CACHE_TTL_SECONDS: float = float(_int_env("TENANT_CACHE_TTL_SECONDS", 300))

# API timeouts (seconds)
TENANT_LOOKUP_TIMEOUT: float = 8.0
RETRIEVAL_TIMEOUT: float = 15.0
CONTROL_PLANE_TIMEOUT: float = 15.0

# Crawl status polling while a job is active
CRAWL_POLL_INTERVAL_SECONDS: float = 10.0

# Short-lived identity token for the retrieval index
JWT_SECRET: str = os.getenv("JWT_SECRET", "").strip()
SHORT_LIVED_TOKEN_MINUTES: int = _int_env("SHORT_LIVED_TOKEN_MINUTES", 5)

# Conversation pagination
DEFAULT_PAGE_LIMIT: int = 25

# Conversation storage; the in-memory store is used when MONGO_URI is unset
MONGO_URI: str = os.getenv("MONGO_URI", "").strip()
MONGO_DB: str = os.getenv("MONGO_DB", "siteplane").strip() or "siteplane"
CONVERSATIONS_COLLECTION: str = "conversations"
