from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Optional database configuration for the SQL-backed document store.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Basic API authentication configuration.
    # When ENABLE_API_AUTH=true, every endpoint requires a valid API key.
    enable_api_auth: bool = os.getenv("ENABLE_API_AUTH", "false").lower() == "true"
    # Comma-separated list of allowed API keys when auth is enabled.
    api_keys: Optional[str] = os.getenv("API_KEYS")
    # Subset of keys that act with the staff (admin) role.
    admin_api_keys: Optional[str] = os.getenv("ADMIN_API_KEYS")

    # Re-check region/constituency/facility against the reference table when
    # consent is recorded instead of trusting the submitted triple.
    validate_routing: bool = os.getenv("VALIDATE_ROUTING", "true").lower() == "true"

    # Delete the just-written screening when the referral write fails so no
    # orphan screening is left behind.
    compensate_orphan_screenings: bool = os.getenv("COMPENSATE_ORPHAN_SCREENINGS", "true").lower() == "true"

    # Maximum number of snapshots buffered per live subscriber before the
    # oldest one is dropped.
    subscription_queue_size: int = int(os.getenv("SUBSCRIPTION_QUEUE_SIZE", "16"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com,https://admin.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")


settings = Settings()
