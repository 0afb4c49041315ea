from __future__ import annotations

import os
from dataclasses import dataclass

STORE_BACKENDS = ("sql", "postgrest")
REVIEW_LOG_MODES = ("inline", "celery")


@dataclass
class Settings:
    db_url: str = "data/srs.db"
    redis_url: str = "redis://localhost:6379/2"
    store_backend: str = "sql"
    review_log_mode: str = "inline"
    due_card_limit: int = 200
    session_ttl_seconds: int = 6 * 60 * 60
    review_timezone: str = "UTC"


def load_settings() -> Settings:
    """Read settings from the environment, falling back to local defaults."""
    settings = Settings(
        db_url=os.getenv("DB_URL", Settings.db_url),
        redis_url=os.getenv("REVIEW_REDIS_URL", Settings.redis_url),
        store_backend=os.getenv("STORE_BACKEND", Settings.store_backend).strip().lower(),
        review_log_mode=os.getenv("REVIEW_LOG_MODE", Settings.review_log_mode).strip().lower(),
        due_card_limit=int(os.getenv("DUE_CARD_LIMIT", Settings.due_card_limit)),
        session_ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", Settings.session_ttl_seconds)),
        review_timezone=os.getenv("REVIEW_TIMEZONE", Settings.review_timezone),
    )
    if settings.store_backend not in STORE_BACKENDS:
        raise RuntimeError(f"Unknown STORE_BACKEND '{settings.store_backend}' (expected one of {', '.join(STORE_BACKENDS)})")
    if settings.review_log_mode not in REVIEW_LOG_MODES:
        raise RuntimeError(f"Unknown REVIEW_LOG_MODE '{settings.review_log_mode}' (expected one of {', '.join(REVIEW_LOG_MODES)})")
    return settings
