from __future__ import annotations

from pathlib import Path
from typing import Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def _ensure_sqlite_dirs(url: str) -> None:
    if not url.startswith("sqlite:///"):
        return
    path = url.replace("sqlite:///", "", 1)
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)


def build_sqlite_url(db_path: str | Path) -> str:
    path = Path(db_path)
    return f"sqlite:///{path}"


def resolve_db_url(db_url: str | Path) -> str:
    """Accept full SQLAlchemy URLs or bare SQLite file paths."""
    text = str(db_url)
    if "://" in text:
        return normalize_db_url(text)
    return build_sqlite_url(text)


def normalize_db_url(db_url: str) -> str:
    # Normalize postgres scheme and prefer psycopg driver if available.
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    if db_url.startswith("postgresql://") and "+psycopg" not in db_url and "+psycopg2" not in db_url:
        try:
            import psycopg  # type: ignore  # noqa: F401

            db_url = db_url.replace("postgresql://", "postgresql+psycopg://", 1)
        except ImportError:
            pass
    return db_url


def create_engine_and_session(db_url: str | Path) -> Tuple[Engine, sessionmaker]:
    db_url = resolve_db_url(db_url)
    _ensure_sqlite_dirs(db_url)
    engine = create_engine(db_url, future=True, echo=False)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    return engine, SessionLocal
