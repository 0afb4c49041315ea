from __future__ import annotations

import datetime as dt
from typing import Any


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def ensure_utc(value: Any) -> dt.datetime | None:
    """Parse datetimes/ISO strings from SQLite, Postgres or PostgREST into aware UTC values.

    SQLite hands back naive datetimes; those are assumed to already be UTC.
    Unparseable input yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = dt.datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


def to_iso(value: dt.datetime | None) -> str | None:
    parsed = ensure_utc(value)
    return parsed.isoformat() if parsed else None
