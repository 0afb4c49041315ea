"""
SM-2 style scheduler primitives.

Given a card's prior scheduling state and a recall-quality grade (0-5) this
computes the next interval, ease factor, repetition count and due date.

The ease factor is updated on every review, passing or failing; only the
interval/repetition branch depends on whether recall succeeded.
"""

from __future__ import annotations

import datetime as dt
import math
from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import IntEnum
from typing import Any

from srs.utils.timeutils import ensure_utc, to_iso, utcnow

DEFAULT_EASE_FACTOR = 2.0
MIN_EASE_FACTOR = 1.3
PASSING_QUALITY = 3
MIN_QUALITY = 0
MAX_QUALITY = 5
SECOND_INTERVAL_DAYS = 6
# Roughly a century; longer intervals are capped here.
MAX_INTERVAL_DAYS = 36_500
DAY_MS = 86_400_000
MAX_DUE_AT = dt.datetime.max.replace(tzinfo=dt.timezone.utc)


class ReviewGrade(IntEnum):
    """The four buttons offered on the review screen."""

    AGAIN = 0
    HARD = 3
    GOOD = 4
    EASY = 5


@dataclass
class SchedulingState:
    interval_days: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    repetitions: int = 0
    last_reviewed_at: dt.datetime | None = None
    due_at: dt.datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "interval_days": self.interval_days,
            "ease_factor": self.ease_factor,
            "repetitions": self.repetitions,
            "last_reviewed_at": to_iso(self.last_reviewed_at),
            "due_at": to_iso(self.due_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SchedulingState":
        """Build a state from a stored row without coercing the numeric fields."""
        return cls(
            interval_days=data.get("interval_days"),
            ease_factor=data.get("ease_factor"),
            repetitions=data.get("repetitions"),
            last_reviewed_at=ensure_utc(data.get("last_reviewed_at")),
            due_at=ensure_utc(data.get("due_at")),
        )


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, Decimal, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _field(prior: Any, name: str) -> Any:
    if isinstance(prior, Mapping):
        return prior.get(name)
    return getattr(prior, name, None)


def normalize_state(prior: SchedulingState | Mapping[str, Any] | None) -> SchedulingState:
    """Coerce a loosely-typed prior state into clean numeric values.

    Rows may arrive from the store with numbers serialized as strings, missing
    or malformed. Nothing here raises: bad interval -> 0, bad ease factor
    (including <= 0) -> 2.0, bad repetitions -> 0.
    """
    if prior is None:
        return SchedulingState()

    interval = _as_number(_field(prior, "interval_days"))
    if interval is None or interval < 0:
        interval = 0

    ease = _as_number(_field(prior, "ease_factor"))
    if ease is None or ease <= 0:
        ease = DEFAULT_EASE_FACTOR

    reps = _as_number(_field(prior, "repetitions"))
    reps = max(0, math.trunc(reps)) if reps is not None else 0

    if isinstance(interval, float) and interval.is_integer():
        interval = int(interval)

    return SchedulingState(
        interval_days=interval,
        ease_factor=ease,
        repetitions=reps,
        last_reviewed_at=ensure_utc(_field(prior, "last_reviewed_at")),
        due_at=ensure_utc(_field(prior, "due_at")),
    )


def normalize_quality(quality: Any) -> int:
    """Clamp a grade into [0, 5]; unreadable grades count as a failed recall."""
    number = _as_number(quality)
    if number is None:
        return MIN_QUALITY
    return int(min(max(math.trunc(number), MIN_QUALITY), MAX_QUALITY))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def grown_interval(interval_days: float, ease_factor: float) -> int:
    """Next interval of a mature card, between 1 and ``MAX_INTERVAL_DAYS``."""
    product = interval_days * ease_factor
    if not math.isfinite(product) or product >= MAX_INTERVAL_DAYS:
        return MAX_INTERVAL_DAYS
    return max(1, round_half_up(product))


def due_after(now: dt.datetime, interval_days: int) -> dt.datetime:
    try:
        return now + dt.timedelta(milliseconds=interval_days * DAY_MS)
    except OverflowError:
        return MAX_DUE_AT


def next_ease_factor(ease_factor: float, quality: int) -> float:
    miss = MAX_QUALITY - quality
    ease = ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
    if ease < MIN_EASE_FACTOR:
        ease = MIN_EASE_FACTOR
    return ease


def compute_next_state(
    prior: SchedulingState | Mapping[str, Any] | None,
    quality: int,
    now: dt.datetime | None = None,
) -> SchedulingState:
    """
    Compute the scheduling state that follows a review graded ``quality``.

    Pure apart from reading the clock when ``now`` is not supplied. The same
    ``now`` is used for ``last_reviewed_at`` and as the base of ``due_at``.
    """
    state = normalize_state(prior)
    quality = normalize_quality(quality)
    now = ensure_utc(now) if now is not None else utcnow()

    ease = next_ease_factor(state.ease_factor, quality)
    reps = state.repetitions

    if quality < PASSING_QUALITY:
        reps = 0
        interval = 1
    else:
        if reps <= 0:
            interval = 1
        elif reps == 1:
            interval = SECOND_INTERVAL_DAYS
        else:
            interval = grown_interval(state.interval_days, ease)
        reps = reps + 1

    return SchedulingState(
        interval_days=interval,
        ease_factor=ease,
        repetitions=reps,
        last_reviewed_at=now,
        due_at=due_after(now, interval),
    )


def new_card_state(now: dt.datetime | None = None) -> SchedulingState:
    """Default state for a card entering the review system; due immediately."""
    now = ensure_utc(now) if now is not None else utcnow()
    return replace(SchedulingState(), due_at=now)


__all__ = [
    "DEFAULT_EASE_FACTOR",
    "MAX_INTERVAL_DAYS",
    "MIN_EASE_FACTOR",
    "ReviewGrade",
    "SchedulingState",
    "compute_next_state",
    "new_card_state",
    "normalize_quality",
    "normalize_state",
]
