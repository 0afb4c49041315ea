"""
Review hub summary: what is overdue, what is due today, the coming week's
load, and the user's review streak.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from srs.db.interfaces import CardStore, ContentReader, ReviewLog
from srs.errors import CardStoreError
from srs.utils.logging_config import get_logger
from srs.utils.timeutils import ensure_utc, utcnow
from srs.utils.types import CardRecord

logger = get_logger(__name__)

UPCOMING_DAYS = 7
HISTORY_DAYS = 60
HISTORY_LIMIT = 5000
MAX_STREAK_DAYS = 365
SAMPLE_SIZE = 10


@dataclass
class DayBucket:
    date: dt.date
    count: int = 0


@dataclass
class ReviewSummary:
    overdue: List[CardRecord] = field(default_factory=list)
    due_today: List[CardRecord] = field(default_factory=list)
    upcoming_buckets: List[DayBucket] = field(default_factory=list)
    max_bucket: int = 1
    total_due_now: int = 0
    sample_today: List[CardRecord] = field(default_factory=list)
    streak: int = 0
    completed_today: int = 0
    last_reviewed_at: Optional[dt.datetime] = None
    document_titles: Dict[str, str] = field(default_factory=dict)


def start_of_day(moment: dt.datetime, tz: dt.tzinfo) -> dt.datetime:
    local = moment.astimezone(tz)
    return dt.datetime.combine(local.date(), dt.time.min, tzinfo=tz)


def _local_date(moment: dt.datetime, tz: dt.tzinfo) -> dt.date:
    return moment.astimezone(tz).date()


def summarize_cards(summary: ReviewSummary, cards: Iterable[CardRecord], now: dt.datetime, tz: dt.tzinfo) -> None:
    today = _local_date(now, tz)
    summary.upcoming_buckets = [DayBucket(today + dt.timedelta(days=i)) for i in range(1, UPCOMING_DAYS + 1)]

    due_now: List[Tuple[dt.datetime, CardRecord]] = []
    for card in cards:
        due_at = ensure_utc(card.state.due_at)
        if due_at is None:
            continue
        offset = (_local_date(due_at, tz) - today).days
        if offset < 0:
            summary.overdue.append(card)
            due_now.append((due_at, card))
        elif offset == 0:
            summary.due_today.append(card)
            due_now.append((due_at, card))
        elif offset <= UPCOMING_DAYS:
            summary.upcoming_buckets[offset - 1].count += 1

    summary.max_bucket = max([1] + [bucket.count for bucket in summary.upcoming_buckets])
    summary.total_due_now = len(due_now)
    due_now.sort(key=lambda pair: pair[0])
    summary.sample_today = [card for _, card in due_now[:SAMPLE_SIZE]]


def summarize_activity(summary: ReviewSummary, review_times: Sequence[dt.datetime], now: dt.datetime, tz: dt.tzinfo) -> None:
    today = _local_date(now, tz)
    days = set()
    for reviewed_at in review_times:
        day = _local_date(reviewed_at, tz)
        days.add(day)
        if day == today:
            summary.completed_today += 1
        if summary.last_reviewed_at is None or reviewed_at > summary.last_reviewed_at:
            summary.last_reviewed_at = reviewed_at

    streak = 0
    for i in range(MAX_STREAK_DAYS):
        if today - dt.timedelta(days=i) in days:
            streak += 1
        else:
            break
    summary.streak = streak


def build_review_summary(
    card_store: CardStore,
    review_log: ReviewLog,
    user_id: str,
    *,
    now: dt.datetime | None = None,
    tz: dt.tzinfo | str = dt.timezone.utc,
    content_reader: ContentReader | None = None,
) -> ReviewSummary:
    """Assemble the hub summary.

    A failing review history only zeroes the streak fields, and failing title
    lookups leave the sample cards untitled.
    """
    if isinstance(tz, str):
        tz = ZoneInfo(tz)
    now = ensure_utc(now) if now is not None else utcnow()

    horizon = start_of_day(now, tz) + dt.timedelta(days=UPCOMING_DAYS + 1) - dt.timedelta(microseconds=1)
    summary = ReviewSummary()
    summarize_cards(summary, card_store.list_cards_due_by(user_id, horizon), now, tz)

    document_ids = sorted({card.document_id for card in summary.sample_today if card.document_id})
    if content_reader is not None and document_ids:
        try:
            summary.document_titles = content_reader.get_document_titles(document_ids)
        except CardStoreError:
            logger.warning("Document titles unavailable | user=%s", user_id, exc_info=True)

    try:
        times = review_log.list_review_times(user_id, now - dt.timedelta(days=HISTORY_DAYS), HISTORY_LIMIT)
    except Exception:
        logger.warning("Review history unavailable; streak reset | user=%s", user_id, exc_info=True)
        return summary
    summarize_activity(summary, times, now, tz)
    return summary
