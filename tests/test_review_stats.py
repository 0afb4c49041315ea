import datetime as dt
from zoneinfo import ZoneInfo

from srs.errors import CardStoreError
from srs.utils.scheduler import SchedulingState
from srs.utils.types import CardRecord
from srs.workflow.review_stats import ReviewSummary, build_review_summary, summarize_activity, summarize_cards

UTC = dt.timezone.utc
NOW = dt.datetime(2024, 3, 10, 15, 0, tzinfo=UTC)


def _card(card_id, due_at):
    return CardRecord(card_id=card_id, user_id="user-1", state=SchedulingState(due_at=due_at))


def test_cards_are_split_into_overdue_today_and_week_buckets():
    cards = [
        _card("overdue", NOW - dt.timedelta(days=2)),
        _card("earlier-today", NOW.replace(hour=1)),
        _card("later-today", NOW.replace(hour=23)),
        _card("tomorrow", NOW + dt.timedelta(days=1)),
        _card("tomorrow-2", NOW + dt.timedelta(days=1, hours=2)),
        _card("in-a-week", NOW + dt.timedelta(days=7)),
        _card("too-far", NOW + dt.timedelta(days=8)),
    ]
    summary = ReviewSummary()

    summarize_cards(summary, cards, NOW, UTC)

    assert [c.card_id for c in summary.overdue] == ["overdue"]
    assert [c.card_id for c in summary.due_today] == ["earlier-today", "later-today"]
    assert summary.total_due_now == 3
    assert [b.count for b in summary.upcoming_buckets] == [2, 0, 0, 0, 0, 0, 1]
    assert summary.upcoming_buckets[0].date == dt.date(2024, 3, 11)
    assert summary.max_bucket == 2
    assert [c.card_id for c in summary.sample_today] == ["overdue", "earlier-today", "later-today"]


def test_max_bucket_is_at_least_one_and_sample_is_capped():
    cards = [_card(f"c{i}", NOW - dt.timedelta(hours=i)) for i in range(12)]
    summary = ReviewSummary()

    summarize_cards(summary, cards, NOW, UTC)

    assert summary.max_bucket == 1
    assert len(summary.sample_today) == 10
    assert summary.sample_today[0].card_id == "c11"


def test_streak_counts_consecutive_days_ending_today():
    times = [
        NOW - dt.timedelta(minutes=5),
        NOW - dt.timedelta(hours=2),
        NOW - dt.timedelta(days=1),
        NOW - dt.timedelta(days=2),
        NOW - dt.timedelta(days=4),
    ]
    summary = ReviewSummary()

    summarize_activity(summary, times, NOW, UTC)

    assert summary.streak == 3
    assert summary.completed_today == 2
    assert summary.last_reviewed_at == NOW - dt.timedelta(minutes=5)


def test_streak_is_zero_without_a_review_today():
    summary = ReviewSummary()

    summarize_activity(summary, [NOW - dt.timedelta(days=1)], NOW, UTC)

    assert summary.streak == 0
    assert summary.completed_today == 0


def test_day_boundaries_follow_the_requested_timezone():
    seoul = ZoneInfo("Asia/Seoul")
    # 15:00 UTC is already the next calendar day in Seoul.
    card = _card("c", dt.datetime(2024, 3, 10, 16, 0, tzinfo=UTC))
    summary = ReviewSummary()

    summarize_cards(summary, [card], NOW, seoul)

    assert [c.card_id for c in summary.due_today] == ["c"]


def test_build_summary_from_stores(card_store, review_log, base_time):
    from srs.workflow.review_session import ReviewSession

    for idx in range(2):
        card_store.add_card("user-1", "chunk", f"c-{idx}", now=base_time - dt.timedelta(hours=1))
    session = ReviewSession("user-1", card_store, review_log, clock=lambda: base_time)
    session.load()
    session.grade(4)

    summary = build_review_summary(card_store, review_log, "user-1", now=base_time)

    assert summary.total_due_now == 1
    assert [b.count for b in summary.upcoming_buckets][0] == 1
    assert summary.streak == 1
    assert summary.completed_today == 1
    assert summary.last_reviewed_at == base_time


def test_build_summary_survives_missing_history(card_store, base_time):
    class BrokenLog:
        def list_review_times(self, user_id, since, limit=5000):
            raise RuntimeError("history offline")

    card_store.add_card("user-1", "chunk", "c-1", now=base_time)

    summary = build_review_summary(card_store, BrokenLog(), "user-1", now=base_time, tz="UTC")

    assert summary.total_due_now == 1
    assert summary.streak == 0
    assert summary.last_reviewed_at is None


def test_cards_without_a_due_date_stay_out_of_the_sample():
    cards = [
        _card("no-date", None),
        _card("text-date", "2024-03-10T09:00:00Z"),
        _card("overdue", NOW - dt.timedelta(days=1)),
    ]
    summary = ReviewSummary()

    summarize_cards(summary, cards, NOW, UTC)

    assert summary.total_due_now == 2
    assert [c.card_id for c in summary.sample_today] == ["overdue", "text-date"]


def test_sample_cards_get_document_titles(card_store, review_log, content_reader, study_material, base_time):
    card_store.add_card("user-1", "chunk", "chunk-1", chunk_id="chunk-1", document_id="doc-1", now=base_time)
    card_store.add_card("user-1", "chunk", "loose", now=base_time)

    summary = build_review_summary(card_store, review_log, "user-1", now=base_time, content_reader=content_reader)

    assert summary.document_titles == {"doc-1": "Cell Biology"}


def test_failing_title_lookup_leaves_summary_intact(card_store, review_log, base_time):
    class OfflineReader:
        def get_document_titles(self, document_ids):
            raise CardStoreError("documents offline")

    card_store.add_card("user-1", "chunk", "c-1", document_id="doc-1", now=base_time)

    summary = build_review_summary(card_store, review_log, "user-1", now=base_time, content_reader=OfflineReader())

    assert summary.total_due_now == 1
    assert summary.document_titles == {}
