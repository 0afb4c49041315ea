from __future__ import annotations

import datetime as dt
from typing import Any

from celery_app import celery_app
from srs.db.interfaces import ReviewLog
from srs.errors import ReviewLogError
from srs.utils.logging_config import get_logger
from srs.utils.types import ReviewEvent
from srs.workflow.factory import get_history_log
from srs.workflow.utils.settings import load_settings

logger = get_logger(__name__)
_history_log: ReviewLog | None = None


def _get_history_log() -> ReviewLog:
    global _history_log
    if _history_log is None:
        _history_log = get_history_log(load_settings())
    return _history_log


@celery_app.task(name="reviews.append_log", autoretry_for=(ReviewLogError,), retry_backoff=True, max_retries=5)
def append_review_task(payload: dict[str, Any]) -> dict[str, Any]:
    """Write one review history entry; retried by the worker on storage errors."""
    event = ReviewEvent.from_dict(payload)
    _get_history_log().append(event)
    logger.info("Review history recorded | card=%s quality=%s", event.card_id, event.quality)
    return {"card_id": event.card_id, "quality": event.quality}


class CeleryReviewLog(ReviewLog):
    """Queues review history writes; reads go straight to the history store."""

    def __init__(self, history: ReviewLog, task=None) -> None:
        self.history = history
        self.task = task or append_review_task

    def append(self, event: ReviewEvent) -> None:
        try:
            self.task.delay(event.to_dict())
        except Exception as exc:
            raise ReviewLogError(f"Failed to queue review for card {event.card_id}") from exc

    def list_review_times(self, user_id: str, since: dt.datetime, limit: int = 5000) -> list[dt.datetime]:
        return self.history.list_review_times(user_id, since, limit)
