"""
Adapter selection for the card store, review log and card content.
"""

from __future__ import annotations

from srs.db.interfaces import CardStore, ContentReader, ReviewLog
from srs.workflow.utils.settings import Settings


def get_card_store(settings: Settings) -> CardStore:
    if settings.store_backend == "postgrest":
        from srs.db.postgrest_store import PostgrestCardStore, PostgrestClient

        return PostgrestCardStore(PostgrestClient.from_env())

    from srs.db.card_store import SQLAlchemyCardStore

    return SQLAlchemyCardStore(settings.db_url)


def get_review_log(settings: Settings) -> ReviewLog:
    """Direct writes by default; ``celery`` hands appends to a worker."""
    if settings.review_log_mode == "celery":
        from srs.celery_tasks.reviews import CeleryReviewLog

        return CeleryReviewLog(history=get_history_log(settings))
    return get_history_log(settings)


def get_history_log(settings: Settings) -> ReviewLog:
    if settings.store_backend == "postgrest":
        from srs.db.postgrest_store import PostgrestClient, PostgrestReviewLog

        return PostgrestReviewLog(PostgrestClient.from_env())

    from srs.db.review_log import SQLAlchemyReviewLog

    return SQLAlchemyReviewLog(settings.db_url)


def get_content_reader(settings: Settings) -> ContentReader:
    if settings.store_backend == "postgrest":
        from srs.db.postgrest_store import PostgrestClient, PostgrestContentReader

        return PostgrestContentReader(PostgrestClient.from_env())

    from srs.db.content_reader import SQLAlchemyContentReader

    return SQLAlchemyContentReader(settings.db_url)
