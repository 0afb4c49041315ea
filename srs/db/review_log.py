from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from srs.db.interfaces import ReviewLog
from srs.db.models import Base, SrsCard, SrsReview
from srs.db.session import create_engine_and_session
from srs.errors import ReviewLogError
from srs.utils.logging_config import get_logger
from srs.utils.timeutils import ensure_utc
from srs.utils.types import ReviewEvent

logger = get_logger(__name__)


class SQLAlchemyReviewLog(ReviewLog):
    """Review history in the ``srs_reviews`` table."""

    def __init__(self, db_url: Union[str, Path], *, create_tables: bool = True):
        self.engine, self.SessionLocal = create_engine_and_session(db_url)
        if create_tables:
            Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def append(self, event: ReviewEvent) -> None:
        row = SrsReview(
            card_id=event.card_id,
            quality=event.quality,
            reviewed_at=event.reviewed_at,
            previous_interval_days=event.previous.interval_days,
            new_interval_days=event.next.interval_days,
            previous_ease_factor=event.previous.ease_factor,
            new_ease_factor=event.next.ease_factor,
            previous_repetitions=event.previous.repetitions,
            new_repetitions=event.next.repetitions,
        )
        try:
            with self.SessionLocal() as session:
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            raise ReviewLogError(f"Failed to record review for card {event.card_id}") from exc

    def list_review_times(self, user_id: str, since: dt.datetime, limit: int = 5000) -> list[dt.datetime]:
        stmt = (
            select(SrsReview.reviewed_at)
            .join(SrsCard, SrsCard.id == SrsReview.card_id)
            .where(SrsCard.user_id == user_id, SrsReview.reviewed_at >= ensure_utc(since))
            .order_by(SrsReview.reviewed_at.desc())
            .limit(limit)
        )
        try:
            with self.SessionLocal() as session:
                rows = session.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            raise ReviewLogError(f"Failed to read review history for user {user_id}") from exc
        return [ts for ts in (ensure_utc(value) for value in rows) if ts is not None]
