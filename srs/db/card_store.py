from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from srs.db.interfaces import CardStore
from srs.db.models import Base, SrsCard
from srs.db.session import create_engine_and_session
from srs.errors import CardNotFoundError, CardStoreError
from srs.utils.logging_config import get_logger
from srs.utils.scheduler import SchedulingState, new_card_state
from srs.utils.timeutils import ensure_utc
from srs.utils.types import CARD_STATUSES, CardRecord

logger = get_logger(__name__)


def card_from_model(card: SrsCard) -> CardRecord:
    return CardRecord(
        card_id=card.id,
        user_id=card.user_id,
        state=SchedulingState(
            interval_days=card.interval_days,
            ease_factor=card.ease_factor,
            repetitions=card.repetitions,
            last_reviewed_at=ensure_utc(card.last_reviewed_at),
            due_at=ensure_utc(card.due_at),
        ),
        origin_type=card.origin_type,
        origin_id=card.origin_id,
        document_id=card.document_id,
        quiz_question_id=card.quiz_question_id,
        chunk_id=card.chunk_id,
        status=card.status,
    )


class SQLAlchemyCardStore(CardStore):
    """Card scheduling state in the ``srs_cards`` table (SQLite or Postgres)."""

    def __init__(self, db_url: Union[str, Path], *, create_tables: bool = True):
        self.engine, self.SessionLocal = create_engine_and_session(db_url)
        if create_tables:
            Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def get_card(self, card_id: str, user_id: str | None = None) -> CardRecord | None:
        try:
            with self.SessionLocal() as session:
                card = session.get(SrsCard, card_id)
                if card is None or (user_id is not None and card.user_id != user_id):
                    return None
                return card_from_model(card)
        except SQLAlchemyError as exc:
            logger.error("Card lookup failed | card=%s", card_id, exc_info=True)
            raise CardStoreError(f"Failed to load card {card_id}") from exc

    def list_due_cards(self, user_id: str, now: dt.datetime, limit: int = 200) -> list[CardRecord]:
        stmt = (
            select(SrsCard)
            .where(SrsCard.user_id == user_id, SrsCard.status == "active", SrsCard.due_at <= ensure_utc(now))
            .order_by(SrsCard.due_at.asc())
            .limit(limit)
        )
        return self._query(stmt, user_id)

    def list_cards_due_by(self, user_id: str, until: dt.datetime) -> list[CardRecord]:
        stmt = (
            select(SrsCard)
            .where(SrsCard.user_id == user_id, SrsCard.status == "active", SrsCard.due_at <= ensure_utc(until))
            .order_by(SrsCard.due_at.asc())
        )
        return self._query(stmt, user_id)

    def _query(self, stmt, user_id: str) -> list[CardRecord]:
        try:
            with self.SessionLocal() as session:
                return [card_from_model(card) for card in session.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("Card query failed | user=%s", user_id, exc_info=True)
            raise CardStoreError(f"Failed to load cards for user {user_id}") from exc

    def save_state(self, card_id: str, state: SchedulingState) -> None:
        try:
            with self.SessionLocal() as session:
                card = session.get(SrsCard, card_id)
                if card is None:
                    raise CardNotFoundError(card_id)
                card.interval_days = state.interval_days
                card.ease_factor = state.ease_factor
                card.repetitions = state.repetitions
                card.last_reviewed_at = state.last_reviewed_at
                card.due_at = state.due_at
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Card state update failed | card=%s", card_id, exc_info=True)
            raise CardStoreError(f"Failed to save schedule for card {card_id}") from exc

    def add_card(
        self,
        user_id: str,
        origin_type: str,
        origin_id: str,
        *,
        document_id: str | None = None,
        quiz_question_id: str | None = None,
        chunk_id: str | None = None,
        now: dt.datetime | None = None,
    ) -> CardRecord:
        """Enroll a card; re-enrolling the same origin returns the existing card."""
        state = new_card_state(now)
        card = SrsCard(
            user_id=user_id,
            origin_type=origin_type,
            origin_id=origin_id,
            document_id=document_id,
            quiz_question_id=quiz_question_id,
            chunk_id=chunk_id,
            due_at=state.due_at,
            interval_days=state.interval_days,
            ease_factor=state.ease_factor,
            repetitions=state.repetitions,
            status="active",
        )
        try:
            with self.SessionLocal() as session:
                try:
                    session.add(card)
                    session.commit()
                    return card_from_model(card)
                except IntegrityError:
                    session.rollback()
                    stmt = select(SrsCard).where(
                        SrsCard.user_id == user_id,
                        SrsCard.origin_type == origin_type,
                        SrsCard.origin_id == origin_id,
                    )
                    existing = session.execute(stmt).scalars().first()
                    if existing is None:
                        raise
                    logger.info("Card already enrolled | user=%s origin=%s:%s", user_id, origin_type, origin_id)
                    return card_from_model(existing)
        except SQLAlchemyError as exc:
            logger.error("Card enrollment failed | user=%s origin=%s:%s", user_id, origin_type, origin_id, exc_info=True)
            raise CardStoreError("Failed to enroll card") from exc

    def set_status(self, card_id: str, status: str) -> None:
        if status not in CARD_STATUSES:
            raise ValueError(f"Unknown card status: {status}")
        try:
            with self.SessionLocal() as session:
                card = session.get(SrsCard, card_id)
                if card is None:
                    raise CardNotFoundError(card_id)
                card.status = status
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Card status update failed | card=%s", card_id, exc_info=True)
            raise CardStoreError(f"Failed to update status for card {card_id}") from exc
