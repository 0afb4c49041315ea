from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from srs.db.interfaces import CardStore, ContentReader, ReviewLog
from srs.errors import CardNotFoundError, CardStoreError, ReviewSessionError
from srs.utils.logging_config import get_logger
from srs.utils.scheduler import compute_next_state, normalize_quality, normalize_state
from srs.utils.timeutils import ensure_utc, utcnow
from srs.utils.types import CardContent, CardRecord, ReviewEvent
from srs.workflow.card_content import build_card_content, load_card_contents

logger = get_logger("srs.reviews.session")

DEFAULT_DUE_LIMIT = 200
REVIEW_LOG_WARNING = "The review was scheduled but its history entry could not be saved."


@dataclass
class GradeResult:
    event: ReviewEvent
    review_logged: bool
    session_complete: bool
    warning: Optional[str] = None

    @property
    def card_id(self) -> str:
        return self.event.card_id


class ReviewSession:
    """
    Sequential review of a user's due cards.

    Grading one card is a single unit of work: compute the next state, persist
    it, append to the review log (best effort), then advance. When the state
    write fails the computed event is kept as pending and the session stays on
    the card; the next attempt persists that same event instead of recomputing
    it with a fresh clock reading.
    """

    def __init__(
        self,
        user_id: str,
        card_store: CardStore,
        review_log: ReviewLog,
        *,
        clock: Callable[[], dt.datetime] = utcnow,
        due_limit: int = DEFAULT_DUE_LIMIT,
        content_reader: Optional[ContentReader] = None,
    ) -> None:
        self.user_id = user_id
        self.card_store = card_store
        self.review_log = review_log
        self.clock = clock
        self.due_limit = due_limit
        self.content_reader = content_reader
        self.card_ids: List[str] = []
        self.index = 0
        self.complete = False
        self.pending: Optional[ReviewEvent] = None
        self._cards: Dict[str, CardRecord] = {}
        self._contents: Dict[str, CardContent] = {}

    def load(self, now: dt.datetime | None = None) -> List[CardRecord]:
        now = ensure_utc(now) if now is not None else self.clock()
        cards = self.card_store.list_due_cards(self.user_id, now, self.due_limit)
        self.card_ids = [card.card_id for card in cards]
        self._cards = {card.card_id: card for card in cards}
        self._contents = {}
        self.index = 0
        self.complete = not cards
        self.pending = None
        logger.info("Review session loaded | user=%s due=%s", self.user_id, len(cards))
        return cards

    @property
    def total(self) -> int:
        return len(self.card_ids)

    @property
    def position(self) -> int:
        return min(self.index + 1, self.total)

    @property
    def progress_pct(self) -> int:
        total = self.total or 1
        done = self.index + (1 if self.complete else 0)
        return min(100, int(done / total * 100 + 0.5))

    @property
    def current(self) -> CardRecord | None:
        if self.complete or self.index >= self.total:
            return None
        card_id = self.card_ids[self.index]
        card = self._cards.get(card_id)
        if card is None:
            card = self.card_store.get_card(card_id, self.user_id)
            if card is None:
                raise CardNotFoundError(card_id)
            self._cards[card_id] = card
        return card

    def current_content(self) -> CardContent | None:
        """Question, chunk or fallback content for the current card.

        A failing content lookup degrades to the ``generic`` fallback so the
        card can still be graded.
        """
        card = self.current
        if card is None or self.content_reader is None:
            return None
        content = self._contents.get(card.card_id)
        if content is None:
            try:
                content = load_card_contents([card], self.content_reader)[card.card_id]
            except CardStoreError:
                logger.warning("Card content unavailable | user=%s card=%s", self.user_id, card.card_id, exc_info=True)
                return build_card_content(card, {}, {}, {})
            self._contents[card.card_id] = content
        return content

    def grade(self, quality: int, now: dt.datetime | None = None) -> GradeResult:
        card = self.current
        if card is None:
            raise ReviewSessionError("Review session has no card left to grade")

        event = self._event_for(card, normalize_quality(quality), now)
        try:
            self.card_store.save_state(card.card_id, event.next)
        except CardStoreError:
            self.pending = event
            logger.error("Card schedule not saved; session held | user=%s card=%s", self.user_id, card.card_id)
            raise

        self.pending = None
        self._cards[card.card_id] = replace(card, state=event.next)

        logged = True
        warning = None
        try:
            self.review_log.append(event)
        except Exception:
            logged = False
            warning = REVIEW_LOG_WARNING
            logger.warning("Review log append failed | user=%s card=%s", self.user_id, card.card_id, exc_info=True)

        self._advance()
        logger.info(
            "Card graded | user=%s card=%s quality=%s interval=%s ease=%.2f reps=%s",
            self.user_id,
            card.card_id,
            event.quality,
            event.next.interval_days,
            event.next.ease_factor,
            event.next.repetitions,
        )
        return GradeResult(event=event, review_logged=logged, session_complete=self.complete, warning=warning)

    def _event_for(self, card: CardRecord, quality: int, now: dt.datetime | None) -> ReviewEvent:
        pending = self.pending
        if pending is not None and pending.card_id == card.card_id:
            if pending.quality == quality:
                return pending
            # A different grade for the same attempt keeps the original review time.
            now = pending.reviewed_at
        elif now is None:
            now = self.clock()

        previous = normalize_state(card.state)
        nxt = compute_next_state(previous, quality, now)
        return ReviewEvent(
            card_id=card.card_id,
            quality=quality,
            previous=previous,
            next=nxt,
            reviewed_at=nxt.last_reviewed_at,
            user_id=self.user_id,
        )

    def skip(self) -> None:
        """Move on without grading, dropping any unsaved schedule for the current card."""
        if self.complete or self.index >= self.total:
            raise ReviewSessionError("Review session has no card left to skip")
        if self.pending is not None:
            logger.info("Dropping unsaved schedule | user=%s card=%s", self.user_id, self.pending.card_id)
        self.pending = None
        self._advance()

    def _advance(self) -> None:
        if self.index + 1 >= self.total:
            self.complete = True
        else:
            self.index += 1

    def snapshot(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "card_ids": list(self.card_ids),
            "index": self.index,
            "complete": self.complete,
            "pending": self.pending.to_dict() if self.pending else None,
        }

    @classmethod
    def restore(
        cls,
        snapshot: Dict[str, Any],
        card_store: CardStore,
        review_log: ReviewLog,
        *,
        clock: Callable[[], dt.datetime] = utcnow,
        due_limit: int = DEFAULT_DUE_LIMIT,
        content_reader: Optional[ContentReader] = None,
    ) -> "ReviewSession":
        session = cls(
            snapshot["user_id"],
            card_store,
            review_log,
            clock=clock,
            due_limit=due_limit,
            content_reader=content_reader,
        )
        session.card_ids = [str(card_id) for card_id in snapshot.get("card_ids") or []]
        session.index = int(snapshot.get("index") or 0)
        session.complete = bool(snapshot.get("complete"))
        pending = snapshot.get("pending")
        session.pending = ReviewEvent.from_dict(pending) if pending else None
        return session
