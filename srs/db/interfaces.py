"""
Ports for the collaborators around the scheduler.

The review session depends on these abstractions; SQLAlchemy, PostgREST and
Celery adapters implement them.
"""

from __future__ import annotations

import datetime as dt
from abc import ABC, abstractmethod
from typing import Any, Sequence

from srs.utils.scheduler import SchedulingState
from srs.utils.types import CardRecord, ReviewEvent


class CardStore(ABC):
    """Persists one SchedulingState per card.

    Write failures raise ``CardStoreError``; callers must not advance a
    review session past a card whose state was not saved.
    """

    @abstractmethod
    def get_card(self, card_id: str, user_id: str | None = None) -> CardRecord | None:
        pass

    @abstractmethod
    def list_due_cards(self, user_id: str, now: dt.datetime, limit: int = 200) -> list[CardRecord]:
        """Active cards with ``due_at <= now``, earliest first."""
        pass

    @abstractmethod
    def list_cards_due_by(self, user_id: str, until: dt.datetime) -> list[CardRecord]:
        pass

    @abstractmethod
    def save_state(self, card_id: str, state: SchedulingState) -> None:
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    def set_status(self, card_id: str, status: str) -> None:
        pass


class ReviewLog(ABC):
    """Append-only grading history. Failures raise ``ReviewLogError``."""

    @abstractmethod
    def append(self, event: ReviewEvent) -> None:
        pass

    @abstractmethod
    def list_review_times(self, user_id: str, since: dt.datetime, limit: int = 5000) -> list[dt.datetime]:
        """Review timestamps for the user's cards, newest first."""
        pass


class ContentReader(ABC):
    """Read access to the study material a card points at.

    Each lookup takes ids and returns rows keyed by id; unknown ids are simply
    absent. Failures raise ``CardStoreError``.
    """

    @abstractmethod
    def get_quiz_questions(self, question_ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        """Rows with ``prompt``, ``options``, ``correct_answer``, ``explanation`` and ``chunk_id``."""
        pass

    @abstractmethod
    def get_chunks(self, chunk_ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        """Rows with ``document_id``, ``text``, ``page_number`` and ``slide_number``."""
        pass

    @abstractmethod
    def get_document_titles(self, document_ids: Sequence[str]) -> dict[str, str]:
        pass
