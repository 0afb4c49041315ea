from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from srs.utils.scheduler import SchedulingState
from srs.utils.timeutils import ensure_utc, to_iso

CARD_STATUSES = ("active", "suspended", "archived")
ORIGIN_TYPES = ("quiz_question", "chunk")


@dataclass
class CardRecord:
    """A card row as handed out by a card store."""

    card_id: str
    user_id: str
    state: SchedulingState
    origin_type: str = "chunk"
    origin_id: Optional[str] = None
    document_id: Optional[str] = None
    quiz_question_id: Optional[str] = None
    chunk_id: Optional[str] = None
    status: str = "active"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CardRecord":
        return cls(
            card_id=str(row.get("id") or row.get("card_id")),
            user_id=str(row.get("user_id") or ""),
            state=SchedulingState.from_dict(row),
            origin_type=row.get("origin_type") or "chunk",
            origin_id=row.get("origin_id"),
            document_id=row.get("document_id"),
            quiz_question_id=row.get("quiz_question_id"),
            chunk_id=row.get("chunk_id"),
            status=row.get("status") or "active",
        )


@dataclass
class SourceRef:
    document_title: Optional[str] = None
    page: Optional[int] = None
    slide: Optional[int] = None


@dataclass
class CardContent:
    """What the reviewer is shown for a card.

    ``kind`` is ``quiz`` when the quiz question resolved, ``chunk`` when only
    the study chunk did, and ``generic`` when neither could be found.
    """

    card_id: str
    kind: str
    prompt: str
    options: Any = None
    answer: Any = None
    explanation: Optional[str] = None
    chunk_text: Optional[str] = None
    source: SourceRef = field(default_factory=SourceRef)


@dataclass
class ReviewEvent:
    """Write-once history record of one grading."""

    card_id: str
    quality: int
    previous: SchedulingState
    next: SchedulingState
    reviewed_at: dt.datetime
    user_id: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Column layout of the ``srs_reviews`` table."""
        return {
            "card_id": self.card_id,
            "quality": self.quality,
            "reviewed_at": to_iso(self.reviewed_at),
            "previous_interval_days": self.previous.interval_days,
            "new_interval_days": self.next.interval_days,
            "previous_ease_factor": self.previous.ease_factor,
            "new_ease_factor": self.next.ease_factor,
            "previous_repetitions": self.previous.repetitions,
            "new_repetitions": self.next.repetitions,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "card_id": self.card_id,
            "quality": self.quality,
            "user_id": self.user_id,
            "reviewed_at": to_iso(self.reviewed_at),
            "previous": self.previous.to_dict(),
            "next": self.next.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReviewEvent":
        return cls(
            card_id=data["card_id"],
            quality=int(data["quality"]),
            user_id=data.get("user_id"),
            reviewed_at=ensure_utc(data.get("reviewed_at")),
            previous=SchedulingState.from_dict(data.get("previous") or {}),
            next=SchedulingState.from_dict(data.get("next") or {}),
        )
