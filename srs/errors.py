from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """PRIMARY failures block the review session; SECONDARY ones only warn."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class SrsError(Exception):
    kind: FailureKind = FailureKind.PRIMARY
    retryable: bool = False


class CardStoreError(SrsError):
    """The card's scheduling state could not be read or written."""

    kind = FailureKind.PRIMARY
    retryable = True


class CardNotFoundError(SrsError):
    kind = FailureKind.PRIMARY
    retryable = False

    def __init__(self, card_id: str) -> None:
        super().__init__(f"Card not found: {card_id}")
        self.card_id = card_id


class ReviewLogError(SrsError):
    """Appending to the review history failed; grading still counts."""

    kind = FailureKind.SECONDARY
    retryable = False


class ReviewSessionError(SrsError):
    retryable = False


class ReviewSessionBusyError(ReviewSessionError):
    """Another request is already grading or skipping in this user's session."""

    retryable = True

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Review session for user {user_id} is busy")
        self.user_id = user_id


__all__ = [
    "CardNotFoundError",
    "CardStoreError",
    "FailureKind",
    "ReviewLogError",
    "ReviewSessionBusyError",
    "ReviewSessionError",
    "SrsError",
]
