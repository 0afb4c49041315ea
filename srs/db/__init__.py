from srs.db.card_store import SQLAlchemyCardStore
from srs.db.content_reader import SQLAlchemyContentReader
from srs.db.interfaces import CardStore, ContentReader, ReviewLog
from srs.db.models import Base, Document, DocumentChunk, QuizQuestion, SrsCard, SrsReview
from srs.db.review_log import SQLAlchemyReviewLog
from srs.db.session import create_engine_and_session

__all__ = [
    "Base",
    "CardStore",
    "ContentReader",
    "Document",
    "DocumentChunk",
    "QuizQuestion",
    "ReviewLog",
    "SQLAlchemyCardStore",
    "SQLAlchemyContentReader",
    "SQLAlchemyReviewLog",
    "SrsCard",
    "SrsReview",
    "create_engine_and_session",
]
