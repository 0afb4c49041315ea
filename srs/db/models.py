from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base

from srs.utils.scheduler import DEFAULT_EASE_FACTOR

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class SrsCard(Base):
    __tablename__ = "srs_cards"
    __table_args__ = (
        UniqueConstraint("user_id", "origin_type", "origin_id", name="uix_srs_card_origin"),
        Index("srs_cards_user_due_idx", "user_id", "due_at"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=False)
    origin_type = Column(String, nullable=False)
    origin_id = Column(String, nullable=False)
    document_id = Column(String, nullable=True)
    quiz_question_id = Column(String, nullable=True)
    chunk_id = Column(String, nullable=True)
    due_at = Column(DateTime(timezone=True), nullable=False)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    interval_days = Column(Integer, nullable=False, default=0)
    ease_factor = Column(Float, nullable=False, default=DEFAULT_EASE_FACTOR)
    repetitions = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SrsReview(Base):
    __tablename__ = "srs_reviews"
    __table_args__ = (
        CheckConstraint("quality >= 0 AND quality <= 5", name="ck_srs_review_quality"),
        Index("srs_reviews_card_id_idx", "card_id", "reviewed_at"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    card_id = Column(String, ForeignKey("srs_cards.id", ondelete="CASCADE"), nullable=False)
    reviewed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    quality = Column(SmallInteger, nullable=False)
    previous_interval_days = Column(Integer, nullable=True)
    new_interval_days = Column(Integer, nullable=True)
    previous_ease_factor = Column(Float, nullable=True)
    new_ease_factor = Column(Float, nullable=True)
    previous_repetitions = Column(Integer, nullable=True)
    new_repetitions = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Document(Base):
    __tablename__ = "documents"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=True)
    title = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DocumentChunk(Base):
    __tablename__ = "document_chunks"
    __table_args__ = (UniqueConstraint("document_id", "chunk_index", name="uix_document_chunk_index"),)

    id = Column(String, primary_key=True, default=_uuid)
    document_id = Column(String, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    chunk_index = Column(Integer, nullable=False, default=0)
    text = Column(Text, nullable=False)
    page_number = Column(Integer, nullable=True)
    slide_number = Column(Integer, nullable=True)


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"

    id = Column(String, primary_key=True, default=_uuid)
    quiz_set_id = Column(String, nullable=True)
    question_type = Column(String, nullable=False, default="multiple_choice")
    prompt = Column(Text, nullable=False)
    options = Column(JSON, nullable=True)
    correct_answer = Column(JSON, nullable=True)
    explanation = Column(Text, nullable=True)
    chunk_id = Column(String, ForeignKey("document_chunks.id", ondelete="SET NULL"), nullable=True)
