from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Sequence, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from srs.db.interfaces import ContentReader
from srs.db.models import Base, Document, DocumentChunk, QuizQuestion
from srs.db.session import create_engine_and_session
from srs.errors import CardStoreError
from srs.utils.logging_config import get_logger

logger = get_logger(__name__)


class SQLAlchemyContentReader(ContentReader):
    """Quiz questions, document chunks and document titles from the SQL database."""

    def __init__(self, db_url: Union[str, Path], *, create_tables: bool = True):
        self.engine, self.SessionLocal = create_engine_and_session(db_url)
        if create_tables:
            Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def _rows(self, model, ids: Sequence[str], what: str) -> list:
        if not ids:
            return []
        try:
            with self.SessionLocal() as session:
                return list(session.execute(select(model).where(model.id.in_(list(ids)))).scalars().all())
        except SQLAlchemyError as exc:
            logger.error("Content lookup failed | %s=%s", what, len(ids), exc_info=True)
            raise CardStoreError(f"Failed to load {what}") from exc

    def get_quiz_questions(self, question_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        return {
            q.id: {
                "id": q.id,
                "question_type": q.question_type,
                "prompt": q.prompt,
                "options": q.options,
                "correct_answer": q.correct_answer,
                "explanation": q.explanation,
                "chunk_id": q.chunk_id,
            }
            for q in self._rows(QuizQuestion, question_ids, "quiz questions")
        }

    def get_chunks(self, chunk_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        return {
            c.id: {
                "id": c.id,
                "document_id": c.document_id,
                "text": c.text,
                "page_number": c.page_number,
                "slide_number": c.slide_number,
            }
            for c in self._rows(DocumentChunk, chunk_ids, "document chunks")
        }

    def get_document_titles(self, document_ids: Sequence[str]) -> Dict[str, str]:
        return {doc.id: doc.title for doc in self._rows(Document, document_ids, "documents")}
