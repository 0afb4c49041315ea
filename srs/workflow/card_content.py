"""
Resolve what a reviewer sees for each card.

A card points at a quiz question, a document chunk, or both. The question
wins when it can be found; otherwise the chunk is shown as a study section;
otherwise the card falls back to a bare reference to its document.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from srs.db.interfaces import ContentReader
from srs.utils.types import CardContent, CardRecord, SourceRef

STUDY_SECTION_PROMPT = "Study section"
REVIEW_ITEM_PROMPT = "Review item"

Rows = Mapping[str, Mapping[str, Any]]


def build_card_content(
    card: CardRecord,
    questions: Rows,
    chunks: Rows,
    titles: Mapping[str, str],
) -> CardContent:
    question = questions.get(card.quiz_question_id) if card.quiz_question_id else None
    if question is not None:
        chunk = chunks.get(question.get("chunk_id")) if question.get("chunk_id") else None
        document_id = card.document_id or (chunk.get("document_id") if chunk else None)
        return CardContent(
            card_id=card.card_id,
            kind="quiz",
            prompt=question.get("prompt") or "",
            options=question.get("options"),
            answer=question.get("correct_answer"),
            explanation=question.get("explanation"),
            chunk_text=chunk.get("text") if chunk else None,
            source=_source(titles.get(document_id) if document_id else None, chunk),
        )

    chunk = chunks.get(card.chunk_id) if card.chunk_id else None
    if chunk is not None:
        title = titles.get(chunk.get("document_id"))
        return CardContent(
            card_id=card.card_id,
            kind="chunk",
            prompt=title or STUDY_SECTION_PROMPT,
            chunk_text=chunk.get("text"),
            source=_source(title, chunk),
        )

    title = titles.get(card.document_id) if card.document_id else None
    return CardContent(
        card_id=card.card_id,
        kind="generic",
        prompt=title or REVIEW_ITEM_PROMPT,
        source=SourceRef(document_title=title),
    )


def _source(title: Optional[str], chunk: Optional[Mapping[str, Any]]) -> SourceRef:
    if chunk is None:
        return SourceRef(document_title=title)
    return SourceRef(document_title=title, page=chunk.get("page_number"), slide=chunk.get("slide_number"))


def load_card_contents(cards: Iterable[CardRecord], reader: ContentReader) -> Dict[str, CardContent]:
    """Fetch questions, then chunks (the cards' and the questions'), then document titles."""
    cards = list(cards)
    question_ids = sorted({card.quiz_question_id for card in cards if card.quiz_question_id})
    questions = reader.get_quiz_questions(question_ids) if question_ids else {}

    chunk_ids = {card.chunk_id for card in cards if card.chunk_id}
    chunk_ids.update(q["chunk_id"] for q in questions.values() if q.get("chunk_id"))
    chunks = reader.get_chunks(sorted(chunk_ids)) if chunk_ids else {}

    document_ids = {card.document_id for card in cards if card.document_id}
    document_ids.update(c["document_id"] for c in chunks.values() if c.get("document_id"))
    titles = reader.get_document_titles(sorted(document_ids)) if document_ids else {}

    return {card.card_id: build_card_content(card, questions, chunks, titles) for card in cards}
