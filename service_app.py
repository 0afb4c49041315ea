from __future__ import annotations

import datetime as dt
from functools import lru_cache
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import redis
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from srs.db.interfaces import CardStore, ContentReader, ReviewLog
from srs.errors import CardNotFoundError, CardStoreError, ReviewSessionError
from srs.utils.logging_config import get_logger
from srs.utils.scheduler import SchedulingState, normalize_state
from srs.utils.types import CardContent, CardRecord
from srs.workflow import factory
from srs.workflow.review_session import GradeResult, ReviewSession
from srs.workflow.review_stats import ReviewSummary, build_review_summary
from srs.workflow.utils.session_cache import ReviewSessionCache
from srs.workflow.utils.settings import Settings, load_settings

logger = get_logger("srs.service")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def _card_store() -> CardStore:
    return factory.get_card_store(get_settings())


@lru_cache(maxsize=1)
def _review_log() -> ReviewLog:
    return factory.get_review_log(get_settings())


@lru_cache(maxsize=1)
def _content_reader() -> ContentReader:
    return factory.get_content_reader(get_settings())


@lru_cache(maxsize=1)
def _session_cache() -> ReviewSessionCache:
    settings = get_settings()
    return ReviewSessionCache.from_url(settings.redis_url, ttl_seconds=settings.session_ttl_seconds)


def get_card_store() -> CardStore:
    return _card_store()


def get_review_log() -> ReviewLog:
    return _review_log()


def get_content_reader() -> ContentReader:
    return _content_reader()


def get_session_cache() -> ReviewSessionCache:
    return _session_cache()


class StateModel(BaseModel):
    interval_days: int | float
    ease_factor: float
    repetitions: int
    last_reviewed_at: dt.datetime | None = None
    due_at: dt.datetime | None = None

    @classmethod
    def from_state(cls, state: SchedulingState) -> "StateModel":
        clean = normalize_state(state)
        return cls(
            interval_days=clean.interval_days,
            ease_factor=clean.ease_factor,
            repetitions=clean.repetitions,
            last_reviewed_at=clean.last_reviewed_at,
            due_at=clean.due_at,
        )


class CardModel(BaseModel):
    card_id: str
    user_id: str
    origin_type: str
    origin_id: str | None = None
    document_id: str | None = None
    quiz_question_id: str | None = None
    chunk_id: str | None = None
    status: str
    state: StateModel

    @classmethod
    def from_record(cls, card: CardRecord) -> "CardModel":
        return cls(
            card_id=card.card_id,
            user_id=card.user_id,
            origin_type=card.origin_type,
            origin_id=card.origin_id,
            document_id=card.document_id,
            quiz_question_id=card.quiz_question_id,
            chunk_id=card.chunk_id,
            status=card.status,
            state=StateModel.from_state(card.state),
        )


class SourceModel(BaseModel):
    document_title: str | None = None
    page: int | None = None
    slide: int | None = None


class CardContentModel(BaseModel):
    kind: Literal["quiz", "chunk", "generic"]
    prompt: str
    options: Any = None
    answer: Any = None
    explanation: str | None = None
    chunk_text: str | None = None
    source: SourceModel

    @classmethod
    def from_content(cls, content: CardContent) -> "CardContentModel":
        return cls(
            kind=content.kind,
            prompt=content.prompt,
            options=content.options,
            answer=content.answer,
            explanation=content.explanation,
            chunk_text=content.chunk_text,
            source=SourceModel(
                document_title=content.source.document_title,
                page=content.source.page,
                slide=content.source.slide,
            ),
        )


class SessionView(BaseModel):
    user_id: str
    total: int
    position: int
    progress_pct: int
    complete: bool
    has_pending: bool = False
    current: CardModel | None = None
    content: CardContentModel | None = None


class StartSessionRequest(BaseModel):
    user_id: str = Field(..., description="Reviewer whose due cards are loaded")


class GradeRequest(BaseModel):
    quality: int = Field(..., ge=0, le=5, description="Recall quality: 0 (forgot) to 5 (effortless)")


class GradeResponse(BaseModel):
    card_id: str
    quality: int
    previous: StateModel
    next: StateModel
    review_logged: bool
    warning: str | None = None
    session: SessionView


class CreateCardRequest(BaseModel):
    user_id: str
    origin_type: Literal["quiz_question", "chunk"]
    origin_id: str
    document_id: str | None = None
    quiz_question_id: str | None = None
    chunk_id: str | None = None


class StatusRequest(BaseModel):
    status: Literal["active", "suspended", "archived"]


class DayBucketModel(BaseModel):
    date: dt.date
    count: int


class SampleCardModel(CardModel):
    document_title: str | None = None


class SummaryResponse(BaseModel):
    overdue: int
    due_today: int
    total_due_now: int
    upcoming: list[DayBucketModel]
    max_bucket: int
    sample_today: list[SampleCardModel]
    streak: int
    completed_today: int
    last_reviewed_at: dt.datetime | None = None

    @classmethod
    def from_summary(cls, summary: ReviewSummary) -> "SummaryResponse":
        return cls(
            overdue=len(summary.overdue),
            due_today=len(summary.due_today),
            total_due_now=summary.total_due_now,
            upcoming=[DayBucketModel(date=b.date, count=b.count) for b in summary.upcoming_buckets],
            max_bucket=summary.max_bucket,
            sample_today=[
                SampleCardModel(
                    **CardModel.from_record(card).model_dump(),
                    document_title=summary.document_titles.get(card.document_id) if card.document_id else None,
                )
                for card in summary.sample_today
            ],
            streak=summary.streak,
            completed_today=summary.completed_today,
            last_reviewed_at=summary.last_reviewed_at,
        )


app = FastAPI(title="Spaced Repetition Review Service")


@app.exception_handler(CardStoreError)
async def card_store_error_handler(request: Request, exc: CardStoreError) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"detail": str(exc), "kind": exc.kind.value, "retryable": exc.retryable},
    )


@app.exception_handler(CardNotFoundError)
async def card_not_found_handler(request: Request, exc: CardNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc), "card_id": exc.card_id})


@app.exception_handler(ReviewSessionError)
async def review_session_error_handler(request: Request, exc: ReviewSessionError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc), "retryable": exc.retryable})


@app.exception_handler(redis.RedisError)
async def redis_error_handler(request: Request, exc: redis.RedisError) -> JSONResponse:
    logger.error("Session cache unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Review session cache unavailable", "retryable": True})


@app.get("/health")
async def health() -> JSONResponse:
    return JSONResponse({"status": "ok"})


def _session_view(session: ReviewSession) -> SessionView:
    current = session.current
    content = session.current_content() if current else None
    return SessionView(
        user_id=session.user_id,
        total=session.total,
        position=session.position,
        progress_pct=session.progress_pct,
        complete=session.complete,
        has_pending=session.pending is not None,
        current=CardModel.from_record(current) if current else None,
        content=CardContentModel.from_content(content) if content else None,
    )


def _restore_session(
    user_id: str,
    store: CardStore,
    log: ReviewLog,
    reader: ContentReader,
    cache: ReviewSessionCache,
) -> ReviewSession:
    snapshot = cache.load(user_id)
    if not snapshot:
        raise HTTPException(status_code=404, detail=f"No review session for user {user_id}")
    return ReviewSession.restore(
        snapshot,
        store,
        log,
        due_limit=get_settings().due_card_limit,
        content_reader=reader,
    )


@app.post("/reviews/sessions", response_model=SessionView)
def start_session(
    request: StartSessionRequest,
    store: CardStore = Depends(get_card_store),
    log: ReviewLog = Depends(get_review_log),
    reader: ContentReader = Depends(get_content_reader),
    cache: ReviewSessionCache = Depends(get_session_cache),
) -> SessionView:
    session = ReviewSession(
        request.user_id,
        store,
        log,
        due_limit=get_settings().due_card_limit,
        content_reader=reader,
    )
    with cache.locked(request.user_id):
        session.load()
        cache.save(request.user_id, session.snapshot())
    return _session_view(session)


@app.get("/reviews/sessions/{user_id}", response_model=SessionView)
def get_session(
    user_id: str,
    store: CardStore = Depends(get_card_store),
    log: ReviewLog = Depends(get_review_log),
    reader: ContentReader = Depends(get_content_reader),
    cache: ReviewSessionCache = Depends(get_session_cache),
) -> SessionView:
    return _session_view(_restore_session(user_id, store, log, reader, cache))


@app.post("/reviews/sessions/{user_id}/grade", response_model=GradeResponse)
def grade_card(
    user_id: str,
    request: GradeRequest,
    store: CardStore = Depends(get_card_store),
    log: ReviewLog = Depends(get_review_log),
    reader: ContentReader = Depends(get_content_reader),
    cache: ReviewSessionCache = Depends(get_session_cache),
) -> GradeResponse:
    with cache.locked(user_id):
        session = _restore_session(user_id, store, log, reader, cache)
        try:
            result: GradeResult = session.grade(request.quality)
        finally:
            # Persist the pending schedule too, so a retry re-sends the same state.
            cache.save(user_id, session.snapshot())
    return GradeResponse(
        card_id=result.card_id,
        quality=result.event.quality,
        previous=StateModel.from_state(result.event.previous),
        next=StateModel.from_state(result.event.next),
        review_logged=result.review_logged,
        warning=result.warning,
        session=_session_view(session),
    )


@app.post("/reviews/sessions/{user_id}/skip", response_model=SessionView)
def skip_card(
    user_id: str,
    store: CardStore = Depends(get_card_store),
    log: ReviewLog = Depends(get_review_log),
    reader: ContentReader = Depends(get_content_reader),
    cache: ReviewSessionCache = Depends(get_session_cache),
) -> SessionView:
    with cache.locked(user_id):
        session = _restore_session(user_id, store, log, reader, cache)
        session.skip()
        cache.save(user_id, session.snapshot())
    return _session_view(session)


@app.get("/reviews/summary", response_model=SummaryResponse)
def review_summary(
    user_id: str,
    tz: str | None = None,
    store: CardStore = Depends(get_card_store),
    log: ReviewLog = Depends(get_review_log),
    reader: ContentReader = Depends(get_content_reader),
) -> SummaryResponse:
    tz_name = tz or get_settings().review_timezone
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {tz_name}") from exc
    summary = build_review_summary(store, log, user_id, tz=zone, content_reader=reader)
    return SummaryResponse.from_summary(summary)


@app.post("/cards", response_model=CardModel)
def create_card(request: CreateCardRequest, store: CardStore = Depends(get_card_store)) -> CardModel:
    card = store.add_card(
        request.user_id,
        request.origin_type,
        request.origin_id,
        document_id=request.document_id,
        quiz_question_id=request.quiz_question_id,
        chunk_id=request.chunk_id,
    )
    logger.info("Card enrolled | user=%s card=%s origin=%s:%s", request.user_id, card.card_id, request.origin_type, request.origin_id)
    return CardModel.from_record(card)


@app.post("/cards/{card_id}/status", response_model=CardModel)
def update_card_status(card_id: str, request: StatusRequest, store: CardStore = Depends(get_card_store)) -> CardModel:
    store.set_status(card_id, request.status)
    card = store.get_card(card_id)
    if card is None:
        raise CardNotFoundError(card_id)
    return CardModel.from_record(card)
